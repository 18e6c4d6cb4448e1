"""
tube-publisher: Resumable YouTube uploads and playlist reconciliation.

This package publishes large video files to YouTube from a local disk,
Google Drive or Dropbox, surviving crashes mid-transfer, and keeps
YouTube playlists in a locally computed order with minimal API calls.

Architecture:
    The work is split into two independent engines:

    UPLOADS (transfer/): Resumable, crash-safe transfer
        - Initiate a resumable session and persist its URL
        - Probe the endpoint for the acknowledged offset
        - Stream chunks from the source, one PUT at a time
        - Retry server errors, stop cleanly on anything else
        - Remove the state file only on a terminal outcome

    PLAYLISTS (playlist/): Order-preserving reconciliation
        - Fetch the playlist items
        - Compute the longest common subsequence with the desired order
        - Delete what is not kept, insert what is missing
        - Fix each inserted item's position

Modules:
    core/       - Configuration, logging, exceptions, progress bars
    transfer/   - Chunk sources, session state, the upload state machine
    playlist/   - Playlist service and reconciler
    utils/      - HTTP sessions, backoff, parallel execution
    cli.py      - Command-line interface

Usage:
    Command Line:
        tube --upload "1AbCdEfGh" --metadata video.json
        tube --resume
        tube --playlist PLxxxx --desired ids.txt --preview

    Python API:
        from tube_publisher.core import load_config, setup_logging
        from tube_publisher.transfer import SessionStateStore, TransferSession, open_source
        from tube_publisher.playlist import PlaylistReconciler, YouTubePlaylistService
        from tube_publisher.utils import authorized_session

        config = load_config()
        setup_logging(config.output.directory)

        session = TransferSession(
            SessionStateStore(config.upload.state_file),
            authorized_session(config.youtube.access_token),
            chunk_size=config.upload.chunk_size,
        )
        with open_source("local", "talk.mp4") as source:
            session.initialise(source, {"snippet": {"title": "Talk"}})
            video = session.upload()

        reconciler = PlaylistReconciler(
            YouTubePlaylistService(authorized_session(config.youtube.access_token))
        )
        reconciler.sync("PLxxxx", [video.video_id, "dQw4w9WgXcQ"])

Configuration:
    Requires a config.yaml file in the current directory:

        youtube:
          access_token: "ya29...."
        storage:
          backend: drive
          access_token: "ya29...."

    See core/config.py for all options.

Dependencies:
    - requests: YouTube, Drive and Dropbox HTTP calls
    - click: CLI framework
    - rich-click: CLI colors
    - rich: Upload progress bar
    - tqdm: Playlist progress, log output that does not break bars
    - pyyaml: Configuration file parsing
    - python-dotenv: Tokens from a .env file
"""

__version__ = "0.3.0"
__author__ = "tube-publisher"

from tube_publisher.core import (
    Config,
    TubePublisherError,
    load_config,
    setup_logging,
)
from tube_publisher.playlist import PlaylistReconciler, YouTubePlaylistService
from tube_publisher.transfer import SessionStateStore, TransferSession, open_source

__all__ = [
    "__version__",
    "Config",
    "TubePublisherError",
    "load_config",
    "setup_logging",
    "PlaylistReconciler",
    "YouTubePlaylistService",
    "SessionStateStore",
    "TransferSession",
    "open_source",
]
