"""
Command-line interface for tube-publisher.

This module implements the CLI using Click, providing the commands for
resumable video uploads and playlist reconciliation.
rich-click is used for the output colors.

Commands:
    tube --upload <source> --metadata <file.json>   Start a new upload
    tube --resume                                   Continue the upload in progress
    tube --status                                   Show the upload in progress
    tube --abandon                                  Forget the upload in progress
    tube --playlist <id> --desired <file>           Reconcile a playlist
    tube --playlist <id> --desired <file> --preview Show the edit without applying it

Usage:
    # Upload a file from the configured storage backend
    tube --upload "1AbCdEfGh" --metadata video.json

    # The process was killed halfway: pick up where the endpoint stopped
    tube --resume

    # Reconcile two playlists (pairs of --playlist/--desired, in order)
    tube --playlist PLaaa --desired aaa.txt --playlist PLbbb --desired bbb.txt

Configuration:
    The CLI requires a config.yaml file in the current directory with:
    - YouTube access token
    - Storage backend and its access token
    - Optional upload tuning, output directory and playlist threads

Desired Files:
    One YouTube video id per line, in playlist order. Blank lines and
    lines starting with '#' are ignored.

Exit Codes:
    0   success
    1   configuration or usage error
    2   upload permanently rejected (state removed)
    3   upload interrupted, run --resume
    4   playlist reconciliation failed
    5   other error
    130 interrupted by user
"""

import json
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

import rich_click as click

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.OPTION_GROUPS = {
    "cli": [
        {
            "name": "Upload",
            "options": ["--upload", "--metadata", "--resume", "--status", "--abandon"],
        },
        {
            "name": "Playlists",
            "options": ["--playlist", "--desired", "--preview"],
        },
        {
            "name": "Info",
            "options": ["--version", "--help"],
        },
    ],
}

from tube_publisher import __version__
from tube_publisher.core import (
    Config,
    ConfigError,
    PlaylistError,
    TransferError,
    TransferFailedError,
    TubePublisherError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from tube_publisher.core.progress import UploadProgressBar
from tube_publisher.playlist import PlaylistReconciler, ReconcileResult, YouTubePlaylistService
from tube_publisher.transfer import (
    ChunkSource,
    SessionStateStore,
    TransferSession,
    UploadedVideo,
    open_source,
)
from tube_publisher.utils import authorized_session, ensure_directory, format_file_size

logger = get_logger(__name__)


@click.group(invoke_without_command=True)
@click.option(
    "--upload",
    type=str,
    default=None,
    metavar="<source>",
    help="Path or cloud file id of the video to upload"
)
@click.option(
    "--metadata",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    metavar="<file.json>",
    help="videos resource (snippet, status) for the new upload"
)
@click.option(
    "--resume",
    is_flag=True,
    help="Continue the upload in progress"
)
@click.option(
    "--status",
    is_flag=True,
    help="Show the upload in progress"
)
@click.option(
    "--abandon",
    is_flag=True,
    help="Forget the upload in progress"
)
@click.option(
    "--playlist",
    type=str,
    multiple=True,
    metavar="<playlist-id>",
    help="Playlist to reconcile (repeatable)"
)
@click.option(
    "--desired",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    multiple=True,
    metavar="<file>",
    help="Video ids for the matching --playlist, one per line"
)
@click.option(
    "--preview",
    is_flag=True,
    help="Show playlist edits without applying them"
)
@click.option(
    "--version",
    is_flag=True,
    help="Show version and exit."
)
@click.pass_context
def cli(
    ctx: click.Context,
    upload: Optional[str],
    metadata: Optional[Path],
    resume: bool,
    status: bool,
    abandon: bool,
    playlist: tuple[str, ...],
    desired: tuple[Path, ...],
    preview: bool,
    version: bool
) -> None:
    """
    tube-publisher: Resumable YouTube uploads and playlist sync.

    \b
    UPLOADS:
        tube --upload <source> --metadata video.json   # Start an upload
        tube --resume                                  # Continue after a crash
        tube --status                                  # What is in progress?
        tube --abandon                                 # Give up on it

    \b
    PLAYLISTS:
        tube --playlist PLxxx --desired ids.txt             # Apply
        tube --playlist PLxxx --desired ids.txt --preview   # Dry run
    """
    if version:
        click.echo(f"tube-publisher {__version__}")
        ctx.exit(0)

    modes = [bool(upload), resume, status, abandon, bool(playlist)]
    if not any(modes):
        click.echo(ctx.get_help())
        ctx.exit(0)

    if sum(modes) > 1:
        raise click.UsageError(
            "Use only one of --upload, --resume, --status, --abandon, --playlist"
        )

    if upload and metadata is None:
        raise click.UsageError("--upload requires --metadata")
    if metadata is not None and not upload:
        raise click.UsageError("--metadata can only be used with --upload")

    if len(playlist) != len(desired):
        raise click.UsageError("Every --playlist needs exactly one --desired file")
    if preview and not playlist:
        raise click.UsageError("--preview can only be used with --playlist")

    ctx.ensure_object(dict)
    ctx.obj["upload"] = upload
    ctx.obj["metadata"] = metadata
    ctx.obj["resume"] = resume
    ctx.obj["status"] = status
    ctx.obj["abandon"] = abandon
    ctx.obj["jobs"] = list(zip(playlist, desired))
    ctx.obj["preview"] = preview

    _run(ctx.obj)


def _run(options: dict) -> None:
    """
    Execute the selected command.

    Loads the configuration, sets up logging, dispatches, and maps
    errors to exit codes.

    Raises:
        SystemExit: On errors (with the exit code listed in the module docstring).
    """
    try:
        config = load_config()

        ensure_directory(config.output.directory)
        setup_logging(config.output.directory)
        logger.debug("tube-publisher starting")

        store = SessionStateStore(config.upload.state_file)

        if options["status"]:
            _show_status(store)
        elif options["abandon"]:
            _abandon(_build_session(config, store), store)
        elif options["upload"]:
            _start_upload(config, store, options["upload"], options["metadata"])
        elif options["resume"]:
            _resume_upload(config, store)
        else:
            _sync_playlists(config, options["jobs"], options["preview"])

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    except TransferFailedError as e:
        click.echo(f"Upload rejected (status {e.status_code}): {e.message}", err=True)
        logger.debug(f"Response body: {e.body}")
        sys.exit(2)

    except TransferError as e:
        click.echo(f"Upload stopped: {e.message}", err=True)
        click.echo("Run `tube --resume` to continue from the last acknowledged byte.", err=True)
        logger.error(f"Upload stopped: {e.message}", exc_info=True)
        sys.exit(3)

    except PlaylistError as e:
        click.echo(f"Playlist error: {e.message}", err=True)
        logger.error(f"Playlist error: {e.message}", exc_info=True)
        sys.exit(4)

    except TubePublisherError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(5)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    finally:
        shutdown_logging()


# =============================================================================
# Uploads
# =============================================================================

def _build_session(config: Config, store: SessionStateStore) -> TransferSession:
    return TransferSession(
        store,
        authorized_session(config.youtube.access_token),
        chunk_size=config.upload.chunk_size,
        upload_endpoint=config.youtube.upload_endpoint,
        timeout=config.upload.timeout,
        max_retries=config.upload.max_retries,
    )


def _open_source(config: Config, descriptor: str) -> ChunkSource:
    storage_http = None
    if config.storage.backend != "local":
        storage_http = authorized_session(config.storage.access_token)
    try:
        return open_source(
            config.storage.backend, descriptor, storage_http, config.upload.timeout
        )
    except ValueError as e:
        raise ConfigError(str(e), details={"backend": config.storage.backend}) from e


def _load_metadata(path: Path) -> dict:
    """
    Read the videos resource body for a new upload.

    Raises:
        click.UsageError: If the file is not a JSON object.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            metadata = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise click.UsageError(f"Cannot read metadata {path}: {e}")

    if not isinstance(metadata, dict):
        raise click.UsageError(f"Metadata {path} must be a JSON object")
    return metadata


def _show_status(store: SessionStateStore) -> None:
    record = store.load()
    if record is None and store.exists():
        click.echo(f"Upload state {store.path} is unreadable. Run `tube --abandon` to remove it.")
        return
    if record is None:
        click.echo("No upload in progress.")
        return

    click.echo(f"Upload in progress: {record.source_descriptor}")
    click.echo(f"  Size:        {format_file_size(record.total_length)} ({record.total_length} bytes)")
    click.echo(f"  Session URL: {record.upload_url}")
    click.echo(f"  State file:  {store.path}")


def _abandon(session: TransferSession, store: SessionStateStore) -> None:
    if not session.in_progress:
        if store.discard_unreadable():
            click.echo(f"Removed unreadable upload state {store.path}.")
        else:
            click.echo("No upload in progress.")
        return
    record = session.abandon()
    click.echo(f"Abandoned upload of {record.source_descriptor}.")


def _start_upload(config: Config, store: SessionStateStore, descriptor: str, metadata_path: Path) -> None:
    metadata = _load_metadata(metadata_path)
    session = _build_session(config, store)

    with _open_source(config, descriptor) as source:
        session.initialise(source, metadata)
        logger.info(f"Uploading {descriptor} ({format_file_size(session.total_length)})")
        video = _run_upload(session, source)

    _report_video(video)


def _resume_upload(config: Config, store: SessionStateStore) -> None:
    session = _build_session(config, store)
    if not session.in_progress:
        click.echo("No upload in progress.")
        return

    with _open_source(config, session.source_descriptor) as source:
        logger.info(f"Resuming {session.source_descriptor}")
        video = _run_upload(session, source)

    _report_video(video)


def _run_upload(session: TransferSession, source: ChunkSource) -> UploadedVideo:
    """
    Run the transfer in a worker thread so Ctrl+C can cancel it cleanly.

    On KeyboardInterrupt the cancellation event is set and the worker is
    awaited; it stops at the next read of the chunk body and raises
    TransferCancelledError, leaving the state file for --resume.
    """
    cancel_event = threading.Event()

    with UploadProgressBar(total=session.total_length) as progress:
        with ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(
                session.upload,
                source,
                progress_callback=progress.update,
                cancel_event=cancel_event,
            )
            try:
                return future.result()
            except KeyboardInterrupt:
                cancel_event.set()
                click.echo("\nCancelling upload...", err=True)
                return future.result()


def _report_video(video: UploadedVideo) -> None:
    click.echo(f"Upload complete: {video.title or video.video_id}")
    click.echo(f"  {video.url} ({video.privacy_status or 'unknown privacy'})")


# =============================================================================
# Playlists
# =============================================================================

def _read_desired(path: Path) -> list[str]:
    """
    Read a desired playlist file: one video id per line.

    Raises:
        click.UsageError: If the file cannot be read.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
    except OSError as e:
        raise click.UsageError(f"Cannot read {path}: {e}")

    return [
        line.strip()
        for line in lines
        if line.strip() and not line.strip().startswith("#")
    ]


def _sync_playlists(config: Config, jobs: list[tuple[str, Path]], preview: bool) -> None:
    reconciler = PlaylistReconciler(
        YouTubePlaylistService(
            authorized_session(config.youtube.access_token),
            timeout=config.upload.timeout,
        )
    )
    desired = {playlist_id: _read_desired(path) for playlist_id, path in jobs}

    if len(desired) == 1:
        playlist_id, video_ids = next(iter(desired.items()))
        _print_result(reconciler.sync(playlist_id, video_ids, preview=preview))
        return

    results = reconciler.sync_many(desired, threads=config.playlists.threads, preview=preview)

    failed = 0
    for playlist_id, result in results.items():
        if isinstance(result, Exception):
            failed += 1
            click.echo(f"{playlist_id}: FAILED ({result})", err=True)
        else:
            _print_result(result)

    if failed:
        raise PlaylistError(
            f"{failed} of {len(results)} playlists failed",
            details={"failed": failed}
        )


def _print_result(result: ReconcileResult) -> None:
    if not result.changed:
        click.echo(f"{result.playlist_id}: up to date")
        return

    if result.preview:
        click.echo(f"{result.playlist_id}: {len(result.script)} operations (preview)")
        for line in result.script.describe():
            click.echo(f"  {line}")
    else:
        click.echo(f"{result.playlist_id}: applied {result.applied} operations")


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `tube` from the command line.
    It invokes the Click CLI group.
    """
    cli()


if __name__ == "__main__":
    main()
