"""
Resumable upload engine.

Modules:
    - status: Response classification for the resumable protocol
    - state: Durable record of the upload in progress
    - reader: Stream decorators feeding chunk bodies to requests
    - sources: Local and cloud chunk sources
    - session: The upload state machine

Usage:
    from tube_publisher.transfer import (
        SessionStateStore, TransferSession, open_source
    )
"""

from tube_publisher.transfer.reader import BoundedChunkReader, CancellableReader
from tube_publisher.transfer.session import (
    ChunkDescriptor,
    Completed,
    Failed,
    Idle,
    Initiating,
    TransferSession,
    Transferring,
    UploadedVideo,
)
from tube_publisher.transfer.sources import (
    ChunkSource,
    DropboxSource,
    GoogleDriveSource,
    LocalFileSource,
    RemoteRangeSource,
    open_source,
)
from tube_publisher.transfer.state import SessionState, SessionStateStore
from tube_publisher.transfer.status import TransferStatus, classify, is_server_error

__all__ = [
    "BoundedChunkReader",
    "CancellableReader",
    "ChunkDescriptor",
    "ChunkSource",
    "Completed",
    "DropboxSource",
    "Failed",
    "GoogleDriveSource",
    "Idle",
    "Initiating",
    "LocalFileSource",
    "RemoteRangeSource",
    "SessionState",
    "SessionStateStore",
    "TransferSession",
    "TransferStatus",
    "Transferring",
    "UploadedVideo",
    "classify",
    "is_server_error",
    "open_source",
]
