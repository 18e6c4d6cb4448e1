"""
Core module for tube-publisher.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - logger: Logging system with multiple outputs

Usage:
    from tube_publisher.core import (
        Config, load_config,
        setup_logging, get_logger,
        TubePublisherError, ConfigError, TransferError
    )
"""

from tube_publisher.core.config import (
    Config,
    OutputConfig,
    PlaylistsConfig,
    StorageConfig,
    UploadConfig,
    YouTubeConfig,
    load_config,
)
from tube_publisher.core.exceptions import (
    ChunkSourceError,
    ConfigError,
    ContiguityError,
    EmptySourceError,
    InvalidTransitionError,
    PlaylistError,
    ReconcileError,
    SessionStateError,
    TransferCancelledError,
    TransferError,
    TransferFailedError,
    TransportError,
    TubePublisherError,
    UploadInProgressError,
)
from tube_publisher.core.logger import (
    get_logger,
    log_playlist_change,
    log_transfer_failure,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Config
    "Config",
    "YouTubeConfig",
    "StorageConfig",
    "UploadConfig",
    "OutputConfig",
    "PlaylistsConfig",
    "load_config",
    # Exceptions
    "TubePublisherError",
    "ConfigError",
    "SessionStateError",
    "TransferError",
    "UploadInProgressError",
    "EmptySourceError",
    "TransferFailedError",
    "TransportError",
    "TransferCancelledError",
    "InvalidTransitionError",
    "ChunkSourceError",
    "ContiguityError",
    "PlaylistError",
    "ReconcileError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_transfer_failure",
    "log_playlist_change",
    "shutdown_logging",
]
