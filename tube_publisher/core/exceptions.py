"""
Exception classes for tube-publisher.

This module defines all custom exceptions used throughout the application.
Each exception is designed to provide clear, actionable error messages
and to distinguish between the different failure modes of a transfer or
a playlist reconciliation.

Exception Hierarchy:
    TubePublisherError (base)
        ConfigError - Configuration file issues
        SessionStateError - Upload state record issues
        TransferError - Upload did not complete (state kept)
            UploadInProgressError - A session is already persisted
            EmptySourceError - Zero-length content
            TransferFailedError - Permanent remote rejection (state deleted)
            TransportError - No response received (state kept)
            TransferCancelledError - Cancellation requested (state kept)
            InvalidTransitionError - Illegal session state transition
        ChunkSourceError - Source could not deliver bytes
            ContiguityError - Non-contiguous read on a remote source
        PlaylistError - Playlist API issues
            ReconcileError - A playlist reconciliation aborted
"""


class TubePublisherError(Exception):
    """
    Base exception for all tube-publisher errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch all tube-publisher errors with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., URLs, offsets).

    Example:
        try:
            session.upload(source)
        except TubePublisherError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Useful for logging and debugging. Common keys include:
                     - 'upload_url': The resumable session URL involved
                     - 'offset': Byte offset at which the error happened
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(TubePublisherError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - config.yaml not found
        - config.yaml has invalid YAML syntax
        - Required fields missing (access tokens, storage backend)
        - Invalid field values (e.g., chunk size not a multiple of 256 KiB)
    """
    pass


class SessionStateError(TubePublisherError):
    """
    Raised when the upload state record cannot be written or removed,
    or when a resumed upload is given a source that does not match
    the persisted record.

    A missing or corrupt state file is NOT an error: it is read as
    "no upload in progress".
    """
    pass


class TransferError(TubePublisherError):
    """
    Raised when an upload did not reach a terminal success.

    Unless a subclass says otherwise, the persisted state is left in
    place and the upload can be resumed by running the process again.
    """
    pass


class UploadInProgressError(TransferError):
    """
    Raised when a new upload is initiated while another one is persisted.

    The state file's existence is the exclusivity mechanism, so this is
    raised immediately and nothing is overwritten.
    """
    pass


class EmptySourceError(TransferError):
    """Raised when the content to upload is zero bytes long."""
    pass


class TransferFailedError(TransferError):
    """
    Raised when the upload endpoint permanently rejects the transfer.

    The persisted state has already been deleted when this is raised:
    the resumable session cannot be continued.

    Attributes:
        status_code: The HTTP status returned by the endpoint.
        body: The response body, usually a JSON error document.

    Example:
        raise TransferFailedError(
            "Uploading chunk failed, status 403",
            status_code=403,
            body='{"error": {"message": "quotaExceeded"}}'
        )
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        body: str = "",
        details: dict | None = None
    ) -> None:
        """
        Initialize the permanent failure.

        Args:
            message: Human-readable error description.
            status_code: HTTP status of the rejecting response.
            body: Response body text for diagnostics.
            details: Optional dictionary with additional context.
        """
        super().__init__(message, details)
        self.status_code = status_code
        self.body = body


class TransportError(TransferError):
    """
    Raised when no response was received (connection failure, timeout).

    The persisted state is never touched for this error: the process can
    be restarted and will resume from the last acknowledged offset.
    """
    pass


class TransferCancelledError(TransferError):
    """
    Raised when the caller's cancellation signal is observed.

    Bytes of a partially sent chunk were not acknowledged and will simply
    be sent again by the next run.
    """
    pass


class InvalidTransitionError(TransferError):
    """Raised when the transfer session is driven into an illegal state."""
    pass


class ChunkSourceError(TubePublisherError):
    """
    Raised when a chunk source cannot deliver the requested bytes.

    Common causes:
        - Local file missing or unreadable
        - Cloud storage returned an error status for the download
        - The download stream ended before the requested range
    """
    pass


class ContiguityError(ChunkSourceError):
    """
    Raised when a remote source is asked for bytes that do not start
    where the previous read ended.

    Remote sources serve one long-lived ranged download; random access
    would force a new connection per chunk. Callers that really need to
    move must call rewind() explicitly.
    """
    pass


class PlaylistError(TubePublisherError):
    """
    Raised when a playlist API call fails.

    Attributes:
        status_code: HTTP status, or None if no response was received.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        status_code: int | None = None
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class ReconcileError(PlaylistError):
    """
    Raised when applying an edit script to one playlist aborts.

    The remote playlist may be partially updated. Running the
    reconciliation again recomputes the script from the current remote
    state, so a partial application is always safe to re-drive.

    Attributes:
        playlist_id: The playlist being reconciled.
        applied: Number of operations applied before the failure.
    """

    def __init__(
        self,
        message: str,
        playlist_id: str,
        applied: int,
        details: dict | None = None,
        status_code: int | None = None
    ) -> None:
        super().__init__(message, details, status_code)
        self.playlist_id = playlist_id
        self.applied = applied
