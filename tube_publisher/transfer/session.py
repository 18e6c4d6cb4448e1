"""
Resumable upload session for the YouTube videos.insert endpoint.

TransferSession drives one upload through the resumable protocol:

    1. Initiate: POST the video metadata, receive the session URL in the
       Location header, persist it (the state file is the upload lock).
    2. Probe: PUT an empty body with "Content-Range: bytes */<total>" to
       learn how many bytes the endpoint already holds.
    3. Transfer: PUT consecutive chunks with
       "Content-Range: bytes <start>-<end>/<total>" until the endpoint
       answers with the created video.

Session States:
    Idle ──initialise──> Initiating ──> Transferring ──> Completed
                             │               │ ▲
                             │               └─┘ (each acknowledged chunk)
                             └──> Failed <───┘

    Transferring is also the state of a session loaded from disk after a
    restart. Its offset is then unknown until the first probe.

Failure Handling:
    - Server errors (500, 502, 503, 504) are retried with exponential
      backoff and a fresh probe; after max_retries consecutive ones the
      run stops with TransferError and the state file stays.
    - Any other error status is permanent: the state file is removed and
      TransferFailedError is raised.
    - Network failures and cancellation never touch the state file.

Usage:
    store = SessionStateStore(config.upload.state_file)
    session = TransferSession(store, youtube_http, config.upload.chunk_size)

    with open_source("drive", file_id, http=drive_http) as source:
        if not session.in_progress:
            session.initialise(source, metadata)
        video = session.upload(source, progress_callback=bar.update)
"""

import json
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import requests

from tube_publisher.core.config import CHUNK_GRANULARITY, DEFAULT_UPLOAD_ENDPOINT, MIB
from tube_publisher.core.exceptions import (
    EmptySourceError,
    InvalidTransitionError,
    SessionStateError,
    TransferCancelledError,
    TransferError,
    TransferFailedError,
    TransportError,
    UploadInProgressError,
)
from tube_publisher.core.logger import (
    format_transfer_progress,
    get_logger,
    log_transfer_failure,
)
from tube_publisher.transfer.reader import CancellableReader
from tube_publisher.transfer.sources import ChunkSource
from tube_publisher.transfer.state import SessionState, SessionStateStore
from tube_publisher.transfer.status import TransferStatus, classify, is_server_error
from tube_publisher.utils import calculate_backoff

logger = get_logger(__name__)


DEFAULT_CHUNK_SIZE = 16 * MIB
DEFAULT_TIMEOUT = 300.0
DEFAULT_MAX_RETRIES = 5
DEFAULT_CONTENT_TYPE = "video/*"

_RANGE_HEADER = re.compile(r"^bytes=0-(\d+)$")

ProgressCallback = Callable[[int], Any]


# =============================================================================
# Models
# =============================================================================

@dataclass(frozen=True)
class UploadedVideo:
    """
    The video resource returned when an upload completes.

    Attributes:
        video_id: YouTube video id (the "v=" parameter of watch URLs).
        title: snippet.title as stored by YouTube.
        privacy_status: status.privacyStatus ("private", "unlisted", "public").
        raw: The complete decoded response.
    """
    video_id: str
    title: str
    privacy_status: str
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "UploadedVideo":
        """Build from a videos resource as returned by the API."""
        snippet = data.get("snippet") or {}
        status = data.get("status") or {}
        return cls(
            video_id=data.get("id", ""),
            title=snippet.get("title", ""),
            privacy_status=status.get("privacyStatus", ""),
            raw=data,
        )

    @property
    def url(self) -> str:
        return f"https://www.youtube.com/watch?v={self.video_id}"


@dataclass(frozen=True)
class ChunkDescriptor:
    """
    One span of the content sent in a single PUT.

    Attributes:
        offset: First byte of the span.
        length: Number of bytes in the span.
        is_final: True if the span ends at the last byte of the content.
    """
    offset: int
    length: int
    is_final: bool

    @property
    def end(self) -> int:
        """Last byte of the span (inclusive, as in Content-Range)."""
        return self.offset + self.length - 1

    @classmethod
    def plan(cls, offset: int, chunk_size: int, total_length: int) -> "ChunkDescriptor":
        """
        Describe the chunk starting at `offset`.

        Every chunk is chunk_size bytes except the last, which holds
        whatever remains.
        """
        end = min(offset + chunk_size, total_length) - 1
        return cls(offset=offset, length=end - offset + 1, is_final=end == total_length - 1)

    def content_range(self, total_length: int) -> str:
        return f"bytes {self.offset}-{self.end}/{total_length}"


# =============================================================================
# Session states
# =============================================================================

@dataclass(frozen=True)
class Idle:
    """No upload persisted."""


@dataclass(frozen=True)
class Initiating:
    """Initiation request in flight, nothing persisted yet."""


@dataclass(frozen=True)
class Transferring:
    """
    An upload is persisted.

    Attributes:
        record: The persisted session record.
        offset: Next byte to send, or None until the endpoint is probed.
    """
    record: SessionState
    offset: int | None


@dataclass(frozen=True)
class Completed:
    """The endpoint created the video. Terminal."""
    video: UploadedVideo


@dataclass(frozen=True)
class Failed:
    """The endpoint permanently rejected the upload. Terminal."""
    status_code: int | None
    detail: str


SessionStatus = Idle | Initiating | Transferring | Completed | Failed

# Allowed transitions, keyed by the current state's type
TRANSITIONS: dict[type, frozenset[type]] = {
    Idle: frozenset({Initiating}),
    Initiating: frozenset({Idle, Transferring, Failed}),
    Transferring: frozenset({Idle, Transferring, Completed, Failed}),
    Completed: frozenset(),
    Failed: frozenset(),
}


def parse_range_header(value: str | None) -> int:
    """
    Turn a "Range: bytes=0-<last>" response header into the next offset.

    Examples:
        parse_range_header("bytes=0-524287")   # 524288
        parse_range_header(None)               # 0, nothing received yet

    Raises:
        TransferError: If the header is present but not in that form.
    """
    if value is None:
        return 0
    match = _RANGE_HEADER.match(value.strip())
    if not match:
        raise TransferError(
            f"Unexpected Range header from upload endpoint: {value!r}",
            details={"range": value}
        )
    return int(match.group(1)) + 1


# =============================================================================
# Transfer session
# =============================================================================

class TransferSession:
    """
    State machine for one resumable upload.

    Attributes:
        chunk_size: Bytes per PUT. A positive multiple of 256 KiB.
        max_retries: Consecutive server errors tolerated before a run stops.
    """

    def __init__(
        self,
        store: SessionStateStore,
        http: requests.Session,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        upload_endpoint: str = DEFAULT_UPLOAD_ENDPOINT,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        content_type: str = DEFAULT_CONTENT_TYPE
    ) -> None:
        """
        Create the session and load any persisted upload.

        Args:
            store: Where the session record lives.
            http: Session carrying the YouTube bearer token.
            chunk_size: Bytes per PUT.
            upload_endpoint: Resumable videos.insert endpoint.
            timeout: Seconds before a single request is abandoned.
            max_retries: Consecutive server errors tolerated per run.
            content_type: Declared media type of the content.

        Raises:
            ValueError: If chunk_size is not a positive multiple of 256 KiB.
        """
        if chunk_size <= 0 or chunk_size % CHUNK_GRANULARITY != 0:
            raise ValueError(
                f"chunk_size must be a positive multiple of {CHUNK_GRANULARITY}, got {chunk_size}"
            )

        self._store = store
        self._http = http
        self.chunk_size = chunk_size
        self._upload_endpoint = upload_endpoint
        self._timeout = timeout
        self.max_retries = max_retries
        self._content_type = content_type

        self._source: ChunkSource | None = None
        # Set once a chunk read was started; the next run must rewind the source
        self._source_dirty = False

        record = store.load()
        self._state: SessionStatus = Transferring(record, None) if record else Idle()
        if record:
            logger.info(f"Found upload in progress for {record.source_descriptor}")

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionStatus:
        return self._state

    @property
    def in_progress(self) -> bool:
        """True while an upload is persisted and not yet terminal."""
        return isinstance(self._state, Transferring)

    @property
    def record(self) -> SessionState | None:
        return self._state.record if isinstance(self._state, Transferring) else None

    @property
    def total_length(self) -> int | None:
        record = self.record
        return record.total_length if record else None

    @property
    def source_descriptor(self) -> str | None:
        record = self.record
        return record.source_descriptor if record else None

    def _transition(self, new_state: SessionStatus) -> None:
        current = type(self._state)
        if type(new_state) not in TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Illegal upload state transition {current.__name__} -> "
                f"{type(new_state).__name__}",
                details={"from": current.__name__, "to": type(new_state).__name__}
            )
        self._state = new_state

    # -------------------------------------------------------------------------
    # Initiation
    # -------------------------------------------------------------------------

    def initialise(self, source: ChunkSource, metadata: dict[str, Any]) -> SessionState:
        """
        Create a resumable upload session and persist it.

        A state file that cannot be read is removed first; only a
        readable record blocks a new upload.

        Args:
            source: The content to upload.
            metadata: videos resource body, e.g.
                      {"snippet": {"title": ...}, "status": {"privacyStatus": ...}}

        Returns:
            The persisted record.

        Raises:
            UploadInProgressError: If an upload is already persisted.
            EmptySourceError: If the content is zero bytes long.
            TransferFailedError: If the endpoint rejects the initiation.
            TransportError: If the endpoint could not be reached.
            SessionStateError: If an unreadable state file cannot be removed.
        """
        self._store.discard_unreadable()
        if isinstance(self._state, Transferring) or self._store.exists():
            raise UploadInProgressError(
                "Upload already in progress",
                details={"state_file": str(self._store.path)}
            )

        self._transition(Initiating())
        try:
            record = self._initiate(source, metadata)
        except TransferFailedError as e:
            self._transition(Failed(e.status_code, e.body))
            raise
        except Exception:
            self._transition(Idle())
            raise

        self._transition(Transferring(record, 0))
        self._source = source
        self._source_dirty = False
        return record

    def _initiate(self, source: ChunkSource, metadata: dict[str, Any]) -> SessionState:
        total_length = source.size()
        if total_length <= 0:
            raise EmptySourceError(
                f"Refusing to upload empty content: {source.descriptor}",
                details={"source": source.descriptor}
            )

        logger.debug(f"Initiating upload of {source.descriptor} ({total_length} bytes)")
        headers = {
            "X-Upload-Content-Length": str(total_length),
            "X-Upload-Content-Type": self._content_type,
            "Content-Type": "application/json; charset=UTF-8",
        }
        try:
            response = self._http.post(
                self._upload_endpoint,
                params={"uploadType": "resumable", "part": "snippet,status"},
                headers=headers,
                data=json.dumps(metadata).encode("utf-8"),
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise TransportError(
                f"Initiating upload failed: {e}",
                details={"source": source.descriptor, "original_error": str(e)}
            ) from e

        location = response.headers.get("Location")
        if not 200 <= response.status_code < 300 or not location:
            log_transfer_failure(
                logger, source.descriptor, self._upload_endpoint,
                response.status_code, response.text
            )
            raise TransferFailedError(
                f"Initiating upload failed, status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
                details={"source": source.descriptor}
            )

        record = SessionState(
            upload_url=location,
            source_descriptor=source.descriptor,
            total_length=total_length,
        )
        self._store.save(record)
        logger.info(f"Upload session created for {source.descriptor}")
        return record

    # -------------------------------------------------------------------------
    # Transfer
    # -------------------------------------------------------------------------

    def upload(
        self,
        source: ChunkSource | None = None,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None
    ) -> UploadedVideo:
        """
        Send the remaining bytes and return the created video.

        Args:
            source: Content to read from. Defaults to the source given to
                    initialise(); required after a restart, and must have
                    the persisted descriptor.
            progress_callback: Called with the next offset before every
                               chunk and with the total on completion.
                               Its exceptions are ignored.
            cancel_event: When set, the run stops at the next blocking
                          point with TransferCancelledError.

        Returns:
            The UploadedVideo returned by the endpoint.

        Raises:
            InvalidTransitionError: If no upload is in progress.
            SessionStateError: If the source does not match the record.
            TransferFailedError: On permanent rejection (state removed).
            TransferError: When the run stops but can be resumed.
        """
        if not isinstance(self._state, Transferring):
            raise InvalidTransitionError(
                f"No upload in progress (state {type(self._state).__name__})",
                details={"state": type(self._state).__name__}
            )

        record = self._state.record
        if source is None:
            source = self._source
        if source is None:
            raise SessionStateError(
                f"Resuming the upload needs its source: {record.source_descriptor}",
                details={"source": record.source_descriptor}
            )
        if source.descriptor != record.source_descriptor:
            raise SessionStateError(
                f"Source {source.descriptor} does not match the upload in "
                f"progress ({record.source_descriptor})",
                details={"expected": record.source_descriptor, "got": source.descriptor}
            )
        if source is not self._source:
            self._source = source
            self._source_dirty = False

        return self._run(record, source, progress_callback, cancel_event)

    def abandon(self) -> SessionState:
        """
        Forget the upload in progress and remove the state file.

        The remote session is left to expire on its own.

        Raises:
            InvalidTransitionError: If no upload is in progress.
        """
        if not isinstance(self._state, Transferring):
            raise InvalidTransitionError(
                f"No upload in progress (state {type(self._state).__name__})",
                details={"state": type(self._state).__name__}
            )
        record = self._state.record
        self._store.clear()
        self._transition(Idle())
        self._source = None
        logger.warning(f"Abandoned upload of {record.source_descriptor}")
        return record

    def _run(
        self,
        record: SessionState,
        source: ChunkSource,
        progress_callback: ProgressCallback | None,
        cancel_event: threading.Event | None
    ) -> UploadedVideo:
        total = record.total_length

        status, response, offset = self._probe(record, cancel_event)
        if status is TransferStatus.COMPLETED:
            return self._complete(record, response, progress_callback)
        if status is TransferStatus.PERMANENT_FAILURE:
            self._fail(record, response, "Upload session rejected")

        if self._source_dirty:
            source.rewind(offset)
            self._source_dirty = False

        if offset > 0:
            logger.info(f"Resuming {record.source_descriptor}: {format_transfer_progress(offset, total)}")
        self._transition(Transferring(record, offset))

        server_errors = 0
        while offset < total:
            self._notify(progress_callback, offset)
            self._check_cancelled(cancel_event)

            chunk = ChunkDescriptor.plan(offset, self.chunk_size, total)
            body = source.read(chunk.offset, chunk.length)
            self._source_dirty = True
            if cancel_event is not None:
                body = CancellableReader(body, cancel_event)

            response = self._put(record, body, chunk.content_range(total))
            status = classify(response.status_code, final_chunk=chunk.is_final)

            if status is TransferStatus.COMPLETED:
                return self._complete(record, response, progress_callback)
            if status is TransferStatus.PERMANENT_FAILURE:
                self._fail(record, response, "Uploading chunk failed")

            if is_server_error(response.status_code):
                server_errors += 1
                if server_errors > self.max_retries:
                    raise TransferError(
                        f"Giving up after {self.max_retries} server errors, "
                        f"last status {response.status_code}",
                        details={"upload_url": record.upload_url, "offset": offset}
                    )
                delay = calculate_backoff(server_errors - 1)
                logger.warning(
                    f"Server error {response.status_code} at byte {offset}, "
                    f"retrying in {delay:.1f}s"
                )
                time.sleep(delay)

                status, response, acknowledged = self._probe(record, cancel_event)
                if status is TransferStatus.COMPLETED:
                    return self._complete(record, response, progress_callback)
                if status is TransferStatus.PERMANENT_FAILURE:
                    self._fail(record, response, "Upload session rejected")
            else:
                server_errors = 0
                acknowledged = chunk.end + 1
                if "Range" in response.headers:
                    acknowledged = parse_range_header(response.headers["Range"])

            if acknowledged != chunk.end + 1:
                logger.debug(
                    f"Endpoint holds {acknowledged} bytes after sending up to "
                    f"{chunk.end + 1}, rewinding"
                )
                source.rewind(acknowledged)
            self._source_dirty = False

            offset = acknowledged
            self._transition(Transferring(record, offset))
            logger.debug(format_transfer_progress(offset, total))

        # Every byte was acknowledged without the video being returned
        status, response, _ = self._probe(record, cancel_event)
        if status is TransferStatus.COMPLETED:
            return self._complete(record, response, progress_callback)
        if status is TransferStatus.PERMANENT_FAILURE:
            self._fail(record, response, "Upload session rejected")
        raise TransferError(
            f"All {total} bytes sent but the upload did not complete "
            f"(status {response.status_code})",
            details={"upload_url": record.upload_url, "status_code": response.status_code}
        )

    def _probe(
        self,
        record: SessionState,
        cancel_event: threading.Event | None
    ) -> tuple[TransferStatus, requests.Response, int]:
        """
        Ask the endpoint how many bytes it holds.

        Server errors are retried with backoff here, so the returned
        status is never a server error.

        Returns:
            (status, response, next offset to send)
        """
        attempt = 0
        while True:
            self._check_cancelled(cancel_event)
            response = self._put(record, b"", f"bytes */{record.total_length}")
            if not is_server_error(response.status_code):
                break

            attempt += 1
            if attempt > self.max_retries:
                raise TransferError(
                    f"Upload status check failed {attempt} times, "
                    f"last status {response.status_code}",
                    details={"upload_url": record.upload_url}
                )
            delay = calculate_backoff(attempt - 1)
            logger.warning(
                f"Server error {response.status_code} on status check, "
                f"retrying in {delay:.1f}s"
            )
            time.sleep(delay)

        status = classify(response.status_code)
        offset = 0
        if status is TransferStatus.RESUMABLE:
            offset = parse_range_header(response.headers.get("Range"))
            if offset > record.total_length:
                raise TransferError(
                    f"Endpoint acknowledged {offset} bytes of {record.total_length}",
                    details={"upload_url": record.upload_url, "offset": offset}
                )
        return status, response, offset

    def _put(self, record: SessionState, body: Any, content_range: str) -> requests.Response:
        try:
            return self._http.put(
                record.upload_url,
                data=body,
                headers={"Content-Range": content_range},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise TransportError(
                f"Upload request failed: {e}",
                details={
                    "upload_url": record.upload_url,
                    "content_range": content_range,
                    "original_error": str(e),
                }
            ) from e

    def _complete(
        self,
        record: SessionState,
        response: requests.Response,
        progress_callback: ProgressCallback | None
    ) -> UploadedVideo:
        self._store.clear()
        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Upload of {record.source_descriptor} completed with an undecodable response")
            data = {}
        video = UploadedVideo.from_api(data if isinstance(data, dict) else {})

        self._transition(Completed(video))
        self._source = None
        self._notify(progress_callback, record.total_length)
        logger.info(f"Upload of {record.source_descriptor} completed: {video.video_id}")
        return video

    def _fail(self, record: SessionState, response: requests.Response, what: str) -> None:
        self._store.clear()
        log_transfer_failure(
            logger, record.source_descriptor, record.upload_url,
            response.status_code, response.text
        )
        self._transition(Failed(response.status_code, response.text))
        self._source = None
        raise TransferFailedError(
            f"{what}, status {response.status_code}",
            status_code=response.status_code,
            body=response.text,
            details={"upload_url": record.upload_url, "source": record.source_descriptor}
        )

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise TransferCancelledError("Upload cancelled")

    @staticmethod
    def _notify(progress_callback: ProgressCallback | None, offset: int) -> None:
        if progress_callback is None:
            return
        try:
            progress_callback(offset)
        except Exception as e:
            logger.debug(f"Progress callback failed: {e}")
