"""
Chunk sources: where the bytes of an upload come from.

A ChunkSource answers two questions for the transfer loop: how long is
the content, and what are the bytes in [offset, offset + length). Three
backends exist:

    LocalFileSource     - a file on disk, random access
    GoogleDriveSource   - a Drive file, streamed with one ranged download
    DropboxSource       - a Dropbox file, streamed with one ranged download

Remote sources open a single GET with "Range: bytes=<offset>-" at the
first read and then serve consecutive chunks from that one response. A
read that does not start exactly where the previous one ended raises
ContiguityError: providers bill per connection, and random access would
mean one download per chunk. When the transfer loop genuinely has to
move (the endpoint acknowledged fewer bytes than were sent), it calls
rewind(), which is the only way to open a second connection.

Usage:
    with open_source("drive", file_id, http=drive_http) as source:
        total = source.size()
        body = source.read(0, 16 * MIB)        # BoundedChunkReader
        http.put(upload_url, data=body, ...)
"""

import json
import os
from abc import ABC, abstractmethod
from typing import BinaryIO

import requests

from tube_publisher.core.exceptions import (
    ChunkSourceError,
    ContiguityError,
    TransportError,
)
from tube_publisher.core.logger import get_logger
from tube_publisher.transfer.reader import BoundedChunkReader

logger = get_logger(__name__)


DRIVE_FILES_API = "https://www.googleapis.com/drive/v3/files"
DROPBOX_METADATA_API = "https://api.dropboxapi.com/2/files/get_metadata"
DROPBOX_DOWNLOAD_API = "https://content.dropboxapi.com/2/files/download"

DEFAULT_TIMEOUT = 300.0


class ChunkSource(ABC):
    """
    Capability interface over a byte-addressable input.

    Attributes:
        descriptor: Opaque identifier of the content, persisted in the
                    session state so a restarted process can reopen it.
        kind: Backend name used by open_source().
    """

    kind = ""

    def __init__(self, descriptor: str) -> None:
        self.descriptor = descriptor

    @abstractmethod
    def size(self) -> int:
        """Total content length in bytes."""

    @abstractmethod
    def read(self, offset: int, length: int) -> BoundedChunkReader:
        """
        Return a stream delivering exactly the bytes [offset, offset + length).

        Raises:
            ChunkSourceError: If the bytes cannot be provided.
        """

    def rewind(self, offset: int) -> None:
        """
        Allow the next read() to start at `offset`.

        Random-access sources need nothing; remote sources drop their
        connection and open a new one on the next read.
        """

    def close(self) -> None:
        """Release any handle or connection held by the source."""

    def __enter__(self) -> "ChunkSource":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.descriptor!r})"


# =============================================================================
# Local files
# =============================================================================

class LocalFileSource(ChunkSource):
    """
    A file on the local disk. Any offset and length within the file is legal.
    """

    kind = "local"

    def __init__(self, path: str) -> None:
        super().__init__(path)
        self._file: BinaryIO | None = None

    def _handle(self) -> BinaryIO:
        if self._file is None:
            try:
                self._file = open(self.descriptor, "rb")
            except OSError as e:
                raise ChunkSourceError(
                    f"Cannot open {self.descriptor}: {e}",
                    details={"path": self.descriptor, "original_error": str(e)}
                ) from e
        return self._file

    def size(self) -> int:
        try:
            return os.stat(self.descriptor).st_size
        except OSError as e:
            raise ChunkSourceError(
                f"Cannot stat {self.descriptor}: {e}",
                details={"path": self.descriptor, "original_error": str(e)}
            ) from e

    def read(self, offset: int, length: int) -> BoundedChunkReader:
        if offset < 0 or length < 0 or offset + length > self.size():
            raise ChunkSourceError(
                f"Range {offset}+{length} is outside {self.descriptor}",
                details={"path": self.descriptor, "offset": offset, "length": length}
            )
        handle = self._handle()
        handle.seek(offset)
        return BoundedChunkReader(handle, length)

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None


# =============================================================================
# Remote range-fetch sources
# =============================================================================

class RemoteRangeSource(ChunkSource):
    """
    Base class for cloud files read through one sequential ranged download.

    Subclasses only describe the HTTP calls: _fetch_size() and
    _request_range(offset). Everything about contiguity lives here.

    Attributes:
        position: Offset the next read() must start at, or None before
                  the first read (any offset is accepted then).
    """

    def __init__(
        self,
        descriptor: str,
        http: requests.Session,
        timeout: float = DEFAULT_TIMEOUT
    ) -> None:
        """
        Args:
            descriptor: Provider identifier of the file.
            http: Session already carrying the provider's bearer token.
            timeout: Seconds before a stalled request is abandoned.
        """
        super().__init__(descriptor)
        self._http = http
        self._timeout = timeout
        self._size: int | None = None
        self._response: requests.Response | None = None
        self._current: BoundedChunkReader | None = None
        self.position: int | None = None

    @abstractmethod
    def _fetch_size(self) -> int:
        pass

    @abstractmethod
    def _request_range(self, offset: int) -> requests.Response:
        """Start the download at `offset`; must be called with stream=True."""

    @staticmethod
    def _range_headers(offset: int) -> dict[str, str]:
        # Byte ranges address the encoded body, so ask for it unencoded
        return {"Range": f"bytes={offset}-", "Accept-Encoding": "identity"}

    def size(self) -> int:
        if self._size is None:
            try:
                self._size = self._fetch_size()
            except requests.RequestException as e:
                raise TransportError(
                    f"Getting size of {self.descriptor} failed: {e}",
                    details={"descriptor": self.descriptor, "original_error": str(e)}
                ) from e
        return self._size

    def read(self, offset: int, length: int) -> BoundedChunkReader:
        if self._response is not None:
            if self._current is not None and not self._current.exhausted:
                raise ContiguityError(
                    f"Previous chunk of {self.descriptor} was not fully consumed "
                    f"({self._current.remaining} bytes left)",
                    details={"descriptor": self.descriptor, "offset": offset}
                )
            if offset != self.position:
                raise ContiguityError(
                    f"Non-contiguous read of {self.descriptor}: requested offset "
                    f"{offset}, stream is at {self.position}",
                    details={
                        "descriptor": self.descriptor,
                        "offset": offset,
                        "expected": self.position,
                    }
                )
        elif self.position is not None and offset != self.position:
            raise ContiguityError(
                f"Non-contiguous read of {self.descriptor}: requested offset "
                f"{offset}, rewound to {self.position}",
                details={"descriptor": self.descriptor, "offset": offset, "expected": self.position}
            )

        if self._response is None:
            self._open(offset)

        self._current = BoundedChunkReader(self._response.raw, length)
        self.position = offset + length
        return self._current

    def rewind(self, offset: int) -> None:
        logger.warning(f"Reopening download of {self.descriptor} at byte {offset}")
        self._drop_connection()
        self.position = offset

    def close(self) -> None:
        self._drop_connection()

    def _drop_connection(self) -> None:
        if self._response is not None:
            self._response.close()
        self._response = None
        self._current = None

    def _open(self, offset: int) -> None:
        logger.debug(f"Opening download of {self.descriptor} at byte {offset}")
        try:
            response = self._request_range(offset)
        except requests.RequestException as e:
            raise TransportError(
                f"Starting download of {self.descriptor} failed: {e}",
                details={"descriptor": self.descriptor, "offset": offset, "original_error": str(e)}
            ) from e

        if response.status_code not in (200, 206) or (response.status_code == 200 and offset > 0):
            # 200 for a ranged request means the Range header was ignored
            body = response.text
            response.close()
            raise ChunkSourceError(
                f"Download of {self.descriptor} failed, status {response.status_code}",
                details={"descriptor": self.descriptor, "offset": offset, "body": body}
            )

        encoding = response.headers.get("Content-Encoding", "identity")
        if encoding != "identity":
            response.close()
            raise ChunkSourceError(
                f"Download of {self.descriptor} came back {encoding}-encoded",
                details={"descriptor": self.descriptor, "offset": offset, "encoding": encoding}
            )

        self._response = response


class GoogleDriveSource(RemoteRangeSource):
    """
    A Google Drive file, addressed by file id.
    """

    kind = "drive"

    def _fetch_size(self) -> int:
        response = self._http.get(
            f"{DRIVE_FILES_API}/{self.descriptor}",
            params={"fields": "size", "supportsAllDrives": "true"},
            timeout=self._timeout,
        )
        if response.status_code != 200:
            raise ChunkSourceError(
                f"Getting size of Drive file {self.descriptor} failed, "
                f"status {response.status_code}",
                details={"descriptor": self.descriptor, "body": response.text}
            )
        size = response.json().get("size")
        if size is None:
            raise ChunkSourceError(
                f"Drive file {self.descriptor} has no size (is it a Google Doc?)",
                details={"descriptor": self.descriptor}
            )
        return int(size)

    def _request_range(self, offset: int) -> requests.Response:
        return self._http.get(
            f"{DRIVE_FILES_API}/{self.descriptor}",
            params={"alt": "media", "supportsAllDrives": "true"},
            headers=self._range_headers(offset),
            stream=True,
            timeout=self._timeout,
        )


class DropboxSource(RemoteRangeSource):
    """
    A Dropbox file, addressed by path or "id:..." identifier.
    """

    kind = "dropbox"

    def _fetch_size(self) -> int:
        response = self._http.post(
            DROPBOX_METADATA_API,
            json={"path": self.descriptor, "include_deleted": True},
            timeout=self._timeout,
        )
        if response.status_code != 200:
            raise ChunkSourceError(
                f"Getting Dropbox metadata for {self.descriptor} failed, "
                f"status {response.status_code}",
                details={"descriptor": self.descriptor, "body": response.text}
            )
        metadata = response.json()
        if metadata.get(".tag") != "file":
            raise ChunkSourceError(
                f"Dropbox entry {self.descriptor} is not a file",
                details={"descriptor": self.descriptor, "tag": metadata.get(".tag")}
            )
        return int(metadata["size"])

    def _request_range(self, offset: int) -> requests.Response:
        return self._http.post(
            DROPBOX_DOWNLOAD_API,
            headers={
                "Dropbox-API-Arg": json.dumps({"path": self.descriptor}),
                **self._range_headers(offset),
            },
            stream=True,
            timeout=self._timeout,
        )


SOURCE_TYPES: dict[str, type[ChunkSource]] = {
    LocalFileSource.kind: LocalFileSource,
    GoogleDriveSource.kind: GoogleDriveSource,
    DropboxSource.kind: DropboxSource,
}


def open_source(
    kind: str,
    descriptor: str,
    http: requests.Session | None = None,
    timeout: float = DEFAULT_TIMEOUT
) -> ChunkSource:
    """
    Build the ChunkSource for a storage backend.

    Args:
        kind: "local", "drive" or "dropbox".
        descriptor: Path or cloud identifier of the content.
        http: Authorized session for cloud backends (ignored for local).
        timeout: Request timeout for cloud backends.

    Raises:
        ValueError: For an unknown backend, or a cloud backend without http.
    """
    if kind not in SOURCE_TYPES:
        raise ValueError(f"Unknown storage backend: {kind}")

    if kind == LocalFileSource.kind:
        return LocalFileSource(descriptor)

    if http is None:
        raise ValueError(f"The {kind} backend needs an authorized HTTP session")

    return SOURCE_TYPES[kind](descriptor, http, timeout)
