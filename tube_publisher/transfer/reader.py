"""
Stream decorators used to feed chunk bodies to the HTTP client.

BoundedChunkReader slices a long-lived stream into upload-chunk-sized
pieces: it delivers exactly `limit` bytes and then reports end-of-stream,
whatever the underlying stream still holds. A remote download opened
once at the resume offset can therefore be PUT chunk by chunk without
buffering the object in memory, and without the download knowing
anything about chunks.

Both readers expose __len__ and tell() so requests computes a
Content-Length for them instead of falling back to chunked encoding,
which the resumable endpoint does not accept.

Usage:
    stream = response.raw                      # a 2 GB download
    first = BoundedChunkReader(stream, 16 * MIB)
    http.put(url, data=first, headers=...)     # sends exactly 16 MiB
    second = BoundedChunkReader(stream, 16 * MIB)
    ...
"""

import threading
from typing import BinaryIO, Protocol

from tube_publisher.core.exceptions import ChunkSourceError, TransferCancelledError


class ByteStream(Protocol):
    """Anything with a binary read(size) method."""

    def read(self, size: int = -1) -> bytes:
        ...


class BoundedChunkReader:
    """
    Caps a byte stream at exactly `limit` bytes.

    Attributes:
        limit: Number of bytes this reader delivers.
        delivered: Bytes returned so far.

    Raises (from read):
        ChunkSourceError: If the underlying stream ends before `limit`
                          bytes were delivered. A short body would make
                          the declared Content-Range a lie.
    """

    # Block size used when read() is asked for everything
    READ_BLOCK_SIZE = 1024 * 1024

    def __init__(self, stream: ByteStream | BinaryIO, limit: int) -> None:
        if limit < 0:
            raise ValueError(f"limit must be non-negative, got {limit}")
        self._stream = stream
        self.limit = limit
        self.delivered = 0

    @property
    def remaining(self) -> int:
        """Bytes still to be delivered before end-of-stream."""
        return self.limit - self.delivered

    @property
    def exhausted(self) -> bool:
        return self.delivered >= self.limit

    def readable(self) -> bool:
        return True

    def tell(self) -> int:
        return self.delivered

    def __len__(self) -> int:
        return self.limit

    def read(self, size: int | None = -1) -> bytes:
        """
        Read up to `size` bytes, never past the limit.

        Args:
            size: Maximum bytes to return. None or negative reads
                  everything that remains.

        Returns:
            The bytes read; b"" once the limit is reached.
        """
        if size is None or size < 0:
            parts = []
            while not self.exhausted:
                parts.append(self.read(self.READ_BLOCK_SIZE))
            return b"".join(parts)

        wanted = min(size, self.remaining)
        if wanted == 0:
            return b""

        data = self._stream.read(wanted)
        if not data:
            raise ChunkSourceError(
                f"Stream ended after {self.delivered} of {self.limit} bytes",
                details={"delivered": self.delivered, "limit": self.limit}
            )

        # Some streams ignore the size hint
        if len(data) > wanted:
            raise ChunkSourceError(
                f"Stream returned {len(data)} bytes for a {wanted} byte read",
                details={"delivered": self.delivered, "limit": self.limit}
            )

        self.delivered += len(data)
        return data


class CancellableReader:
    """
    Raises TransferCancelledError from read() once `event` is set.

    Wraps a chunk body so that cancellation is observed while the HTTP
    client is still streaming it, not only between chunks.
    """

    def __init__(self, stream: BoundedChunkReader, event: threading.Event) -> None:
        self._stream = stream
        self._event = event

    def readable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._stream.tell()

    def __len__(self) -> int:
        return len(self._stream)

    def read(self, size: int | None = -1) -> bytes:
        if self._event.is_set():
            raise TransferCancelledError(
                "Upload cancelled while sending a chunk",
                details={"chunk_bytes_sent": self._stream.tell()}
            )
        return self._stream.read(size)
