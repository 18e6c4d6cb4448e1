"""Test chunk body readers"""

import io
import threading

import pytest
from requests.utils import super_len

from tube_publisher.core.exceptions import ChunkSourceError, TransferCancelledError
from tube_publisher.transfer.reader import BoundedChunkReader, CancellableReader

MIB = 1024 * 1024


class TrickleStream:
    """Returns at most `step` bytes per read, like a network socket"""

    def __init__(self, data, step):
        self._buffer = io.BytesIO(data)
        self._step = step

    def read(self, size=-1):
        if size is None or size < 0:
            size = self._step
        return self._buffer.read(min(size, self._step))


class TestBoundedChunkReader:
    """Test the byte cap"""

    def test_caps_at_limit(self):
        """10 MiB underneath, 4 MiB out, then end-of-stream"""
        stream = io.BytesIO(b"x" * (10 * MIB))
        reader = BoundedChunkReader(stream, 4 * MIB)

        data = reader.read()

        assert len(data) == 4 * MIB
        assert reader.read() == b""
        assert reader.read(100) == b""
        assert reader.exhausted
        # The rest of the stream is untouched for the next chunk
        assert stream.tell() == 4 * MIB

    def test_caps_with_small_reads(self):
        """Short reads from the underlying stream do not change the total"""
        data = bytes(range(256)) * 4096
        reader = BoundedChunkReader(TrickleStream(data, 1000), 300_000)

        parts = []
        while True:
            part = reader.read(64 * 1024)
            if not part:
                break
            parts.append(part)

        assert b"".join(parts) == data[:300_000]
        assert reader.remaining == 0

    def test_consecutive_readers_slice_one_stream(self):
        stream = io.BytesIO(b"abcdefghij")
        first = BoundedChunkReader(stream, 4)
        second = BoundedChunkReader(stream, 6)

        assert first.read() == b"abcd"
        assert second.read() == b"efghij"

    def test_premature_end_raises(self):
        reader = BoundedChunkReader(io.BytesIO(b"short"), 10)

        with pytest.raises(ChunkSourceError):
            reader.read()

    def test_length_and_tell(self):
        """requests sizes the body from __len__ and tell()"""
        reader = BoundedChunkReader(io.BytesIO(b"x" * 100), 40)

        assert len(reader) == 40
        assert reader.tell() == 0
        assert super_len(reader) == 40

        reader.read(15)
        assert reader.tell() == 15
        assert reader.remaining == 25

    def test_negative_limit(self):
        with pytest.raises(ValueError):
            BoundedChunkReader(io.BytesIO(b""), -1)


class TestCancellableReader:
    """Test cancellation while a body is streaming"""

    def test_reads_until_cancelled(self):
        event = threading.Event()
        reader = CancellableReader(BoundedChunkReader(io.BytesIO(b"x" * 100), 100), event)

        assert reader.read(10) == b"x" * 10
        event.set()

        with pytest.raises(TransferCancelledError):
            reader.read(10)

    def test_proxies_size(self):
        inner = BoundedChunkReader(io.BytesIO(b"x" * 100), 60)
        reader = CancellableReader(inner, threading.Event())

        assert len(reader) == 60
        assert super_len(reader) == 60
