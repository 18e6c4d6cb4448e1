"""Test chunk sources"""

import io
import json
from unittest.mock import Mock

import pytest
import requests

from conftest import FakeResponse
from tube_publisher.core.exceptions import ChunkSourceError, ContiguityError, TransportError
from tube_publisher.transfer.sources import (
    DROPBOX_DOWNLOAD_API,
    DROPBOX_METADATA_API,
    DropboxSource,
    GoogleDriveSource,
    LocalFileSource,
    open_source,
)

DATA = bytes(range(256)) * 40  # 10240 bytes


def ranged_response(offset, status=206):
    """A streaming download starting at offset"""
    return FakeResponse(status, raw=io.BytesIO(DATA[offset:]))


@pytest.fixture
def drive_http():
    http = Mock(spec=requests.Session)
    http.get.side_effect = lambda url, params=None, headers=None, stream=False, timeout=None: (
        ranged_response(int(headers["Range"][len("bytes="):-1]))
        if params.get("alt") == "media"
        else FakeResponse(200, body={"size": str(len(DATA))})
    )
    return http


class TestLocalFileSource:
    """Test random access on local files"""

    def test_size_and_read(self, make_local_source):
        source = make_local_source(1000)

        assert source.size() == 1000
        assert source.read(100, 50).read() == bytes(i % 251 for i in range(100, 150))

    def test_random_access(self, make_local_source):
        """Any offset is legal, in any order"""
        source = make_local_source(1000)

        late = source.read(900, 100).read()
        early = source.read(0, 10).read()

        assert late == bytes(i % 251 for i in range(900, 1000))
        assert early == bytes(i % 251 for i in range(10))

    def test_read_past_end(self, make_local_source):
        source = make_local_source(100)

        with pytest.raises(ChunkSourceError):
            source.read(90, 20)

    def test_missing_file(self, temp_dir):
        source = LocalFileSource(str(temp_dir / "nope.mp4"))

        with pytest.raises(ChunkSourceError):
            source.size()

    def test_context_manager_closes(self, make_local_source):
        with make_local_source(10) as source:
            source.read(0, 10).read()
        assert source._file is None


class TestGoogleDriveSource:
    """Test the sequential ranged download"""

    def test_size(self, drive_http):
        source = GoogleDriveSource("file123", drive_http)

        assert source.size() == len(DATA)
        url = drive_http.get.call_args[0][0]
        assert url.endswith("/drive/v3/files/file123")
        assert drive_http.get.call_args[1]["params"]["fields"] == "size"

    def test_contiguous_reads_share_one_connection(self, drive_http):
        source = GoogleDriveSource("file123", drive_http)

        first = source.read(0, 4096).read()
        second = source.read(4096, 4096).read()

        assert first + second == DATA[:8192]
        assert drive_http.get.call_count == 1
        assert drive_http.get.call_args[1]["headers"]["Range"] == "bytes=0-"
        assert drive_http.get.call_args[1]["headers"]["Accept-Encoding"] == "identity"
        assert drive_http.get.call_args[1]["stream"] is True

    def test_first_read_opens_at_offset(self, drive_http):
        """A resumed upload starts the download at the resume offset"""
        source = GoogleDriveSource("file123", drive_http)

        assert source.read(5000, 100).read() == DATA[5000:5100]
        assert drive_http.get.call_args[1]["headers"]["Range"] == "bytes=5000-"

    def test_non_contiguous_read_raises(self, drive_http):
        source = GoogleDriveSource("file123", drive_http)
        source.read(0, 100).read()

        with pytest.raises(ContiguityError):
            source.read(200, 100)

    def test_unconsumed_chunk_raises(self, drive_http):
        source = GoogleDriveSource("file123", drive_http)
        source.read(0, 100).read(50)

        with pytest.raises(ContiguityError):
            source.read(100, 100)

    def test_rewind_reopens(self, drive_http):
        source = GoogleDriveSource("file123", drive_http)
        source.read(0, 4096).read()
        first_response = source._response

        source.rewind(1024)
        data = source.read(1024, 100).read()

        assert data == DATA[1024:1124]
        assert first_response.closed
        assert drive_http.get.call_count == 2
        assert drive_http.get.call_args[1]["headers"]["Range"] == "bytes=1024-"

    def test_read_after_rewind_must_match(self, drive_http):
        source = GoogleDriveSource("file123", drive_http)
        source.rewind(1024)

        with pytest.raises(ContiguityError):
            source.read(0, 100)

    def test_error_status(self):
        http = Mock(spec=requests.Session)
        http.get.return_value = FakeResponse(404, body=b'{"error": "notFound"}')
        source = GoogleDriveSource("file123", http)

        with pytest.raises(ChunkSourceError):
            source.read(0, 10)

    def test_range_ignored(self):
        """200 to a ranged request past zero means the server sent the whole file"""
        http = Mock(spec=requests.Session)
        http.get.return_value = ranged_response(0, status=200)
        source = GoogleDriveSource("file123", http)

        with pytest.raises(ChunkSourceError):
            source.read(100, 10)

    def test_encoded_download_rejected(self):
        http = Mock(spec=requests.Session)
        response = ranged_response(0)
        response.headers["Content-Encoding"] = "gzip"
        http.get.return_value = response
        source = GoogleDriveSource("file123", http)

        with pytest.raises(ChunkSourceError):
            source.read(0, 10)
        assert response.closed

    def test_network_failure(self):
        http = Mock(spec=requests.Session)
        http.get.side_effect = requests.ConnectionError("reset")
        source = GoogleDriveSource("file123", http)

        with pytest.raises(TransportError):
            source.read(0, 10)
        with pytest.raises(TransportError):
            source.size()


class TestDropboxSource:
    """Test the Dropbox calls"""

    def test_size_from_metadata(self):
        http = Mock(spec=requests.Session)
        http.post.return_value = FakeResponse(200, body={".tag": "file", "size": 12345})
        source = DropboxSource("/videos/day-01.mp4", http)

        assert source.size() == 12345
        assert http.post.call_args[0][0] == DROPBOX_METADATA_API
        assert http.post.call_args[1]["json"] == {
            "path": "/videos/day-01.mp4",
            "include_deleted": True,
        }

    def test_folder_is_rejected(self):
        http = Mock(spec=requests.Session)
        http.post.return_value = FakeResponse(200, body={".tag": "folder"})

        with pytest.raises(ChunkSourceError):
            DropboxSource("/videos", http).size()

    def test_download_headers(self):
        http = Mock(spec=requests.Session)
        http.post.return_value = ranged_response(2048)
        source = DropboxSource("/videos/day-01.mp4", http)

        assert source.read(2048, 10).read() == DATA[2048:2058]
        assert http.post.call_args[0][0] == DROPBOX_DOWNLOAD_API
        headers = http.post.call_args[1]["headers"]
        assert json.loads(headers["Dropbox-API-Arg"]) == {"path": "/videos/day-01.mp4"}
        assert headers["Range"] == "bytes=2048-"
        assert headers["Accept-Encoding"] == "identity"


class TestOpenSource:
    """Test backend selection"""

    def test_backends(self):
        http = Mock(spec=requests.Session)

        assert isinstance(open_source("local", "/tmp/x.mp4"), LocalFileSource)
        assert isinstance(open_source("drive", "id", http), GoogleDriveSource)
        assert isinstance(open_source("dropbox", "/x.mp4", http), DropboxSource)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            open_source("s3", "bucket/key")

    def test_cloud_needs_http(self):
        with pytest.raises(ValueError):
            open_source("drive", "id")
