"""Test configuration and fixtures"""

import io
import json
import tempfile
from pathlib import Path

import pytest
from requests.structures import CaseInsensitiveDict

from tube_publisher.core.exceptions import PlaylistError
from tube_publisher.playlist.models import PlaylistItem
from tube_publisher.transfer.sources import LocalFileSource
from tube_publisher.transfer.state import SessionStateStore

KIB = 1024
CHUNK = 256 * KIB
UPLOAD_URL = "https://upload.example/upload/youtube/v3/videos?uploadType=resumable&upload_id=xyz"


class FakeResponse:
    """Just enough of requests.Response for the code under test"""

    def __init__(self, status_code=200, headers=None, body=b"", raw=None):
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {})
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode("utf-8")
        self.content = body
        self.raw = raw if raw is not None else io.BytesIO(body)
        self.closed = False

    @property
    def text(self):
        return self.content.decode("utf-8", errors="replace")

    def json(self):
        return json.loads(self.content)

    def close(self):
        self.closed = True


class FakeUploadServer:
    """
    In-memory resumable upload endpoint, used in place of requests.Session.

    Chunk PUTs are checked to start exactly at the stored length. Scripted
    responses in `chunk_script` (status, store_body) are used FIFO for
    chunk PUTs before normal processing; `probe_script` does the same for
    status probes. A requests exception in either script is raised.
    """

    def __init__(self, video=None):
        self.video = video or {
            "id": "dQw4w9WgXcQ",
            "snippet": {"title": "Test Video"},
            "status": {"privacyStatus": "private"},
        }
        self.received = bytearray()
        self.total = None
        self.initiate_status = 200
        self.final_status = 201
        self.chunk_script = []
        self.probe_script = []
        self.posts = []
        self.puts = []

    def post(self, url, params=None, headers=None, data=None, timeout=None):
        self.posts.append({"url": url, "params": params, "headers": headers, "data": data})
        if self.initiate_status != 200:
            return FakeResponse(self.initiate_status, body=b'{"error": "nope"}')
        self.total = int(headers["X-Upload-Content-Length"])
        return FakeResponse(200, headers={"Location": UPLOAD_URL})

    def put(self, url, data=None, headers=None, timeout=None):
        content_range = headers["Content-Range"]
        self.puts.append(content_range)
        spec, total = content_range[len("bytes "):].split("/")
        self.total = int(total)

        if spec == "*":
            if self.probe_script:
                return self._scripted(self.probe_script.pop(0), None)
            return self._state_response(probe=True)

        start, end = (int(x) for x in spec.split("-"))
        body = data.read() if hasattr(data, "read") else data
        assert len(body) == end - start + 1, "body does not match Content-Range"

        if self.chunk_script:
            return self._scripted(self.chunk_script.pop(0), (start, body))

        if start != len(self.received):
            return FakeResponse(400, body=b'{"error": "bad offset"}')
        self.received.extend(body)
        return self._state_response(probe=False)

    def _scripted(self, entry, chunk):
        if isinstance(entry, Exception):
            raise entry
        status, store = entry
        if store and chunk is not None and chunk[0] == len(self.received):
            self.received.extend(chunk[1])
        return FakeResponse(status, body=b'{"error": "scripted"}')

    def _state_response(self, probe):
        if self.total is not None and len(self.received) == self.total:
            status = 201 if probe else self.final_status
            return FakeResponse(status, body=self.video)
        headers = {}
        if self.received:
            headers["Range"] = f"bytes=0-{len(self.received) - 1}"
        return FakeResponse(308, headers=headers)


class FakePlaylistService:
    """In-memory PlaylistService recording every call"""

    def __init__(self, playlists=None):
        self.playlists = {pid: list(ids) for pid, ids in (playlists or {}).items()}
        self.calls = []
        self.fail_on = set()
        self._counter = 0

    def _items(self, playlist_id):
        return [
            PlaylistItem(item_id=f"{playlist_id}:{i}:{vid}", video_id=vid, position=i, playlist_id=playlist_id)
            for i, vid in enumerate(self.playlists[playlist_id])
        ]

    def list_items(self, playlist_id):
        self.calls.append(("list", playlist_id))
        return self._items(playlist_id)

    def delete_item(self, item_id):
        self.calls.append(("delete", item_id))
        if "delete" in self.fail_on:
            raise PlaylistError("delete failed", status_code=403)
        playlist_id, index, _ = item_id.split(":")
        # Item ids are positional in this fake, so delete by marker
        self.playlists[playlist_id][int(index)] = None

    def _compact(self, playlist_id):
        self.playlists[playlist_id] = [v for v in self.playlists[playlist_id] if v is not None]

    def insert_item(self, playlist_id, video_id):
        self._compact(playlist_id)
        self.calls.append(("insert", video_id))
        if "insert" in self.fail_on:
            raise PlaylistError("insert failed", status_code=404)
        self._counter += 1
        self.playlists[playlist_id].append(video_id)
        return PlaylistItem(
            item_id=f"new-{self._counter}",
            video_id=video_id,
            position=len(self.playlists[playlist_id]) - 1,
            playlist_id=playlist_id,
        )

    def update_item_position(self, item, position):
        self.calls.append(("update", item.video_id, position))
        if "update" in self.fail_on:
            raise PlaylistError("update failed", status_code=500)
        ids = self.playlists[item.playlist_id]
        ids.pop(item.position)
        ids.insert(position, item.video_id)

    def contents(self, playlist_id):
        self._compact(playlist_id)
        return self.playlists[playlist_id]


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def state_store(temp_dir):
    """Session state store inside the temp dir"""
    return SessionStateStore(temp_dir / "state" / "uploader-state.json")


@pytest.fixture
def upload_server():
    return FakeUploadServer()


@pytest.fixture
def make_local_source(temp_dir):
    """Factory writing `size` deterministic bytes to a file and opening it"""
    sources = []

    def factory(size, name="video.mp4"):
        path = temp_dir / name
        path.write_bytes(bytes(i % 251 for i in range(size)))
        source = LocalFileSource(str(path))
        sources.append(source)
        return source

    yield factory

    for source in sources:
        source.close()


@pytest.fixture
def playlist_service():
    return FakePlaylistService()
