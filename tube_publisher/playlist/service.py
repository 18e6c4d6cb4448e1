"""
Playlist API access.

PlaylistService is the seam between the reconciler and YouTube: four
calls over playlist items, nothing else. YouTubePlaylistService
implements it with plain requests against the Data API v3; tests use an
in-memory fake.

API Details:
    - Listing is paged, 50 items per page (the API maximum)
    - Inserting ignores any requested position, so placing a new item
      takes an insert followed by an update of its position
    - Errors come back as JSON error documents with a 4xx/5xx status
"""

from typing import Protocol

import requests

from tube_publisher.core.exceptions import PlaylistError
from tube_publisher.core.logger import get_logger
from tube_publisher.playlist.models import PlaylistItem

logger = get_logger(__name__)


PLAYLIST_ITEMS_API = "https://www.googleapis.com/youtube/v3/playlistItems"
PAGE_SIZE = 50
DEFAULT_TIMEOUT = 60.0


class PlaylistService(Protocol):
    """Operations the reconciler needs from a playlist provider."""

    def list_items(self, playlist_id: str) -> list[PlaylistItem]:
        ...

    def delete_item(self, item_id: str) -> None:
        ...

    def insert_item(self, playlist_id: str, video_id: str) -> PlaylistItem:
        ...

    def update_item_position(self, item: PlaylistItem, position: int) -> None:
        ...


class YouTubePlaylistService:
    """
    PlaylistService over the YouTube Data API v3 playlistItems resource.

    Example:
        service = YouTubePlaylistService(authorized_session(token))
        items = service.list_items("PLxxxx")
    """

    def __init__(self, http: requests.Session, timeout: float = DEFAULT_TIMEOUT) -> None:
        """
        Args:
            http: Session carrying a token with the youtube scope.
            timeout: Seconds before a single request is abandoned.
        """
        self._http = http
        self._timeout = timeout

    def list_items(self, playlist_id: str) -> list[PlaylistItem]:
        """
        Fetch every item of a playlist, in playlist order.

        Raises:
            PlaylistError: If a page request fails, or the listing holds
                           a different number of items than the playlist
                           reports.
        """
        items: list[PlaylistItem] = []
        page_token = ""
        total_results = 0

        while True:
            params = {
                "part": "snippet",
                "playlistId": playlist_id,
                "maxResults": PAGE_SIZE,
            }
            if page_token:
                params["pageToken"] = page_token

            data = self._request("GET", params=params).json()
            total_results = int((data.get("pageInfo") or {}).get("totalResults", 0))
            items.extend(PlaylistItem.from_api(raw) for raw in data.get("items", []))

            page_token = data.get("nextPageToken", "")
            if not page_token:
                break

        logger.debug(f"Got {len(items)} of {total_results} items of playlist {playlist_id}")

        if len(items) != total_results:
            raise PlaylistError(
                f"Only found {len(items)} items in playlist "
                f"{playlist_id} (should be {total_results})",
                details={"playlist_id": playlist_id, "found": len(items), "total": total_results}
            )
        return items

    def delete_item(self, item_id: str) -> None:
        self._request("DELETE", params={"id": item_id})

    def insert_item(self, playlist_id: str, video_id: str) -> PlaylistItem:
        """Append a video to the playlist and return the created item."""
        body = {
            "snippet": {
                "playlistId": playlist_id,
                "resourceId": {"kind": "youtube#video", "videoId": video_id},
            }
        }
        response = self._request("POST", params={"part": "snippet"}, json=body)
        return PlaylistItem.from_api(response.json())

    def update_item_position(self, item: PlaylistItem, position: int) -> None:
        body = {
            "id": item.item_id,
            "snippet": {
                "playlistId": item.playlist_id,
                "resourceId": {"kind": "youtube#video", "videoId": item.video_id},
                "position": position,
            },
        }
        self._request("PUT", params={"part": "snippet"}, json=body)

    def _request(self, method: str, **kwargs) -> requests.Response:
        try:
            response = self._http.request(
                method, PLAYLIST_ITEMS_API, timeout=self._timeout, **kwargs
            )
        except requests.RequestException as e:
            raise PlaylistError(
                f"playlistItems {method} failed: {e}",
                details={"params": kwargs.get("params"), "original_error": str(e)}
            ) from e

        if not 200 <= response.status_code < 300:
            raise PlaylistError(
                f"playlistItems {method} failed, status {response.status_code}",
                details={"params": kwargs.get("params"), "body": response.text},
                status_code=response.status_code
            )
        return response
