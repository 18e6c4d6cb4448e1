"""
Data models for playlist reconciliation.

Desired and observed playlists are both sequences of YouTube video ids.
The observed side additionally carries the playlist item ids, which are
what the API deletes and repositions.

An EditScript is derived, never stored: it lists the deletes (by index
in the observed playlist) followed by the inserts (by target position in
the final playlist), together with the common subsequence that stays.

Usage:
    script = compute_edit_script(["a", "b", "c"], ["a", "x", "c"])
    script.describe()
    # ["delete at 1 (x)", "insert at 1 (b)"]
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PlaylistItem:
    """
    One entry of a remote playlist.

    Attributes:
        item_id: playlistItems resource id. Distinct per entry, even when
                 the same video appears twice.
        video_id: The video this entry points to.
        position: Zero-based position in the playlist.
        playlist_id: The playlist holding the entry.
    """
    item_id: str
    video_id: str
    position: int
    playlist_id: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "PlaylistItem":
        """Build from a playlistItems resource with its snippet part."""
        snippet = data.get("snippet") or {}
        resource = snippet.get("resourceId") or {}
        return cls(
            item_id=data["id"],
            video_id=resource.get("videoId", ""),
            position=int(snippet.get("position", 0)),
            playlist_id=snippet.get("playlistId", ""),
        )


@dataclass(frozen=True)
class DeleteOp:
    """Remove the observed entry at `index`."""
    video_id: str
    index: int

    def describe(self) -> str:
        return f"delete at {self.index} ({self.video_id})"


@dataclass(frozen=True)
class InsertOp:
    """Add `video_id` so that it ends up at `position`."""
    video_id: str
    position: int

    def describe(self) -> str:
        return f"insert at {self.position} ({self.video_id})"


@dataclass(frozen=True)
class EditScript:
    """
    Minimal order-preserving edit turning an observed playlist into the
    desired one.

    Attributes:
        deletes: Observed entries outside the common subsequence, in
                 observed order.
        inserts: Desired videos outside the common subsequence, in
                 desired order.
        lcs: Video ids of the common subsequence, which are left untouched.
    """
    deletes: tuple[DeleteOp, ...] = ()
    inserts: tuple[InsertOp, ...] = ()
    lcs: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.deletes and not self.inserts

    @property
    def operations(self) -> list[DeleteOp | InsertOp]:
        """All operations in execution order: deletes, then inserts."""
        return [*self.deletes, *self.inserts]

    def __len__(self) -> int:
        return len(self.deletes) + len(self.inserts)

    def describe(self) -> list[str]:
        """One human-readable line per operation, in execution order."""
        return [op.describe() for op in self.operations]


@dataclass(frozen=True)
class ReconcileResult:
    """
    Outcome of reconciling one playlist.

    Attributes:
        playlist_id: The reconciled playlist.
        script: The edit script that was computed (empty if unchanged).
        applied: Operations executed against the API. Zero in preview.
        preview: True if the script was only rendered.
    """
    playlist_id: str
    script: EditScript = field(default_factory=EditScript)
    applied: int = 0
    preview: bool = False

    @property
    def changed(self) -> bool:
        return not self.script.is_empty
