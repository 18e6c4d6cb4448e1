"""
Playlist reconciliation package.

Modules:
    - models: PlaylistItem, edit operations and results
    - service: PlaylistService protocol and the YouTube implementation
    - reconciler: LCS edit scripts and their application
"""

from tube_publisher.playlist.models import (
    DeleteOp,
    EditScript,
    InsertOp,
    PlaylistItem,
    ReconcileResult,
)
from tube_publisher.playlist.reconciler import (
    PlaylistReconciler,
    compute_edit_script,
    longest_common_subsequence,
)
from tube_publisher.playlist.service import PlaylistService, YouTubePlaylistService

__all__ = [
    "DeleteOp",
    "EditScript",
    "InsertOp",
    "PlaylistItem",
    "PlaylistReconciler",
    "PlaylistService",
    "ReconcileResult",
    "YouTubePlaylistService",
    "compute_edit_script",
    "longest_common_subsequence",
]
