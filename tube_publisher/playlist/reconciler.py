"""
Playlist reconciliation.

Brings a remote playlist into the order computed locally with as few API
calls as possible. The videos that already appear in the right relative
order (the longest common subsequence of desired and observed) are left
alone; everything else is deleted or inserted.

Algorithm:
    1. Fetch the observed items. If their video ids equal the desired
       ids, stop: nothing is computed and nothing is called.
    2. Compute the LCS with the classic O(n*m) table and backtrack it to
       (desired index, observed index) pairs.
    3. Delete every observed entry not in a pair.
    4. Walk the desired list; every entry not in a pair is inserted at
       the number of entries (kept or inserted) that precede it.

Execution Order:
    All deletes run before any insert. Each insert is immediately
    followed by an update of the new item's position, because the insert
    call ignores positions.

A failure aborts the current playlist with ReconcileError. Running the
sync again recomputes the script from whatever the playlist now holds.

Usage:
    reconciler = PlaylistReconciler(YouTubePlaylistService(http))
    result = reconciler.sync("PLxxxx", ["vid1", "vid2", "vid3"])
    results = reconciler.sync_many({"PLa": [...], "PLb": [...]}, threads=4)
"""

from typing import Mapping, Sequence

from tube_publisher.core.exceptions import PlaylistError, ReconcileError
from tube_publisher.core.logger import get_logger, log_playlist_change
from tube_publisher.playlist.models import (
    DeleteOp,
    EditScript,
    InsertOp,
    PlaylistItem,
    ReconcileResult,
)
from tube_publisher.playlist.service import PlaylistService
from tube_publisher.utils import run_in_parallel

logger = get_logger(__name__)


def longest_common_subsequence(
    desired: Sequence[str],
    observed: Sequence[str]
) -> list[tuple[int, int]]:
    """
    Longest common subsequence of two id sequences.

    Returns:
        Matched (desired index, observed index) pairs in increasing order.

    Example:
        longest_common_subsequence(["a", "b", "c"], ["a", "x", "c"])
        # [(0, 0), (2, 2)]
    """
    n, m = len(desired), len(observed)
    table = [[0] * (m + 1) for _ in range(n + 1)]

    for i in range(1, n + 1):
        for j in range(1, m + 1):
            if desired[i - 1] == observed[j - 1]:
                table[i][j] = table[i - 1][j - 1] + 1
            else:
                table[i][j] = max(table[i - 1][j], table[i][j - 1])

    pairs: list[tuple[int, int]] = []
    i, j = n, m
    while i > 0 and j > 0:
        if desired[i - 1] == observed[j - 1]:
            pairs.append((i - 1, j - 1))
            i -= 1
            j -= 1
        elif table[i - 1][j] > table[i][j - 1]:
            i -= 1
        else:
            j -= 1

    pairs.reverse()
    return pairs


def compute_edit_script(desired: Sequence[str], observed: Sequence[str]) -> EditScript:
    """
    Compute the minimal edit turning `observed` into `desired`.

    Args:
        desired: Video ids in the wanted order.
        observed: Video ids currently in the playlist.

    Returns:
        EditScript with deletes in observed order and inserts in desired
        order.
    """
    pairs = longest_common_subsequence(desired, observed)
    kept_desired = {i for i, _ in pairs}
    kept_observed = {j for _, j in pairs}

    deletes = tuple(
        DeleteOp(video_id=video_id, index=index)
        for index, video_id in enumerate(observed)
        if index not in kept_observed
    )

    inserts: list[InsertOp] = []
    position = 0
    for index, video_id in enumerate(desired):
        if index not in kept_desired:
            inserts.append(InsertOp(video_id=video_id, position=position))
        position += 1

    return EditScript(
        deletes=deletes,
        inserts=tuple(inserts),
        lcs=tuple(desired[i] for i, _ in pairs),
    )


class PlaylistReconciler:
    """
    Computes and applies edit scripts against a PlaylistService.

    Calls for one playlist are strictly sequential. Separate playlists
    can be reconciled concurrently with sync_many().
    """

    def __init__(self, service: PlaylistService) -> None:
        self._service = service

    def sync(
        self,
        playlist_id: str,
        desired: Sequence[str],
        preview: bool = False
    ) -> ReconcileResult:
        """
        Make a playlist hold exactly `desired`, in order.

        Args:
            playlist_id: The remote playlist.
            desired: Video ids in the wanted order.
            preview: Compute and log the script without applying it.

        Returns:
            ReconcileResult with the script and the number of operations applied.

        Raises:
            PlaylistError: If the playlist cannot be listed.
            ReconcileError: If applying an operation fails.
        """
        observed_items = self._service.list_items(playlist_id)
        observed = [item.video_id for item in observed_items]

        if observed == list(desired):
            logger.debug(f"Playlist {playlist_id} is up to date")
            return ReconcileResult(playlist_id=playlist_id, preview=preview)

        script = compute_edit_script(desired, observed)
        logger.info(
            f"Playlist {playlist_id}: {len(script.deletes)} to delete, "
            f"{len(script.inserts)} to insert, {len(script.lcs)} kept"
        )

        if preview:
            for line in script.describe():
                logger.info(f"  {line}")
            return ReconcileResult(playlist_id=playlist_id, script=script, preview=True)

        applied = self.apply(playlist_id, script, observed_items)
        return ReconcileResult(playlist_id=playlist_id, script=script, applied=applied)

    def apply(
        self,
        playlist_id: str,
        script: EditScript,
        observed_items: Sequence[PlaylistItem]
    ) -> int:
        """
        Execute an edit script: deletes first, then inserts left to right.

        Args:
            playlist_id: The remote playlist.
            script: Script computed against `observed_items`.
            observed_items: The listing the script was computed from;
                            delete indexes refer to it.

        Returns:
            Number of operations applied.

        Raises:
            ReconcileError: On the first failing call. Earlier operations
                            stay applied.
        """
        applied = 0

        for op in script.deletes:
            item = observed_items[op.index]
            try:
                self._service.delete_item(item.item_id)
            except PlaylistError as e:
                raise self._aborted(playlist_id, op, applied, e) from e
            applied += 1
            log_playlist_change(logger, playlist_id, op.describe())

        for op in script.inserts:
            try:
                created = self._service.insert_item(playlist_id, op.video_id)
                self._service.update_item_position(created, op.position)
            except PlaylistError as e:
                raise self._aborted(playlist_id, op, applied, e) from e
            applied += 1
            log_playlist_change(logger, playlist_id, op.describe())

        return applied

    def sync_many(
        self,
        jobs: Mapping[str, Sequence[str]],
        threads: int = 4,
        preview: bool = False,
        show_progress: bool = True
    ) -> dict[str, ReconcileResult | Exception]:
        """
        Reconcile several independent playlists in parallel.

        Each playlist succeeds or fails on its own; a failure is returned
        in place of its result, never raised.

        Args:
            jobs: Desired video ids keyed by playlist id.
            threads: Playlists reconciled at the same time.
            preview: Passed through to sync().
            show_progress: Show a tqdm bar while the playlists run.

        Returns:
            Result or exception, keyed by playlist id.
        """
        outcomes = run_in_parallel(
            lambda playlist_id: self.sync(playlist_id, jobs[playlist_id], preview=preview),
            list(jobs),
            num_threads=threads,
            description="Syncing playlists",
            show_progress=show_progress
        )

        results: dict[str, ReconcileResult | Exception] = {}
        for playlist_id, outcome in outcomes:
            if isinstance(outcome, Exception):
                logger.error(f"Playlist {playlist_id} failed: {outcome}")
            results[playlist_id] = outcome
        return results

    @staticmethod
    def _aborted(
        playlist_id: str,
        op: DeleteOp | InsertOp,
        applied: int,
        error: PlaylistError
    ) -> ReconcileError:
        return ReconcileError(
            f"Playlist {playlist_id}: {op.describe()} failed after {applied} "
            f"operations: {error.message}",
            playlist_id=playlist_id,
            applied=applied,
            details={"operation": op.describe(), **error.details},
            status_code=error.status_code
        )
