"""Test playlist reconciliation"""

from unittest.mock import Mock, call, patch

import pytest

from conftest import FakePlaylistService
from tube_publisher.core.exceptions import PlaylistError, ReconcileError
from tube_publisher.playlist.models import DeleteOp, EditScript, InsertOp, PlaylistItem
from tube_publisher.playlist.reconciler import (
    PlaylistReconciler,
    compute_edit_script,
    longest_common_subsequence,
)


class TestLongestCommonSubsequence:
    """Test the LCS table and backtracking"""

    def test_index_pairs(self):
        assert longest_common_subsequence(["a", "b", "c"], ["a", "x", "c"]) == [(0, 0), (2, 2)]

    def test_empty_sides(self):
        assert longest_common_subsequence([], ["p", "q"]) == []
        assert longest_common_subsequence(["p"], []) == []

    def test_reordered(self):
        pairs = longest_common_subsequence(["a", "b", "c", "d"], ["d", "a", "b", "c"])
        assert pairs == [(0, 1), (1, 2), (2, 3)]

    def test_tie_drops_observed_first(self):
        """On ties the backtrack skips the observed element"""
        assert longest_common_subsequence(["a", "b"], ["b", "a"]) == [(1, 0)]


class TestComputeEditScript:
    """Test edit script construction"""

    def test_replace_middle(self):
        script = compute_edit_script(["a", "b", "c"], ["a", "x", "c"])

        assert script.lcs == ("a", "c")
        assert script.operations == [DeleteOp("x", 1), InsertOp("b", 1)]

    def test_empty_desired_deletes_everything(self):
        script = compute_edit_script([], ["p", "q"])

        assert script.operations == [DeleteOp("p", 0), DeleteOp("q", 1)]

    def test_empty_observed_inserts_everything(self):
        script = compute_edit_script(["p", "q"], [])

        assert script.operations == [InsertOp("p", 0), InsertOp("q", 1)]

    def test_identical_is_empty(self):
        script = compute_edit_script(["a", "b", "c"], ["a", "b", "c"])

        assert script.is_empty
        assert len(script) == 0
        assert script.describe() == []

    def test_insert_positions_count_kept_and_inserted(self):
        script = compute_edit_script(["n1", "a", "n2", "n3", "b"], ["a", "b"])

        assert script.inserts == (InsertOp("n1", 0), InsertOp("n2", 2), InsertOp("n3", 3))
        assert script.deletes == ()

    def test_describe(self):
        script = compute_edit_script(["a", "b", "c"], ["a", "x", "c"])

        assert script.describe() == ["delete at 1 (x)", "insert at 1 (b)"]


class TestApply:
    """Test execution order against the service"""

    def test_deletes_before_inserts_and_update_after_each_insert(self):
        service = Mock()
        service.insert_item.side_effect = lambda pid, vid: PlaylistItem(f"new-{vid}", vid, 99, pid)
        observed = [
            PlaylistItem("i0", "a", 0, "PL1"),
            PlaylistItem("i1", "x", 1, "PL1"),
            PlaylistItem("i2", "y", 2, "PL1"),
        ]
        script = compute_edit_script(["b", "a", "c"], ["a", "x", "y"])

        applied = PlaylistReconciler(service).apply("PL1", script, observed)

        assert applied == 4
        assert service.mock_calls == [
            call.delete_item("i1"),
            call.delete_item("i2"),
            call.insert_item("PL1", "b"),
            call.update_item_position(PlaylistItem("new-b", "b", 99, "PL1"), 0),
            call.insert_item("PL1", "c"),
            call.update_item_position(PlaylistItem("new-c", "c", 99, "PL1"), 2),
        ]

    def test_failure_aborts_playlist(self):
        service = Mock()
        service.delete_item.side_effect = [None, PlaylistError("gone", status_code=404)]
        observed = [PlaylistItem("i0", "x", 0, "PL1"), PlaylistItem("i1", "y", 1, "PL1")]
        script = compute_edit_script(["a"], ["x", "y"])

        with pytest.raises(ReconcileError) as exc_info:
            PlaylistReconciler(service).apply("PL1", script, observed)

        assert exc_info.value.playlist_id == "PL1"
        assert exc_info.value.applied == 1
        assert exc_info.value.status_code == 404
        service.insert_item.assert_not_called()


class TestSync:
    """Test the full sync against an in-memory playlist"""

    @pytest.mark.parametrize("observed, desired", [
        (["a", "x", "c"], ["a", "b", "c"]),
        (["d", "a", "b", "c"], ["a", "b", "c", "d"]),
        ([], ["a", "b"]),
        (["p", "q"], []),
        (["a", "b", "c", "d", "e"], ["e", "c", "a"]),
        (["a"], ["z", "a", "y", "x"]),
        (["a", "b"], ["a", "a", "b"]),
    ])
    def test_sync_reaches_desired(self, observed, desired):
        service = FakePlaylistService({"PL1": observed})

        result = PlaylistReconciler(service).sync("PL1", desired)

        assert service.contents("PL1") == desired
        assert result.applied == len(result.script)
        assert result.changed

    def test_unchanged_makes_no_calls(self):
        """Equal sequences short-circuit before any computation"""
        service = FakePlaylistService({"PL1": ["a", "b", "c"]})

        with patch("tube_publisher.playlist.reconciler.compute_edit_script") as compute:
            result = PlaylistReconciler(service).sync("PL1", ["a", "b", "c"])

        compute.assert_not_called()
        assert service.calls == [("list", "PL1")]
        assert not result.changed

    def test_preview_makes_no_mutations(self):
        service = FakePlaylistService({"PL1": ["a", "x", "c"]})

        result = PlaylistReconciler(service).sync("PL1", ["a", "b", "c"], preview=True)

        assert service.calls == [("list", "PL1")]
        assert result.preview
        assert result.applied == 0
        assert result.script.describe() == ["delete at 1 (x)", "insert at 1 (b)"]

    @pytest.mark.parametrize("failing, applied", [("delete", 0), ("insert", 1), ("update", 1)])
    def test_rerun_after_partial_failure(self, playlist_service, failing, applied):
        """A sync that aborted midway converges when run again"""
        playlist_service.playlists["PL1"] = ["a", "x", "c"]
        playlist_service.fail_on.add(failing)
        reconciler = PlaylistReconciler(playlist_service)

        with pytest.raises(ReconcileError) as exc_info:
            reconciler.sync("PL1", ["b", "a", "c", "d"])

        assert exc_info.value.applied == applied
        assert playlist_service.contents("PL1") != ["b", "a", "c", "d"]

        playlist_service.fail_on.clear()
        reconciler.sync("PL1", ["b", "a", "c", "d"])

        assert playlist_service.contents("PL1") == ["b", "a", "c", "d"]

    def test_list_failure_propagates(self):
        service = Mock()
        service.list_items.side_effect = PlaylistError("forbidden", status_code=403)

        with pytest.raises(PlaylistError):
            PlaylistReconciler(service).sync("PL1", ["a"])


class TestSyncMany:
    """Test independent playlists"""

    def test_each_playlist_succeeds_or_fails_alone(self):
        service = FakePlaylistService({"PLa": ["x"], "PLb": ["y"]})
        original_insert = service.insert_item

        def insert(playlist_id, video_id):
            if playlist_id == "PLb":
                raise PlaylistError("quota", status_code=403)
            return original_insert(playlist_id, video_id)

        service.insert_item = insert

        results = PlaylistReconciler(service).sync_many(
            {"PLa": ["x", "n"], "PLb": ["y", "m"]},
            threads=2,
            show_progress=False
        )

        assert results["PLa"].applied == 1
        assert isinstance(results["PLb"], ReconcileError)
        assert service.contents("PLa") == ["x", "n"]
        assert service.contents("PLb") == ["y"]


class TestEditScript:

    def test_default_is_empty(self):
        assert EditScript().is_empty
