"""Integration tests for ownership reconciliation."""

import pytest

from gsplay_catalog.catalog.index import CatalogIndex
from gsplay_catalog.catalog.schemas import Unset
from gsplay_catalog.errors import ValidationError
from gsplay_catalog.ownership import OwnershipReconciler, ReportedGame, SyncMode


@pytest.fixture
def reconciler(index: CatalogIndex) -> OwnershipReconciler:
    return OwnershipReconciler(index)


def owners_of(index: CatalogIndex, name: str) -> list[tuple[str, list[str]]]:
    game = index.get_by_name(name)
    assert game is not None
    return [(edge.user_id, edge.platforms) for edge in game.owners]


class TestReconcileIncremental:
    """Tests for incremental sync."""

    def test_two_users_one_game(self, index: CatalogIndex, reconciler: OwnershipReconciler) -> None:
        """Test that two users reporting the same title share one game."""
        reconciler.reconcile_user_library(
            "alice", [{"name": "Super Mario Bros", "platform": "steam"}], SyncMode.INCREMENTAL
        )
        reconciler.reconcile_user_library(
            "bob", [{"name": "Super Mario Bros", "platform": "gog"}], SyncMode.INCREMENTAL
        )

        names = [name for _, name in index.list_names()]
        assert names == ["Super Mario Bros"]
        assert owners_of(index, "Super Mario Bros") == [("alice", ["steam"]), ("bob", ["gog"])]
        game = index.get_by_name("Super Mario Bros")
        assert game is not None
        assert isinstance(game.state, Unset)

    def test_counts(self, reconciler: OwnershipReconciler) -> None:
        """Test added/created/skipped counts."""
        result = reconciler.reconcile_user_library(
            "alice",
            [
                {"name": "Hades", "platform": "steam"},
                {"name": "Hades", "platform": "epic"},
                {"name": "hades", "platform": "steam"},
                {"name": "Celeste", "platform": "gog"},
                {"platform": "gog"},
            ],
            SyncMode.INCREMENTAL,
        )

        assert result.created == 2
        assert result.added == 3
        assert result.skipped == 2
        assert result.removed == 0

    def test_idempotent_across_calls(
        self, index: CatalogIndex, reconciler: OwnershipReconciler
    ) -> None:
        """Test that reporting the same pair twice yields one edge, one platform."""
        report = [ReportedGame(name="Hades", platform="steam")]

        first = reconciler.reconcile_user_library("alice", report, SyncMode.INCREMENTAL)
        second = reconciler.reconcile_user_library("alice", report, SyncMode.INCREMENTAL)

        assert first.added == 1
        assert second.added == 0
        assert second.created == 0
        assert owners_of(index, "Hades") == [("alice", ["steam"])]

    def test_never_removes(self, index: CatalogIndex, reconciler: OwnershipReconciler) -> None:
        """Test that incremental sync keeps every existing edge."""
        reconciler.reconcile_user_library(
            "alice",
            [{"name": "Hades", "platform": "steam"}, {"name": "Celeste", "platform": "gog"}],
            SyncMode.INCREMENTAL,
        )
        before = {edge.game_id for edge in index.user_edges("alice")}

        result = reconciler.reconcile_user_library(
            "alice", [{"name": "Doom", "platform": "steam"}], SyncMode.INCREMENTAL
        )
        after = {edge.game_id for edge in index.user_edges("alice")}

        assert result.removed == 0
        assert before < after
        assert len(after) == 3

    def test_no_fuzzy_merge_at_ownership_time(
        self, index: CatalogIndex, reconciler: OwnershipReconciler
    ) -> None:
        """Test that similar but different titles stay separate games."""
        reconciler.reconcile_user_library(
            "alice",
            [
                {"name": "Super Mario Bros", "platform": "steam"},
                {"name": "Super Mario Bros 3", "platform": "steam"},
            ],
            SyncMode.INCREMENTAL,
        )

        assert sorted(name for _, name in index.list_names()) == [
            "Super Mario Bros",
            "Super Mario Bros 3",
        ]


class TestReconcileFull:
    """Tests for full resync."""

    def test_removes_unreported_edges_only_for_user(
        self, index: CatalogIndex, reconciler: OwnershipReconciler
    ) -> None:
        """Test that full sync drops the user's stale edges and nobody else's."""
        reconciler.reconcile_user_library(
            "alice",
            [{"name": "Hades", "platform": "steam"}, {"name": "Celeste", "platform": "gog"}],
            SyncMode.INCREMENTAL,
        )
        reconciler.reconcile_user_library(
            "bob", [{"name": "Celeste", "platform": "epic"}], SyncMode.INCREMENTAL
        )

        result = reconciler.reconcile_user_library(
            "alice", [{"name": "HADES", "platform": "steam"}], SyncMode.FULL
        )

        assert result.removed == 1
        assert owners_of(index, "Celeste") == [("bob", ["epic"])]
        assert owners_of(index, "Hades") == [("alice", ["steam"])]

    def test_game_survives_losing_all_owners(
        self, index: CatalogIndex, reconciler: OwnershipReconciler
    ) -> None:
        """Test that removing the last edge does not delete the game."""
        reconciler.reconcile_user_library(
            "alice", [{"name": "Celeste", "platform": "gog"}], SyncMode.INCREMENTAL
        )

        reconciler.reconcile_user_library("alice", [], SyncMode.FULL)

        game = index.get_by_name("Celeste")
        assert game is not None
        assert game.owners == []


class TestValidation:
    """Tests for boundary validation."""

    def test_blank_user_rejected(self, reconciler: OwnershipReconciler) -> None:
        with pytest.raises(ValidationError):
            reconciler.reconcile_user_library(" ", [], SyncMode.INCREMENTAL)

    def test_unknown_mode_rejected(self, reconciler: OwnershipReconciler) -> None:
        with pytest.raises(ValidationError):
            reconciler.reconcile_user_library("alice", [], "partial")  # type: ignore[arg-type]

    def test_mode_accepts_string_value(
        self, index: CatalogIndex, reconciler: OwnershipReconciler
    ) -> None:
        reconciler.reconcile_user_library(
            "alice", [{"name": "Hades", "platform": "steam"}], "full"  # type: ignore[arg-type]
        )

        assert owners_of(index, "Hades") == [("alice", ["steam"])]
