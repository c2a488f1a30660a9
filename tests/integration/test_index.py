"""Integration tests for the catalog index on SQLite."""

import threading
from pathlib import Path

import pytest

from conftest import make_metadata
from gsplay_catalog.catalog.db import create_catalog_engine, create_session_factory, init_db
from gsplay_catalog.catalog.index import CatalogIndex, GameQuery, SortKey, SortOrder
from gsplay_catalog.catalog.schemas import Enriched, Failed, Unset
from gsplay_catalog.config import DatabaseConfig
from gsplay_catalog.errors import ValidationError


class TestUpsertOwner:
    """Tests for create-if-absent ownership writes."""

    def test_creates_game_with_first_spelling(self, index: CatalogIndex) -> None:
        """Test that the first reporter's spelling becomes canonical."""
        first = index.upsert_owner("Super Mario Bros.", "alice", "steam")
        second = index.upsert_owner("super mario bros", "bob", "gog")

        assert first.created_game is True
        assert second.created_game is False
        assert second.game_id == first.game_id

        game = index.get_by_id(first.game_id)
        assert game is not None
        assert game.canonical_name == "Super Mario Bros."
        assert isinstance(game.state, Unset)
        assert [(o.user_id, o.platforms) for o in game.owners] == [
            ("alice", ["steam"]),
            ("bob", ["gog"]),
        ]

    def test_idempotent(self, index: CatalogIndex) -> None:
        """Test that repeating a report changes nothing."""
        index.upsert_owner("Hades", "alice", "steam")
        repeat = index.upsert_owner("Hades", "alice", "steam")

        assert repeat.changed is False
        game = index.get_by_name("Hades")
        assert game is not None
        assert [(o.user_id, o.platforms) for o in game.owners] == [("alice", ["steam"])]

    def test_platforms_merge_into_one_edge(self, index: CatalogIndex) -> None:
        """Test that a second platform joins the existing edge."""
        index.upsert_owner("Hades", "alice", "steam")
        result = index.upsert_owner("Hades", "alice", "epic")

        assert result.created_edge is False
        assert result.added_platform is True
        game = index.get_by_name("hades")
        assert game is not None
        assert game.owner_count == 1
        assert game.owners[0].platforms == ["epic", "steam"]

    def test_last_updated_moves_forward(self, index: CatalogIndex) -> None:
        """Test that last_updated never decreases across mutations."""
        created = index.upsert_owner("Hades", "alice", "steam")
        before = index.get_by_id(created.game_id)
        index.upsert_owner("Hades", "bob", "gog")
        after = index.get_by_id(created.game_id)

        assert before is not None and after is not None
        assert after.last_updated >= before.last_updated

    @pytest.mark.parametrize(
        ("name", "user_id", "platform"),
        [("!!!", "alice", "steam"), ("Hades", "", "steam"), ("Hades", "alice", "")],
    )
    def test_malformed_rejected(
        self, index: CatalogIndex, name: str, user_id: str, platform: str
    ) -> None:
        with pytest.raises(ValidationError):
            index.upsert_owner(name, user_id, platform)

    def test_concurrent_creates_yield_one_game(self, tmp_path: Path) -> None:
        """Test that racing first reports of one title create a single game."""
        db_path = tmp_path / "race.db"
        engine = create_catalog_engine(DatabaseConfig(url=f"sqlite:///{db_path}"))
        init_db(engine)
        index = CatalogIndex(create_session_factory(engine))
        errors: list[Exception] = []

        def report(user: str) -> None:
            try:
                index.upsert_owner("Celeste", user, "steam")
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=report, args=(f"user-{i}",)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        names = [name for _, name in index.list_names()]
        assert names == ["Celeste"]
        game = index.get_by_name("Celeste")
        assert game is not None
        assert game.owner_count == 8
        engine.dispose()


class TestRemoveOwner:
    """Tests for edge removal."""

    def test_removes_only_that_users_edge(self, index: CatalogIndex) -> None:
        result = index.upsert_owner("Hades", "alice", "steam")
        index.upsert_owner("Hades", "alice", "epic")
        index.upsert_owner("Hades", "bob", "gog")

        assert index.remove_owner(result.game_id, "alice") is True
        assert index.remove_owner(result.game_id, "alice") is False

        game = index.get_by_id(result.game_id)
        assert game is not None
        assert [o.user_id for o in game.owners] == ["bob"]

    def test_user_edges(self, index: CatalogIndex) -> None:
        index.upsert_owner("Hades", "alice", "steam")
        index.upsert_owner("Hades", "alice", "epic")
        index.upsert_owner("Celeste", "alice", "gog")
        index.upsert_owner("Celeste", "bob", "gog")

        edges = {edge.canonical_name: edge.platforms for edge in index.user_edges("alice")}

        assert edges == {"Hades": ["epic", "steam"], "Celeste": ["gog"]}


class TestEnrichmentWrites:
    """Tests for enrichment state transitions in storage."""

    def test_apply_enrichment(self, index: CatalogIndex) -> None:
        """Test that metadata and provider id are written together."""
        game_id = index.upsert_owner("Hades", "alice", "steam").game_id

        assert index.apply_enrichment(game_id, 113112, make_metadata(genres=["Roguelike"]))

        game = index.get_by_id(game_id)
        assert game is not None
        assert isinstance(game.state, Enriched)
        assert game.external_id == 113112
        assert game.metadata is not None
        assert game.metadata.genres == ["Roguelike"]
        assert game.canonical_name == "Hades"
        assert [o.user_id for o in game.owners] == ["alice"]

    def test_apply_only_from_unset(self, index: CatalogIndex) -> None:
        """Test that enriched and failed games are not overwritten."""
        game_id = index.upsert_owner("Hades", "alice", "steam").game_id
        index.apply_enrichment(game_id, 1, make_metadata())

        assert index.apply_enrichment(game_id, 2, make_metadata()) is False
        assert index.mark_failed(game_id, "late failure") is False
        game = index.get_by_id(game_id)
        assert game is not None
        assert game.external_id == 1

    def test_mark_failed_and_restore(self, index: CatalogIndex) -> None:
        """Test FAILED -> UNSET restore keeps owners."""
        game_id = index.upsert_owner("Obscure Game", "alice", "steam").game_id

        assert index.mark_failed(game_id, "No provider match")
        failed = index.get_by_id(game_id)
        assert failed is not None
        assert isinstance(failed.state, Failed)
        assert failed.state.reason == "No provider match"

        assert index.restore_failed() == 1
        restored = index.get_by_id(game_id)
        assert restored is not None
        assert isinstance(restored.state, Unset)
        assert [o.user_id for o in restored.owners] == ["alice"]
        assert restored.last_updated >= failed.last_updated

    def test_negative_external_id_rejected(self, index: CatalogIndex) -> None:
        game_id = index.upsert_owner("Hades", "alice", "steam").game_id

        with pytest.raises(ValidationError):
            index.apply_enrichment(game_id, -1, make_metadata())

    def test_find_unenriched_requires_owner(self, index: CatalogIndex) -> None:
        """Test that ownerless games are not selected for enrichment."""
        owned = index.upsert_owner("Hades", "alice", "steam").game_id
        orphan = index.upsert_owner("Celeste", "bob", "gog").game_id
        index.remove_owner(orphan, "bob")

        assert [g.id for g in index.find_unenriched(10)] == [owned]


class TestQuery:
    """Tests for the read query."""

    def test_enriched_only_by_default(self, index: CatalogIndex) -> None:
        enriched = index.upsert_owner("Hades", "alice", "steam").game_id
        index.apply_enrichment(enriched, 1, make_metadata())
        index.upsert_owner("Celeste", "alice", "steam")

        rows = index.query(GameQuery())

        assert [game.id for game, _ in rows] == [enriched]
        assert index.count(GameQuery()) == 1
        assert index.count(GameQuery(enriched_only=False)) == 2

    def test_name_filter_escapes_wildcards(self, index: CatalogIndex) -> None:
        """Test that LIKE wildcards in the term are literal."""
        for name, external_id in (("100% Orange Juice", 1), ("1000 Cuts", 2)):
            game_id = index.upsert_owner(name, "alice", "steam").game_id
            index.apply_enrichment(game_id, external_id, make_metadata())

        rows = index.query(GameQuery(name_contains="100%"))

        assert [game.canonical_name for game, _ in rows] == ["100% Orange Juice"]

    def test_rating_sort_puts_nulls_last(self, index: CatalogIndex) -> None:
        for name, external_id, rating in (("A", 1, None), ("B", 2, 50.0), ("C", 3, 90.0)):
            game_id = index.upsert_owner(name, "alice", "steam").game_id
            index.apply_enrichment(game_id, external_id, make_metadata(rating=rating))

        desc = index.query(GameQuery(), sort=SortKey.RATING, order=SortOrder.DESC)
        asc = index.query(GameQuery(), sort=SortKey.RATING, order=SortOrder.ASC)

        assert [g.canonical_name for g, _ in desc] == ["C", "B", "A"]
        assert [g.canonical_name for g, _ in asc] == ["B", "C", "A"]

    def test_stats(self, index: CatalogIndex) -> None:
        enriched = index.upsert_owner("Hades", "alice", "steam").game_id
        index.apply_enrichment(enriched, 1, make_metadata(rating=90.0))
        failed = index.upsert_owner("Obscure", "bob", "gog").game_id
        index.mark_failed(failed, "nope")
        index.upsert_owner("Celeste", "bob", "gog")

        stats = index.stats()

        assert stats["total_games"] == 3
        assert stats["by_status"] == {"unset": 1, "enriched": 1, "failed": 1}
        assert stats["distinct_owners"] == 2
        assert stats["total_ownership_edges"] == 3
        assert stats["average_rating"] == 90.0
