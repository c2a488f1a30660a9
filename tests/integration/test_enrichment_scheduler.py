"""Integration tests for the enrichment scheduler with a scripted provider."""

import asyncio

import pytest

from conftest import FakeProvider, make_detail
from gsplay_catalog.catalog.index import CatalogIndex
from gsplay_catalog.catalog.schemas import Enriched, Failed, Unset
from gsplay_catalog.config import EnrichmentConfig
from gsplay_catalog.enrichment.providers.base import (
    APIError,
    AuthenticationError,
    GameDetail,
    RateLimitError,
    ResponseValidationError,
)
from gsplay_catalog.enrichment.scheduler import EnrichmentScheduler, StopReason

FIVE_GAMES = ["Alpha", "Bravo", "Charlie", "Delta", "Echo"]


def seed(index: CatalogIndex, names: list[str]) -> None:
    """Add games oldest first, so selection (newest first) reverses the list."""
    for name in names:
        index.upsert_owner(name, "alice", "steam")


def state_of(index: CatalogIndex, name: str) -> object:
    game = index.get_by_name(name)
    assert game is not None
    return game.state


class TestRunBatch:
    """Tests for a single enrichment batch."""

    @pytest.mark.asyncio
    async def test_enriches_and_keeps_canonical_name(
        self, index: CatalogIndex, fast_enrichment: EnrichmentConfig
    ) -> None:
        """Test the happy path: search, details, atomic write."""
        index.upsert_owner("Super Mario Bros", "alice", "steam")
        index.upsert_owner("Super Mario Bros", "bob", "gog")
        provider = FakeProvider(
            {"Super Mario Bros": make_detail(358, "Super Mario Bros.", genres=["Platform"])}
        )
        scheduler = EnrichmentScheduler(index, provider, fast_enrichment)

        result = await scheduler.run_batch()

        assert result.enriched == 1
        assert result.failed == 0
        game = index.get_by_name("Super Mario Bros")
        assert game is not None
        assert isinstance(game.state, Enriched)
        assert game.external_id == 358
        assert game.metadata is not None
        assert game.metadata.genres == ["Platform"]
        assert game.canonical_name == "Super Mario Bros"
        assert game.owner_count == 2

    @pytest.mark.asyncio
    async def test_no_candidate_marks_failed(
        self, index: CatalogIndex, fast_enrichment: EnrichmentConfig
    ) -> None:
        seed(index, ["Unknown Indie"])
        scheduler = EnrichmentScheduler(index, FakeProvider(), fast_enrichment)

        result = await scheduler.run_batch()

        assert result.failed == 1
        state = state_of(index, "Unknown Indie")
        assert isinstance(state, Failed)
        assert state.reason == "No provider match"

    @pytest.mark.asyncio
    async def test_missing_details_marks_failed(
        self, index: CatalogIndex, fast_enrichment: EnrichmentConfig
    ) -> None:
        seed(index, ["Hades"])
        provider = FakeProvider({"Hades": make_detail(1, "Hades")}, missing_details={1})
        scheduler = EnrichmentScheduler(index, provider, fast_enrichment)

        result = await scheduler.run_batch()

        assert result.failed == 1
        assert isinstance(state_of(index, "Hades"), Failed)

    @pytest.mark.asyncio
    async def test_zero_batch_size_selects_nothing(
        self, index: CatalogIndex, fast_enrichment: EnrichmentConfig
    ) -> None:
        seed(index, ["Alpha", "Bravo", "Charlie"])
        provider = FakeProvider({"Alpha": make_detail(1, "Alpha")})
        scheduler = EnrichmentScheduler(index, provider, fast_enrichment)

        result = await scheduler.run_batch(0)

        assert result.selected == 0
        assert provider.search_calls == []
        assert isinstance(state_of(index, "Alpha"), Unset)

    @pytest.mark.asyncio
    async def test_rate_limit_aborts_rest_of_batch(
        self, index: CatalogIndex, fast_enrichment: EnrichmentConfig
    ) -> None:
        """Test that a 429 on the 3rd of 5 games stops all provider calls."""
        seed(index, FIVE_GAMES)
        # Newest first: Echo, Delta, Charlie, Bravo, Alpha
        provider = FakeProvider(
            {name: make_detail(i, name) for i, name in enumerate(FIVE_GAMES, start=1)},
            errors={"Charlie": RateLimitError("429", status_code=429)},
        )
        scheduler = EnrichmentScheduler(index, provider, fast_enrichment)

        result = await scheduler.run_batch(5)

        assert provider.search_calls == ["Echo", "Delta", "Charlie"]
        assert result.stop_reason == StopReason.RATE_LIMITED
        assert result.rate_limited is True
        assert result.enriched == 2
        assert result.not_reached == 3
        for name in ("Charlie", "Bravo", "Alpha"):
            assert isinstance(state_of(index, name), Unset)
        for name in ("Echo", "Delta"):
            assert isinstance(state_of(index, name), Enriched)

    @pytest.mark.asyncio
    async def test_other_errors_fail_only_that_game(
        self, index: CatalogIndex, fast_enrichment: EnrichmentConfig
    ) -> None:
        """Test that a provider error marks one game failed and the batch continues."""
        seed(index, ["Alpha", "Bravo", "Charlie"])
        provider = FakeProvider(
            {"Alpha": make_detail(1, "Alpha"), "Charlie": make_detail(3, "Charlie")},
            errors={"Bravo": APIError("API error: 500", status_code=500)},
        )
        scheduler = EnrichmentScheduler(index, provider, fast_enrichment)

        result = await scheduler.run_batch()

        assert (result.enriched, result.failed) == (2, 1)
        assert isinstance(state_of(index, "Bravo"), Failed)
        assert provider.search_calls == ["Charlie", "Bravo", "Alpha"]

    @pytest.mark.asyncio
    async def test_invalid_payload_fails_game(
        self, index: CatalogIndex, fast_enrichment: EnrichmentConfig
    ) -> None:
        seed(index, ["Hades"])
        provider = FakeProvider(errors={"Hades": ResponseValidationError("bad payload")})
        scheduler = EnrichmentScheduler(index, provider, fast_enrichment)

        result = await scheduler.run_batch()

        assert result.failed == 1

    @pytest.mark.asyncio
    async def test_authentication_failure_propagates(
        self, index: CatalogIndex, fast_enrichment: EnrichmentConfig
    ) -> None:
        """Test that auth failure is fatal and leaves the game UNSET."""
        seed(index, ["Alpha", "Bravo"])
        provider = FakeProvider(errors={"Bravo": AuthenticationError("no token")})
        scheduler = EnrichmentScheduler(index, provider, fast_enrichment)

        with pytest.raises(AuthenticationError):
            await scheduler.run_batch()

        assert provider.search_calls == ["Bravo"]
        assert isinstance(state_of(index, "Bravo"), Unset)
        assert isinstance(state_of(index, "Alpha"), Unset)

    @pytest.mark.asyncio
    async def test_failed_games_not_retried_automatically(
        self, index: CatalogIndex, fast_enrichment: EnrichmentConfig
    ) -> None:
        seed(index, ["Unknown"])
        provider = FakeProvider()
        scheduler = EnrichmentScheduler(index, provider, fast_enrichment)

        await scheduler.run_batch()
        second = await scheduler.run_batch()

        assert second.selected == 0
        assert provider.search_calls == ["Unknown"]

    @pytest.mark.asyncio
    async def test_restore_makes_game_eligible_again(
        self, index: CatalogIndex, fast_enrichment: EnrichmentConfig
    ) -> None:
        """Test FAILED -> restore -> UNSET -> ENRICHED, owners untouched."""
        seed(index, ["Hades"])
        provider = FakeProvider()
        scheduler = EnrichmentScheduler(index, provider, fast_enrichment)
        await scheduler.run_batch()

        assert scheduler.restore_failed() == 1
        assert isinstance(state_of(index, "Hades"), Unset)

        provider.catalog["Hades"] = make_detail(1, "Hades")
        result = await scheduler.run_batch()

        assert result.enriched == 1
        game = index.get_by_name("Hades")
        assert game is not None
        assert isinstance(game.state, Enriched)
        assert [edge.user_id for edge in game.owners] == ["alice"]

    @pytest.mark.asyncio
    async def test_delay_between_games(self, index: CatalogIndex) -> None:
        """Test that the scheduler pauses between games, not before the first."""
        seed(index, ["Alpha", "Bravo", "Charlie"])
        sleeps: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)

        names = ["Alpha", "Bravo", "Charlie"]
        provider = FakeProvider({n: make_detail(i, n) for i, n in enumerate(names)})
        scheduler = EnrichmentScheduler(
            index, provider, EnrichmentConfig(request_delay_seconds=0.2), sleep=fake_sleep
        )

        await scheduler.run_batch()

        assert sleeps == [0.2, 0.2]

    @pytest.mark.asyncio
    async def test_cancellation_before_next_call(
        self, index: CatalogIndex, fast_enrichment: EnrichmentConfig
    ) -> None:
        """Test that a set cancel event stops before the next provider call."""
        seed(index, ["Alpha", "Bravo"])
        cancel = asyncio.Event()
        provider = FakeProvider({"Alpha": make_detail(1, "Alpha"), "Bravo": make_detail(2, "Bravo")})

        original = provider.get_details

        async def details_then_cancel(external_id: int) -> GameDetail | None:
            detail = await original(external_id)
            cancel.set()
            return detail

        provider.get_details = details_then_cancel  # type: ignore[method-assign]
        scheduler = EnrichmentScheduler(index, provider, fast_enrichment)

        result = await scheduler.run_batch(cancel_event=cancel)

        assert result.stop_reason == StopReason.CANCELLED
        assert result.enriched == 1
        assert provider.search_calls == ["Bravo"]
        assert isinstance(state_of(index, "Alpha"), Unset)

    @pytest.mark.asyncio
    async def test_deadline_stops_batch(
        self, index: CatalogIndex, fast_enrichment: EnrichmentConfig
    ) -> None:
        seed(index, ["Alpha", "Bravo"])
        provider = FakeProvider({"Alpha": make_detail(1, "Alpha")})
        now = [100.0]
        scheduler = EnrichmentScheduler(index, provider, fast_enrichment, clock=lambda: now[0])

        result = await scheduler.run_batch(deadline=50.0)

        assert result.stop_reason == StopReason.DEADLINE
        assert provider.search_calls == []


class TestRun:
    """Tests for multi-batch runs."""

    @pytest.mark.asyncio
    async def test_runs_until_queue_empty(self, index: CatalogIndex) -> None:
        names = [f"Game {i}" for i in range(5)]
        seed(index, names)
        provider = FakeProvider({n: make_detail(i, n) for i, n in enumerate(names)})
        config = EnrichmentConfig(
            batch_size=2, request_delay_seconds=0, delay_between_batches_seconds=0
        )
        scheduler = EnrichmentScheduler(index, provider, config)

        result = await scheduler.run()

        assert result.enriched == 5
        assert result.batches == 4
        assert result.stop_reason == StopReason.COMPLETED
        assert index.find_unenriched(10) == []

    @pytest.mark.asyncio
    async def test_respects_max_batches(self, index: CatalogIndex) -> None:
        names = [f"Game {i}" for i in range(5)]
        seed(index, names)
        provider = FakeProvider({n: make_detail(i, n) for i, n in enumerate(names)})
        config = EnrichmentConfig(
            batch_size=2, request_delay_seconds=0, delay_between_batches_seconds=0
        )

        result = await EnrichmentScheduler(index, provider, config).run(max_batches=1)

        assert result.enriched == 2
        assert len(index.find_unenriched(10)) == 3

    @pytest.mark.asyncio
    async def test_disabled(self, index: CatalogIndex) -> None:
        seed(index, ["Alpha"])
        provider = FakeProvider()
        scheduler = EnrichmentScheduler(index, provider, EnrichmentConfig(enabled=False))

        result = await scheduler.run()

        assert result.stop_reason == StopReason.DISABLED
        assert provider.search_calls == []
