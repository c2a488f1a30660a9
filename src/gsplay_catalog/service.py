"""
Catalog service facade.

Wires the catalog index, ownership reconciler, enrichment scheduler and
search engine together and exposes the operations callers (HTTP layer,
admin tooling, CLI) depend on.
"""

import asyncio
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel
from sqlalchemy.orm import Session, sessionmaker

from gsplay_catalog.catalog.db import create_catalog_engine, create_session_factory, init_db
from gsplay_catalog.catalog.index import CatalogIndex, SortKey, SortOrder
from gsplay_catalog.catalog.normalizer import rank_candidates
from gsplay_catalog.config import EnrichmentConfig, SearchConfig, Settings
from gsplay_catalog.enrichment.providers.base import MetadataProvider
from gsplay_catalog.enrichment.scheduler import EnrichmentRunResult, EnrichmentScheduler
from gsplay_catalog.errors import CatalogError, NotFoundError, ValidationError
from gsplay_catalog.logger import get_logger
from gsplay_catalog.ownership.contracts import ReconcileResult, ReportedGame, SyncMode
from gsplay_catalog.ownership.reconciler import OwnershipReconciler
from gsplay_catalog.search.engine import (
    CatalogSearchEngine,
    FilterOptions,
    SearchResult,
    validate_game_id,
)
from gsplay_catalog.search.filters import SearchFilters
from gsplay_catalog.search.transformers import GameDetailView


class MergeSuggestion(BaseModel):
    """Another game whose name resembles the given one, for a curated merge."""

    game_id: str
    name: str
    score: float


class CatalogService:
    """
    Entry point for every catalog operation.

    Args:
        session_factory: Session factory bound to the catalog database
        provider: Metadata provider (enrichment operations need one)
        enrichment_config: Enrichment section
        search_config: Search section

    Example:
        >>> service = CatalogService.from_settings(get_settings(), provider=provider)
        >>> service.reconcile_user_library("user-1", games, SyncMode.INCREMENTAL)
        >>> await service.run_enrichment_batch()
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        provider: MetadataProvider | None = None,
        *,
        enrichment_config: EnrichmentConfig | None = None,
        search_config: SearchConfig | None = None,
    ) -> None:
        self.index = CatalogIndex(session_factory)
        self.reconciler = OwnershipReconciler(self.index)
        self.search_engine = CatalogSearchEngine(self.index, search_config)
        self.provider = provider
        self.enrichment_config = enrichment_config or EnrichmentConfig()
        self._scheduler: EnrichmentScheduler | None = None
        self.logger = get_logger(__name__, component="catalog_service")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider: MetadataProvider | None = None,
        *,
        create_schema: bool = True,
    ) -> "CatalogService":
        """Build a service (and optionally the schema) from application settings."""
        engine = create_catalog_engine(settings.database)
        if create_schema:
            init_db(engine)
        return cls(
            create_session_factory(engine),
            provider,
            enrichment_config=settings.enrichment,
            search_config=settings.search,
        )

    @property
    def scheduler(self) -> EnrichmentScheduler:
        if self.provider is None:
            raise CatalogError("Enrichment requires a metadata provider")
        if self._scheduler is None:
            self._scheduler = EnrichmentScheduler(self.index, self.provider, self.enrichment_config)
        return self._scheduler

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def reconcile_user_library(
        self,
        user_id: str,
        reported_games: Iterable[ReportedGame | dict[str, Any]],
        mode: SyncMode,
    ) -> ReconcileResult:
        """Apply a user's reported library; `mode` must be chosen by the caller."""
        return self.reconciler.reconcile_user_library(user_id, reported_games, mode)

    def register_user(self, user_id: str, display_name: str | None) -> None:
        if not user_id:
            raise ValidationError("user_id is required")
        self.index.register_user(user_id, display_name)

    def get_user_games(self, user_id: str, page: int = 1, limit: int | None = None) -> SearchResult:
        return self.search_engine.games_for_user(user_id, page, limit)

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    async def run_enrichment_batch(
        self,
        batch_size: int | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
        deadline_seconds: float | None = None,
    ) -> EnrichmentRunResult:
        scheduler = self.scheduler
        deadline = scheduler.deadline_after(deadline_seconds)
        return await scheduler.run_batch(batch_size, cancel_event=cancel_event, deadline=deadline)

    async def run_enrichment(
        self,
        max_batches: int | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
        deadline_seconds: float | None = None,
    ) -> EnrichmentRunResult:
        return await self.scheduler.run(
            max_batches, cancel_event=cancel_event, deadline_seconds=deadline_seconds
        )

    def restore_failed_games(self) -> int:
        restored = self.index.restore_failed()
        self.logger.info("Failed games restored", restored=restored)
        return restored

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def search(
        self,
        filters: SearchFilters | dict[str, Any] | None = None,
        sort: str | SortKey | None = None,
        order: str | SortOrder | None = None,
        page: int | str | None = None,
        limit: int | str | None = None,
    ) -> SearchResult:
        return self.search_engine.search(filters, sort, order, page, limit)

    def get_game_details(self, game_id: str) -> GameDetailView:
        return self.search_engine.get_game_details(game_id)

    def get_filter_options(self) -> FilterOptions:
        return self.search_engine.get_filter_options()

    def get_catalog_stats(self) -> dict[str, Any]:
        return self.index.stats()

    def suggest_merge_candidates(self, game_id: str, limit: int = 10) -> list[MergeSuggestion]:
        """
        Rank other games whose names flexibly match this one.

        Suggestions only; nothing is merged.

        Raises:
            ValidationError: If game_id is invalid
            NotFoundError: If the game does not exist
        """
        game = self.index.get_by_id(validate_game_id(game_id))
        if game is None:
            raise NotFoundError("Game", game_id)

        names = {gid: name for gid, name in self.index.list_names() if gid != game.id}
        ids_by_name = {name: gid for gid, name in names.items()}
        ranked = rank_candidates(game.canonical_name, names.values(), limit=limit)

        return [
            MergeSuggestion(game_id=ids_by_name[name], name=name, score=round(score, 1))
            for name, score in ranked
        ]
