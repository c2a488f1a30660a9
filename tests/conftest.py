"""Shared fixtures: in-memory catalog database and a scripted metadata provider."""

from collections.abc import Iterator
from typing import Any

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from gsplay_catalog.catalog.db import create_catalog_engine, create_session_factory, init_db
from gsplay_catalog.catalog.index import CatalogIndex
from gsplay_catalog.catalog.schemas import GameMetadata
from gsplay_catalog.config import DatabaseConfig, EnrichmentConfig
from gsplay_catalog.enrichment.providers.base import Candidate, GameDetail, MetadataProvider


@pytest.fixture
def engine() -> Iterator[Engine]:
    """Fresh in-memory SQLite catalog per test."""
    engine = create_catalog_engine(DatabaseConfig(url="sqlite://"))
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def index(session_factory: sessionmaker[Session]) -> CatalogIndex:
    return CatalogIndex(session_factory)


@pytest.fixture
def fast_enrichment() -> EnrichmentConfig:
    """Enrichment config without pauses."""
    return EnrichmentConfig(
        batch_size=10,
        request_delay_seconds=0,
        delay_between_batches_seconds=0,
    )


def make_metadata(**overrides: Any) -> GameMetadata:
    values: dict[str, Any] = {
        "description": "A game",
        "genres": ["Platform"],
        "platforms": ["PC (Microsoft Windows)"],
        "game_modes": ["Single player"],
        "rating": 80.0,
    }
    values.update(overrides)
    return GameMetadata(**values)


def enrich(index: CatalogIndex, name: str, external_id: int, **metadata: Any) -> str:
    """Give a game an owner (if needed) and enrich it directly."""
    game = index.get_by_name(name)
    game_id = game.id if game else index.upsert_owner(name, "seed-user", "steam").game_id
    assert index.apply_enrichment(game_id, external_id, make_metadata(**metadata))
    return game_id


class FakeProvider(MetadataProvider):
    """
    Scripted provider.

    `catalog` maps a searched name to the candidate returned for it;
    `errors` maps a searched name to an exception raised by search.
    """

    def __init__(
        self,
        catalog: dict[str, GameDetail] | None = None,
        errors: dict[str, Exception] | None = None,
        missing_details: set[int] | None = None,
    ) -> None:
        super().__init__()
        self.catalog = catalog or {}
        self.errors = errors or {}
        self.missing_details = missing_details or set()
        self.search_calls: list[str] = []
        self.detail_calls: list[int] = []

    @property
    def source_name(self) -> str:
        return "fake"

    async def search_by_name(self, name: str, limit: int = 1) -> list[Candidate]:
        self.search_calls.append(name)
        if name in self.errors:
            raise self.errors[name]
        detail = self.catalog.get(name)
        if detail is None:
            return []
        return [Candidate(id=detail.id, name=detail.name, rating=detail.rating)]

    async def get_details(self, external_id: int) -> GameDetail | None:
        self.detail_calls.append(external_id)
        if external_id in self.missing_details:
            return None
        for detail in self.catalog.values():
            if detail.id == external_id:
                return detail
        return None


def make_detail(external_id: int, name: str, **overrides: Any) -> GameDetail:
    values: dict[str, Any] = {
        "id": external_id,
        "name": name,
        "description": f"{name} description",
        "genres": ["Platform"],
        "platforms": ["PC (Microsoft Windows)"],
        "game_modes": ["Single player"],
        "rating": 85.0,
    }
    values.update(overrides)
    return GameDetail(**values)
