"""
Domain models for catalog games.

Read models handed out by the catalog index. The enrichment state is a
tagged union so that metadata can only exist on an enriched game.
"""

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from gsplay_catalog.catalog.models import EnrichmentStatus, Game


class GameMetadata(BaseModel):
    """Descriptive metadata fetched from the provider."""

    description: str | None = None
    genres: list[str] = Field(default_factory=list)
    platforms: list[str] = Field(default_factory=list, description="Platforms available on")
    game_modes: list[str] = Field(default_factory=list)
    rating: float | None = Field(default=None, ge=0, le=100)
    artwork_url: str | None = None
    release_date: datetime | None = None
    videos: list[str] = Field(default_factory=list)
    publishers: list[str] = Field(default_factory=list)
    canonical_url: str | None = None


class Unset(BaseModel):
    """Never enriched, or restored for a retry."""

    status: Literal[EnrichmentStatus.UNSET] = EnrichmentStatus.UNSET


class Enriched(BaseModel):
    """Enrichment succeeded; metadata is present."""

    status: Literal[EnrichmentStatus.ENRICHED] = EnrichmentStatus.ENRICHED
    external_id: int = Field(..., ge=0, description="Provider game ID")
    metadata: GameMetadata


class Failed(BaseModel):
    """Enrichment was attempted and failed; waits for an explicit restore."""

    status: Literal[EnrichmentStatus.FAILED] = EnrichmentStatus.FAILED
    reason: str | None = None


EnrichmentState = Annotated[Unset | Enriched | Failed, Field(discriminator="status")]


class OwnershipEdge(BaseModel):
    """A user's ownership of a game, merged over every platform."""

    user_id: str
    platforms: list[str] = Field(default_factory=list)


class GameRecord(BaseModel):
    """A canonical game as stored in the catalog."""

    id: str
    canonical_name: str
    name_key: str
    state: EnrichmentState
    owners: list[OwnershipEdge] = Field(default_factory=list)
    created_at: datetime
    last_updated: datetime

    @property
    def is_enriched(self) -> bool:
        return isinstance(self.state, Enriched)

    @property
    def external_id(self) -> int | None:
        return self.state.external_id if isinstance(self.state, Enriched) else None

    @property
    def metadata(self) -> GameMetadata | None:
        return self.state.metadata if isinstance(self.state, Enriched) else None

    @property
    def owner_count(self) -> int:
        return len({edge.user_id for edge in self.owners})


def state_from_row(game: Game) -> Unset | Enriched | Failed:
    """Read the tagged enrichment state out of a stored game row."""
    status = EnrichmentStatus(game.enrichment_status)

    if status == EnrichmentStatus.FAILED:
        return Failed(reason=game.enrichment_error)

    if status == EnrichmentStatus.ENRICHED and game.external_id is not None and game.external_id >= 0:
        return Enriched(
            external_id=game.external_id,
            metadata=GameMetadata(
                description=game.description,
                genres=sorted(g.value for g in game.genres),
                platforms=sorted(p.value for p in game.platforms),
                game_modes=sorted(m.value for m in game.modes),
                rating=game.rating,
                artwork_url=game.artwork_url,
                release_date=game.release_date,
                videos=list(game.videos or []),
                publishers=list(game.publishers or []),
                canonical_url=game.canonical_url,
            ),
        )

    return Unset()


def record_from_row(game: Game, *, include_owners: bool = True) -> GameRecord:
    """Convert a stored game (with relationships loaded) into a GameRecord."""
    owners: list[OwnershipEdge] = []
    if include_owners:
        owners = [
            OwnershipEdge(
                user_id=edge.user_id,
                platforms=[p.platform for p in edge.platforms],
            )
            for edge in sorted(game.owners, key=lambda o: o.user_id)
        ]

    return GameRecord(
        id=game.id,
        canonical_name=game.canonical_name,
        name_key=game.name_key,
        state=state_from_row(game),
        owners=owners,
        created_at=game.created_at,
        last_updated=game.last_updated,
    )
