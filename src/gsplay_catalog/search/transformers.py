"""
Response shapes for catalog games.

List items carry an owner count but never the owner list. Detail views
resolve owners to display names, one entry per user.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from gsplay_catalog.catalog.schemas import GameRecord, OwnershipEdge


class GameListItem(BaseModel):
    id: str
    name: str
    genres: list[str] = Field(default_factory=list)
    platforms: list[str] = Field(default_factory=list)
    game_modes: list[str] = Field(default_factory=list)
    rating: float | None = None
    artwork_url: str | None = None
    release_date: datetime | None = None
    owner_count: int = 0


class OwnerView(BaseModel):
    user_id: str
    name: str | None = None
    platforms: list[str] = Field(default_factory=list)


class GameDetailView(BaseModel):
    id: str
    name: str
    enrichment_status: str
    external_id: int | None = None
    description: str | None = None
    genres: list[str] = Field(default_factory=list)
    platforms: list[str] = Field(default_factory=list)
    game_modes: list[str] = Field(default_factory=list)
    rating: float | None = None
    artwork_url: str | None = None
    release_date: datetime | None = None
    videos: list[str] = Field(default_factory=list)
    publishers: list[str] = Field(default_factory=list)
    canonical_url: str | None = None
    owners: list[OwnerView] = Field(default_factory=list)
    owner_count: int = 0
    last_updated: datetime


def to_list_item(game: GameRecord, owner_count: int) -> GameListItem:
    metadata = game.metadata
    if metadata is None:
        return GameListItem(id=game.id, name=game.canonical_name, owner_count=owner_count)

    return GameListItem(
        id=game.id,
        name=game.canonical_name,
        genres=metadata.genres,
        platforms=metadata.platforms,
        game_modes=metadata.game_modes,
        rating=metadata.rating,
        artwork_url=metadata.artwork_url,
        release_date=metadata.release_date,
        owner_count=owner_count,
    )


def merge_owner_edges(edges: list[OwnershipEdge]) -> list[OwnershipEdge]:
    """Collapse edges sharing a user id into one, unioning platforms."""
    merged: dict[str, list[str]] = {}
    for edge in edges:
        platforms = merged.setdefault(edge.user_id, [])
        for platform in edge.platforms:
            if platform not in platforms:
                platforms.append(platform)

    return [
        OwnershipEdge(user_id=user_id, platforms=sorted(platforms))
        for user_id, platforms in merged.items()
    ]


def to_detail_view(game: GameRecord, display_names: dict[str, str | None]) -> GameDetailView:
    owners = [
        OwnerView(user_id=edge.user_id, name=display_names.get(edge.user_id), platforms=edge.platforms)
        for edge in merge_owner_edges(game.owners)
    ]

    view = GameDetailView(
        id=game.id,
        name=game.canonical_name,
        enrichment_status=game.state.status.value,
        external_id=game.external_id,
        owners=owners,
        owner_count=len(owners),
        last_updated=game.last_updated,
    )

    metadata = game.metadata
    if metadata is not None:
        view = view.model_copy(update=metadata.model_dump())
    return view
