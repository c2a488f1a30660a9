"""
Catalog search engine.

Filtered, sorted and paginated views over the catalog index. Only
enriched games (valid provider id) are ever returned by search or
counted by filter options; detail lookups work for any game.
"""

import uuid
from typing import Any

from pydantic import BaseModel, Field

from gsplay_catalog.catalog.index import CatalogIndex, GameQuery, SortKey, SortOrder
from gsplay_catalog.config import SearchConfig
from gsplay_catalog.errors import NotFoundError, ValidationError
from gsplay_catalog.logger import get_logger
from gsplay_catalog.platforms import (
    expand_platform_filters,
    group_platform_options,
    platform_label,
)
from gsplay_catalog.search.filters import SearchFilters, SearchRequest, build_search_request
from gsplay_catalog.search.pagination import PaginationMeta, paginate
from gsplay_catalog.search.transformers import (
    GameDetailView,
    GameListItem,
    to_detail_view,
    to_list_item,
)


class SearchResult(BaseModel):
    games: list[GameListItem] = Field(default_factory=list)
    pagination: PaginationMeta


class FilterOptions(BaseModel):
    genres: list[str] = Field(default_factory=list)
    platforms: list[str] = Field(default_factory=list)
    game_modes: list[str] = Field(default_factory=list)
    # platform option -> short label
    platform_labels: dict[str, str] = Field(default_factory=dict)


def validate_game_id(game_id: str) -> str:
    """Game ids are UUID strings; anything else is a validation error."""
    try:
        return str(uuid.UUID(str(game_id)))
    except ValueError as e:
        raise ValidationError(f"Invalid game id: {game_id!r}") from e


class CatalogSearchEngine:
    """
    Read path over the catalog.

    Example:
        >>> engine = CatalogSearchEngine(index, settings.search)
        >>> result = engine.search({"name": "mario"}, sort="ownerCount", order="desc")
        >>> result.pagination.total
        3
    """

    def __init__(self, index: CatalogIndex, config: SearchConfig | None = None) -> None:
        self.index = index
        self.config = config or SearchConfig()
        self.logger = get_logger(__name__, component="search_engine")

    def search(
        self,
        filters: SearchFilters | dict[str, Any] | None = None,
        sort: str | SortKey | None = None,
        order: str | SortOrder | None = None,
        page: int | str | None = None,
        limit: int | str | None = None,
    ) -> SearchResult:
        """
        Search enriched games.

        Raises:
            ValidationError: If any filter, sort or paging value is invalid
        """
        request = build_search_request(
            self.config, filters=filters, sort=sort, order=order, page=page, limit=limit
        )
        return self.execute(request)

    def execute(self, request: SearchRequest) -> SearchResult:
        """Run an already validated search request."""
        criteria = self._criteria(request.filters)
        total = self.index.count(criteria)
        meta = paginate(total, request.page, request.limit)

        rows = []
        if total:
            rows = self.index.query(
                criteria,
                sort=request.sort,
                order=request.order,
                offset=meta.offset,
                limit=meta.limit,
            )

        self.logger.debug(
            "Search executed",
            sort=request.sort.value,
            order=request.order.value,
            page=meta.page,
            total=total,
        )
        return SearchResult(
            games=[to_list_item(game, owner_count) for game, owner_count in rows],
            pagination=meta,
        )

    def get_game_details(self, game_id: str) -> GameDetailView:
        """
        Detail view of one game, with owners resolved to display names.

        Raises:
            ValidationError: If game_id is not a valid id
            NotFoundError: If no game has this id
        """
        game = self.index.get_by_id(validate_game_id(game_id))
        if game is None:
            raise NotFoundError("Game", game_id)

        names = self.index.display_names(edge.user_id for edge in game.owners)
        return to_detail_view(game, names)

    def get_filter_options(self) -> FilterOptions:
        """Distinct facet values present on enriched games."""
        facets = self.index.distinct_facets()
        platforms = group_platform_options(set(facets.platforms))
        return FilterOptions(
            genres=facets.genres,
            platforms=platforms,
            game_modes=facets.game_modes,
            platform_labels={option: platform_label(option) for option in platforms},
        )

    def games_for_user(self, user_id: str, page: int = 1, limit: int | None = None) -> SearchResult:
        """Games a user owns in any enrichment state, sorted by name."""
        if not user_id:
            raise ValidationError("user_id is required")

        request = build_search_request(self.config, page=page, limit=limit)
        criteria = GameQuery(enriched_only=False, owner_id=user_id)
        total = self.index.count(criteria)
        meta = paginate(total, request.page, request.limit)
        rows = self.index.query(criteria, offset=meta.offset, limit=meta.limit) if total else []

        return SearchResult(
            games=[to_list_item(game, owner_count) for game, owner_count in rows],
            pagination=meta,
        )

    @staticmethod
    def _criteria(filters: SearchFilters) -> GameQuery:
        return GameQuery(
            name_contains=filters.name,
            genres=filters.genres,
            platforms=expand_platform_filters(filters.platforms),
            game_modes=filters.game_modes,
            min_rating=filters.min_rating,
            enriched_only=True,
        )
