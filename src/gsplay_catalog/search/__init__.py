"""
Catalog search.

Faceted search with a computed owner-count sort, pagination and the
list/detail response shapes.
"""

from gsplay_catalog.search.engine import (
    CatalogSearchEngine,
    FilterOptions,
    SearchResult,
    validate_game_id,
)
from gsplay_catalog.search.filters import SearchFilters, SearchRequest, build_search_request
from gsplay_catalog.search.pagination import PaginationMeta, paginate
from gsplay_catalog.search.transformers import (
    GameDetailView,
    GameListItem,
    OwnerView,
    merge_owner_edges,
)

__all__ = [
    "CatalogSearchEngine",
    "FilterOptions",
    "GameDetailView",
    "GameListItem",
    "OwnerView",
    "PaginationMeta",
    "SearchFilters",
    "SearchRequest",
    "SearchResult",
    "build_search_request",
    "merge_owner_edges",
    "paginate",
    "validate_game_id",
]
