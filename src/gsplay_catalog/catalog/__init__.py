"""
Canonical game catalog.

Name normalization, storage models and the catalog index that all
other components mutate and query.
"""

from gsplay_catalog.catalog.index import (
    CatalogIndex,
    FacetValues,
    GameQuery,
    OwnerUpsertResult,
    SortKey,
    SortOrder,
    UserEdge,
)
from gsplay_catalog.catalog.normalizer import (
    exact_match_pattern,
    flexible_match_pattern,
    normalize,
    rank_candidates,
    similarity,
)
from gsplay_catalog.catalog.schemas import (
    Enriched,
    EnrichmentState,
    Failed,
    GameMetadata,
    GameRecord,
    OwnershipEdge,
    Unset,
)

__all__ = [
    # Index
    "CatalogIndex",
    "FacetValues",
    "GameQuery",
    "OwnerUpsertResult",
    "SortKey",
    "SortOrder",
    "UserEdge",
    # Read models
    "Enriched",
    "EnrichmentState",
    "Failed",
    "GameMetadata",
    "GameRecord",
    "OwnershipEdge",
    "Unset",
    # Names
    "exact_match_pattern",
    "flexible_match_pattern",
    "normalize",
    "rank_candidates",
    "similarity",
]
