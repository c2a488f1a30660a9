"""
Search request contracts.

Validates caller-supplied filters, sort and paging before they reach
the catalog query. Anything rejected here surfaces as a ValidationError.
"""

import re
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from gsplay_catalog.catalog.index import SortKey, SortOrder
from gsplay_catalog.config import SearchConfig
from gsplay_catalog.errors import ValidationError

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_term(value: str) -> str:
    """Strip control characters and collapse whitespace in a search term."""
    return _WHITESPACE.sub(" ", _CONTROL_CHARS.sub("", value)).strip()


def _as_list(value: Any) -> list[str]:
    """Accept a list or a comma-separated string; drop blanks and repeats."""
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else list(value)
    cleaned = [sanitize_term(str(item)) for item in items]
    return list(dict.fromkeys(item for item in cleaned if item))


class SearchFilters(BaseModel):
    """Optional filters, AND-combined. Set filters match any of their values."""

    name: str | None = Field(default=None, description="Case-insensitive name substring")
    genres: list[str] = Field(default_factory=list)
    platforms: list[str] = Field(default_factory=list, description='"PC" expands to the PC family')
    game_modes: list[str] = Field(default_factory=list)
    min_rating: float | None = Field(default=None, ge=0, le=100)

    @field_validator("name", mode="before")
    @classmethod
    def clean_name(cls, v: Any) -> str | None:
        if v is None:
            return None
        cleaned = sanitize_term(str(v))
        return cleaned or None

    @field_validator("genres", "platforms", "game_modes", mode="before")
    @classmethod
    def clean_list(cls, v: Any) -> list[str]:
        return _as_list(v)


class SearchRequest(BaseModel):
    """A validated search: filters plus sort and paging."""

    filters: SearchFilters = Field(default_factory=SearchFilters)
    sort: SortKey = SortKey.NAME
    order: SortOrder = SortOrder.ASC
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1)


def build_search_request(
    config: SearchConfig,
    *,
    filters: SearchFilters | dict[str, Any] | None = None,
    sort: str | SortKey | None = None,
    order: str | SortOrder | None = None,
    page: int | str | None = None,
    limit: int | str | None = None,
) -> SearchRequest:
    """
    Validate raw search parameters.

    The limit is clamped to config.max_limit; a missing limit uses
    config.default_limit. The name term must respect the configured
    length bounds.

    Raises:
        ValidationError: With one message per rejected field
    """
    try:
        request = SearchRequest(
            filters=filters if isinstance(filters, SearchFilters) else SearchFilters(**(filters or {})),
            sort=sort or SortKey.NAME,
            order=order or SortOrder.ASC,
            page=page if page is not None else 1,
            limit=limit if limit is not None else config.default_limit,
        )
    except PydanticValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise ValidationError("Invalid search parameters", errors=errors) from e

    name = request.filters.name
    if name is not None and not (config.min_query_length <= len(name) <= config.max_query_length):
        raise ValidationError(
            f"Search term must be {config.min_query_length}-{config.max_query_length} characters"
        )

    request.limit = min(request.limit, config.max_limit)
    return request
