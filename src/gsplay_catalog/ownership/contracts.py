"""
Data contracts for ownership reports.

Library source parsers hand over plain dicts; these models validate
them and define the reconciliation inputs and outputs.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from gsplay_catalog.catalog.normalizer import normalize
from gsplay_catalog.logger import get_logger
from gsplay_catalog.platforms import LibraryPlatform

logger = get_logger(__name__, component="ownership_contracts")


class SyncMode(str, Enum):
    """How a reported library relates to what is already stored."""

    INCREMENTAL = "incremental"  # partial view, only adds
    FULL = "full"  # authoritative view, also removes


class ReportedGame(BaseModel):
    """One game a user owns, as reported by a library source."""

    name: str = Field(..., min_length=1, description="Title as spelled by the source")
    platform: LibraryPlatform
    platform_external_id: str | None = Field(
        default=None, description="Source-specific game identifier"
    )

    @field_validator("name")
    @classmethod
    def name_has_key(cls, v: str) -> str:
        """Reject names that normalize to nothing."""
        if not normalize(v):
            raise ValueError("name has no usable characters")
        return v.strip()

    @field_validator("platform_external_id", mode="before")
    @classmethod
    def coerce_external_id(cls, v: Any) -> str | None:
        if v is None or v == "":
            return None
        return str(v)

    @property
    def name_key(self) -> str:
        return normalize(self.name)


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation call."""

    added: int = 0  # new edges or new platforms on an existing edge
    removed: int = 0  # edges dropped by a full resync
    created: int = 0  # games created by this call
    skipped: int = 0  # malformed or duplicate reports

    def to_dict(self) -> dict[str, int]:
        return {
            "added": self.added,
            "removed": self.removed,
            "created": self.created,
            "skipped": self.skipped,
        }


def parse_reported_games(raw: Iterable[Any]) -> tuple[list[ReportedGame], int]:
    """
    Validate and deduplicate a raw report list.

    Malformed entries are dropped; entries repeating an earlier
    (normalized name, platform) pair collapse into the first one.

    Args:
        raw: Dicts (or ReportedGame instances) from a library source

    Returns:
        Tuple of (valid unique reports, number of entries skipped)
    """
    games: list[ReportedGame] = []
    seen: set[tuple[str, LibraryPlatform]] = set()
    skipped = 0

    for item in raw:
        try:
            game = item if isinstance(item, ReportedGame) else ReportedGame.model_validate(item)
        except ValidationError as e:
            logger.debug("Dropping malformed report", entry=repr(item)[:200], errors=e.error_count())
            skipped += 1
            continue

        key = (game.name_key, game.platform)
        if key in seen:
            skipped += 1
            continue

        seen.add(key)
        games.append(game)

    return games, skipped
