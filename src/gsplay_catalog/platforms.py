"""
Platform vocabularies.

Two different platform notions exist in the catalog:

- Library platforms: the storefront a user owns a game through
  (steam, gog, epic, amazon). Stored on ownership edges.
- Available platforms: hardware a game runs on, as named by the
  metadata provider (e.g. "PC (Microsoft Windows)"). Stored as a
  search facet on enriched games.
"""

from enum import Enum


class LibraryPlatform(str, Enum):
    """Storefronts that feed ownership reports."""

    STEAM = "steam"
    GOG = "gog"
    EPIC = "epic"
    AMAZON = "amazon"


# Synthetic filter value grouping every PC-family platform
PC_FILTER_VALUE = "PC"

PC_FAMILY: tuple[str, ...] = ("PC (Microsoft Windows)", "Linux", "Mac")

# Platforms offered as search facets, in display order
SUPPORTED_PLATFORMS: tuple[str, ...] = (
    "PC (Microsoft Windows)",
    "Linux",
    "Mac",
    "PlayStation 4",
    "PlayStation 5",
    "Xbox One",
    "Xbox Series X|S",
    "Xbox",
    "Nintendo Switch",
    "Nintendo Switch 2",
)

# Short labels for platform filter options
DISPLAY_NAMES: dict[str, str] = {
    PC_FILTER_VALUE: "PC",
    "PlayStation 4": "PS4",
    "PlayStation 5": "PS5",
    "Xbox One": "Xbox One",
    "Xbox Series X|S": "Xbox Series X/S",
    "Xbox": "Xbox",
    "Nintendo Switch": "Switch",
    "Nintendo Switch 2": "Switch 2",
}


def platform_label(option: str) -> str:
    """Display label for a platform filter option."""
    return DISPLAY_NAMES.get(option, option)


def expand_platform_filters(platforms: list[str]) -> list[str]:
    """
    Expand the synthetic "PC" value into the PC-family platforms.

    Other values are kept as given; order is preserved and duplicates
    are dropped.

    Args:
        platforms: Platform filter values from the caller

    Returns:
        Concrete platform names to match against stored facets
    """
    expanded: list[str] = []
    for platform in platforms:
        values = PC_FAMILY if platform == PC_FILTER_VALUE else (platform,)
        for value in values:
            if value not in expanded:
                expanded.append(value)
    return expanded


def group_platform_options(present: set[str]) -> list[str]:
    """
    Build the platform filter options for the platforms present in the catalog.

    Only supported platforms are offered, and the PC family collapses
    into the single "PC" option.

    Args:
        present: Distinct platform names found on enriched games

    Returns:
        Sorted platform options
    """
    options = [p for p in SUPPORTED_PLATFORMS if p in present and p not in PC_FAMILY]
    if any(p in present for p in PC_FAMILY):
        options.append(PC_FILTER_VALUE)
    return sorted(options)
