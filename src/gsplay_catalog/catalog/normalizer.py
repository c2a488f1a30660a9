"""
Game name normalization and matching.

Turns raw titles into comparison keys and builds the exact and flexible
match predicates used across the catalog. Flexible matches are only a
candidate generator: callers must rank and confirm them before acting.
"""

import re
import unicodedata
from collections.abc import Callable, Iterable

from rapidfuzz import fuzz

NamePredicate = Callable[[str], bool]

_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


def normalize(raw_name: object) -> str:
    """
    Build the canonical comparison key for a title.

    Lowercases, strips punctuation and collapses whitespace. Total:
    non-string or empty input yields an empty key.

    Args:
        raw_name: Title as reported by a source

    Returns:
        Normalized key ("" when nothing usable remains)

    Example:
        >>> normalize("  The Witcher® 3: Wild   Hunt ")
        'the witcher 3 wild hunt'
    """
    if not isinstance(raw_name, str):
        return ""

    text = unicodedata.normalize("NFKC", raw_name).lower()
    text = _PUNCTUATION.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def exact_match_pattern(name: str) -> NamePredicate:
    """Predicate matching titles whose normalized key equals that of `name`."""
    key = normalize(name)

    def matches(candidate: str) -> bool:
        return bool(key) and normalize(candidate) == key

    return matches


def flexible_match_pattern(name: str) -> NamePredicate:
    """
    Predicate matching titles that contain every token of `name`, in order.

    Tokens may be separated by arbitrary text ("mario bros" matches
    "super mario bros deluxe"). An empty key matches nothing.
    """
    tokens = normalize(name).split(" ")
    if tokens == [""]:
        return lambda candidate: False

    pattern = re.compile(".*".join(re.escape(token) for token in tokens))

    def matches(candidate: str) -> bool:
        return pattern.search(normalize(candidate)) is not None

    return matches


def similarity(first: str, second: str) -> float:
    """Similarity score (0-100) between two titles, on normalized keys."""
    key_a, key_b = normalize(first), normalize(second)
    if not key_a or not key_b:
        return 0.0
    if key_a == key_b:
        return 100.0
    return float(fuzz.token_sort_ratio(key_a, key_b))


def rank_candidates(
    name: str,
    candidates: Iterable[str],
    *,
    limit: int | None = None,
) -> list[tuple[str, float]]:
    """
    Rank titles that flexibly match `name`.

    Candidates failing the flexible predicate in both directions are
    dropped. The rest are ordered exact-key first, then by similarity,
    then by name.

    Args:
        name: Title to find candidates for
        candidates: Titles to consider
        limit: Maximum number of results

    Returns:
        (candidate, score) pairs, best first
    """
    forward = flexible_match_pattern(name)
    key = normalize(name)

    ranked: list[tuple[str, float]] = []
    for candidate in candidates:
        if not (forward(candidate) or flexible_match_pattern(candidate)(name)):
            continue
        ranked.append((candidate, similarity(name, candidate)))

    ranked.sort(key=lambda item: (normalize(item[0]) != key, -item[1], item[0]))
    return ranked[:limit] if limit is not None else ranked
