"""
Metadata enrichment.

Background workflow that fetches provider metadata for catalog games
under the provider's rate limit.
"""

from gsplay_catalog.enrichment.cache import ExpiringCache
from gsplay_catalog.enrichment.rate_limiter import RateLimiter, RateLimiterConfig
from gsplay_catalog.enrichment.scheduler import (
    EnrichmentRunResult,
    EnrichmentScheduler,
    GameOutcome,
    StopReason,
)

__all__ = [
    "EnrichmentRunResult",
    "EnrichmentScheduler",
    "ExpiringCache",
    "GameOutcome",
    "RateLimiter",
    "RateLimiterConfig",
    "StopReason",
]
