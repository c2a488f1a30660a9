"""
Metadata providers.

All providers share a common base with retry logic, error
classification and structured logging.
"""

from gsplay_catalog.enrichment.providers.base import (
    APIError,
    AuthenticationError,
    Candidate,
    GameDetail,
    MetadataProvider,
    ProviderError,
    RateLimitError,
    ResponseValidationError,
)
from gsplay_catalog.enrichment.providers.igdb import IGDBProvider

__all__ = [
    # Base classes and errors
    "APIError",
    "AuthenticationError",
    "Candidate",
    "GameDetail",
    "MetadataProvider",
    "ProviderError",
    "RateLimitError",
    "ResponseValidationError",
    # Providers
    "IGDBProvider",
]
