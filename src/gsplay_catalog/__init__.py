"""
GSPlay Catalog.

Reconciliation and enrichment engine for a community game catalog:
merges per-user ownership reports into canonical games, enriches them
from a rate-limited metadata provider and serves faceted search.
"""

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
    "__version__",
]

from gsplay_catalog.config import Settings, get_settings
from gsplay_catalog.logger import get_logger, setup_logging
