"""
Ownership reconciliation.

Validates reported libraries and applies them to the catalog.
"""

from gsplay_catalog.ownership.contracts import (
    ReconcileResult,
    ReportedGame,
    SyncMode,
    parse_reported_games,
)
from gsplay_catalog.ownership.reconciler import OwnershipReconciler

__all__ = [
    "OwnershipReconciler",
    "ReconcileResult",
    "ReportedGame",
    "SyncMode",
    "parse_reported_games",
]
