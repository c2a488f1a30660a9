"""
Ownership reconciliation.

Maps a user's reported library onto canonical games. Names are only
ever matched exactly (on the normalized key); a name without an exact
match creates a new game under the reporter's spelling. Fuzzy matching
is left to curated merge suggestions.
"""

from collections.abc import Iterable
from typing import Any

from gsplay_catalog.catalog.index import CatalogIndex
from gsplay_catalog.errors import ValidationError
from gsplay_catalog.logger import get_logger
from gsplay_catalog.ownership.contracts import (
    ReconcileResult,
    ReportedGame,
    SyncMode,
    parse_reported_games,
)


class OwnershipReconciler:
    """
    Turns reported libraries into ownership edge mutations.

    Incremental sync only adds edges and platforms. Full sync also drops
    the user's edges from games the report no longer contains; other
    users' edges are never touched.

    Example:
        >>> reconciler = OwnershipReconciler(index)
        >>> result = reconciler.reconcile_user_library(
        ...     "user-1",
        ...     [{"name": "Super Mario Bros", "platform": "steam"}],
        ...     SyncMode.INCREMENTAL,
        ... )
        >>> result.added
        1
    """

    def __init__(self, index: CatalogIndex) -> None:
        self.index = index
        self.logger = get_logger(__name__, component="ownership_reconciler")

    def reconcile_user_library(
        self,
        user_id: str,
        reported_games: Iterable[ReportedGame | dict[str, Any]],
        mode: SyncMode,
    ) -> ReconcileResult:
        """
        Reconcile one user's reported library.

        Args:
            user_id: Opaque user identifier from the identity layer
            reported_games: Reports from a library source
            mode: INCREMENTAL (add only) or FULL (add and remove)

        Returns:
            ReconcileResult with added/removed/created/skipped counts

        Raises:
            ValidationError: If user_id is blank or mode is unknown
        """
        if not user_id or not user_id.strip():
            raise ValidationError("user_id is required")
        mode = self._coerce_mode(mode)

        games, skipped = parse_reported_games(reported_games)
        result = ReconcileResult(skipped=skipped)

        self.logger.info(
            "Reconciling library",
            user_id=user_id,
            mode=mode.value,
            reported=len(games),
            skipped=skipped,
        )

        upserts = self.index.bulk_upsert_owners(
            user_id,
            [(g.name, g.platform.value, g.platform_external_id) for g in games],
        )
        for upsert in upserts:
            if upsert.created_game:
                result.created += 1
            if upsert.created_edge or upsert.added_platform:
                result.added += 1

        if mode == SyncMode.FULL:
            reported_keys = {g.name_key for g in games}
            stale = [
                edge.game_id
                for edge in self.index.user_edges(user_id)
                if edge.name_key not in reported_keys
            ]
            result.removed = self.index.bulk_remove_owner(user_id, stale)

        self.logger.info("Library reconciled", user_id=user_id, **result.to_dict())
        return result

    @staticmethod
    def _coerce_mode(mode: SyncMode | str) -> SyncMode:
        try:
            return SyncMode(mode)
        except ValueError as e:
            raise ValidationError(f"Unknown sync mode: {mode!r}") from e
