"""
Catalog Index.

Persistent store of canonical games. Every mutation is a short
transaction built on the database's atomic primitives:

- create-if-absent on the unique name key for new games,
- insert-if-absent on (game, user) and (game, user, platform) for edges,
- compare-and-set on the enrichment status for metadata writes.

No application-level locks are taken; mutations of different games
never contend, and racing writers on the same game converge.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import Select, case, delete, distinct, func, select, update
from sqlalchemy.orm import Session, selectinload, sessionmaker

from gsplay_catalog.catalog.db import insert_ignore, session_scope
from gsplay_catalog.catalog.models import (
    EnrichmentStatus,
    Game,
    GameGenre,
    GameMode,
    GamePlatform,
    Ownership,
    OwnershipPlatform,
    User,
    generate_id,
    utcnow,
)
from gsplay_catalog.catalog.normalizer import normalize
from gsplay_catalog.catalog.schemas import GameMetadata, GameRecord, record_from_row
from gsplay_catalog.errors import ValidationError
from gsplay_catalog.logger import get_logger


class SortKey(str, Enum):
    """Sortable fields of the catalog query."""

    NAME = "name"
    RATING = "rating"
    RELEASE_DATE = "releaseDate"
    CREATED_AT = "createdAt"
    OWNER_COUNT = "ownerCount"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass
class GameQuery:
    """Filter criteria for catalog reads. Empty collections mean "no filter"."""

    name_contains: str | None = None
    genres: list[str] = field(default_factory=list)
    platforms: list[str] = field(default_factory=list)
    game_modes: list[str] = field(default_factory=list)
    min_rating: float | None = None
    enriched_only: bool = True
    owner_id: str | None = None


@dataclass
class OwnerUpsertResult:
    """Outcome of adding one (game, user, platform) report."""

    game_id: str
    canonical_name: str
    created_game: bool
    created_edge: bool
    added_platform: bool

    @property
    def changed(self) -> bool:
        return self.created_game or self.created_edge or self.added_platform


@dataclass
class UserEdge:
    """One of a user's current ownership edges."""

    game_id: str
    canonical_name: str
    name_key: str
    platforms: list[str]


@dataclass
class FacetValues:
    genres: list[str]
    platforms: list[str]
    game_modes: list[str]


class CatalogIndex:
    """
    Storage-backed index of canonical games.

    Example:
        >>> index = CatalogIndex(session_factory)
        >>> result = index.upsert_owner("Super Mario Bros", "user-1", "steam")
        >>> index.get_by_name("super mario bros.").id == result.game_id
        True
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        self._logger = get_logger(__name__, component="catalog_index")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_name(self, name: str) -> GameRecord | None:
        """Find a game whose normalized name equals that of `name`."""
        key = normalize(name)
        if not key:
            return None

        with session_scope(self._session_factory) as session:
            game = session.scalars(self._full_select().where(Game.name_key == key)).first()
            return record_from_row(game) if game else None

    def get_by_id(self, game_id: str) -> GameRecord | None:
        with session_scope(self._session_factory) as session:
            game = session.scalars(self._full_select().where(Game.id == game_id)).first()
            return record_from_row(game) if game else None

    def get_by_external_id(self, external_id: int) -> list[GameRecord]:
        """Enriched games carrying the given provider ID."""
        with session_scope(self._session_factory) as session:
            games = session.scalars(
                self._full_select()
                .where(
                    Game.enrichment_status == EnrichmentStatus.ENRICHED.value,
                    Game.external_id == external_id,
                )
                .order_by(Game.canonical_name)
            ).all()
            return [record_from_row(game) for game in games]

    def list_names(self) -> list[tuple[str, str]]:
        """All (game_id, canonical_name) pairs."""
        with session_scope(self._session_factory) as session:
            rows = session.execute(select(Game.id, Game.canonical_name)).all()
            return [(row.id, row.canonical_name) for row in rows]

    def user_edges(self, user_id: str) -> list[UserEdge]:
        """Every ownership edge a user currently holds, across the catalog."""
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(Game.id, Game.canonical_name, Game.name_key, OwnershipPlatform.platform)
                .join(Ownership, Ownership.game_id == Game.id)
                .outerjoin(
                    OwnershipPlatform,
                    (OwnershipPlatform.game_id == Ownership.game_id)
                    & (OwnershipPlatform.user_id == Ownership.user_id),
                )
                .where(Ownership.user_id == user_id)
                .order_by(Game.name_key, OwnershipPlatform.platform)
            ).all()

        edges: dict[str, UserEdge] = {}
        for row in rows:
            edge = edges.setdefault(
                row.id,
                UserEdge(
                    game_id=row.id,
                    canonical_name=row.canonical_name,
                    name_key=row.name_key,
                    platforms=[],
                ),
            )
            if row.platform is not None:
                edge.platforms.append(row.platform)
        return list(edges.values())

    # ------------------------------------------------------------------
    # Ownership mutations
    # ------------------------------------------------------------------

    def upsert_owner(
        self,
        name: str,
        user_id: str,
        platform: str,
        platform_external_id: str | None = None,
    ) -> OwnerUpsertResult:
        """
        Record that `user_id` owns `name` on `platform`.

        Creates the game if no game with the same normalized name exists
        (the given spelling becomes canonical), creates the user's edge if
        missing, and adds the platform to it. Idempotent.

        Raises:
            ValidationError: If the name normalizes to nothing or ids are blank
        """
        with session_scope(self._session_factory) as session:
            return self._upsert_owner(session, name, user_id, platform, platform_external_id)

    def bulk_upsert_owners(
        self,
        user_id: str,
        reports: Iterable[tuple[str, str, str | None]],
    ) -> list[OwnerUpsertResult]:
        """
        Apply many (name, platform, platform_external_id) reports for one user.

        All reports are written in a single transaction.
        """
        with session_scope(self._session_factory) as session:
            return [
                self._upsert_owner(session, name, user_id, platform, external_id)
                for name, platform, external_id in reports
            ]

    def remove_owner(self, game_id: str, user_id: str) -> bool:
        """Drop a user's whole edge from one game. Returns True if an edge existed."""
        return self.bulk_remove_owner(user_id, [game_id]) == 1

    def bulk_remove_owner(self, user_id: str, game_ids: Sequence[str]) -> int:
        """Drop a user's edges from the given games. Returns the number removed."""
        if not game_ids:
            return 0

        with session_scope(self._session_factory) as session:
            session.execute(
                delete(OwnershipPlatform).where(
                    OwnershipPlatform.user_id == user_id,
                    OwnershipPlatform.game_id.in_(game_ids),
                )
            )
            removed = session.execute(
                delete(Ownership).where(
                    Ownership.user_id == user_id,
                    Ownership.game_id.in_(game_ids),
                )
            ).rowcount
            if removed:
                self._touch(session, game_ids)

        self._logger.info("Ownership edges removed", user_id=user_id, removed=removed)
        return int(removed or 0)

    def register_user(self, user_id: str, display_name: str | None) -> None:
        """Create or rename a user used for detail-view name resolution."""
        with session_scope(self._session_factory) as session:
            session.execute(
                insert_ignore(session, User).values(
                    user_id=user_id, display_name=display_name, created_at=utcnow()
                )
            )
            session.execute(
                update(User).where(User.user_id == user_id).values(display_name=display_name)
            )

    def display_names(self, user_ids: Iterable[str]) -> dict[str, str | None]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(User.user_id, User.display_name).where(User.user_id.in_(ids))
            ).all()
            return {row.user_id: row.display_name for row in rows}

    # ------------------------------------------------------------------
    # Enrichment mutations
    # ------------------------------------------------------------------

    def apply_enrichment(self, game_id: str, external_id: int, metadata: GameMetadata) -> bool:
        """
        Store provider metadata and mark the game enriched, atomically.

        Only applies to a game that is still UNSET; the canonical name is
        never touched. Returns False if the game was missing or not UNSET.
        """
        with session_scope(self._session_factory) as session:
            return self._apply_enrichment(session, game_id, external_id, metadata)

    def bulk_apply_enrichment(
        self,
        updates: Iterable[tuple[str, int, GameMetadata]],
    ) -> int:
        """Apply several enrichment results in one transaction. Returns the count applied."""
        with session_scope(self._session_factory) as session:
            return sum(
                self._apply_enrichment(session, game_id, external_id, metadata)
                for game_id, external_id, metadata in updates
            )

    def mark_failed(self, game_id: str, reason: str | None = None) -> bool:
        """Move an UNSET game to FAILED. Returns False if it was not UNSET."""
        with session_scope(self._session_factory) as session:
            updated = session.execute(
                update(Game)
                .where(
                    Game.id == game_id,
                    Game.enrichment_status == EnrichmentStatus.UNSET.value,
                )
                .values(
                    enrichment_status=EnrichmentStatus.FAILED.value,
                    external_id=None,
                    enrichment_error=reason[:1000] if reason else None,
                    last_updated=self._touched_value(),
                )
                .execution_options(synchronize_session=False)
            ).rowcount
        return bool(updated)

    def restore_failed(self) -> int:
        """Move every FAILED game back to UNSET. Owners are left untouched."""
        with session_scope(self._session_factory) as session:
            restored = session.execute(
                update(Game)
                .where(Game.enrichment_status == EnrichmentStatus.FAILED.value)
                .values(
                    enrichment_status=EnrichmentStatus.UNSET.value,
                    external_id=None,
                    enrichment_error=None,
                    last_updated=self._touched_value(),
                )
                .execution_options(synchronize_session=False)
            ).rowcount
        return int(restored or 0)

    def find_unenriched(self, limit: int) -> list[GameRecord]:
        """UNSET games that have at least one owner, newest first."""
        return self._find_by_status(EnrichmentStatus.UNSET, limit)

    def find_failed(self, limit: int) -> list[GameRecord]:
        """FAILED games that have at least one owner, newest first."""
        return self._find_by_status(EnrichmentStatus.FAILED, limit)

    # ------------------------------------------------------------------
    # Read queries
    # ------------------------------------------------------------------

    def query(
        self,
        criteria: GameQuery,
        *,
        sort: SortKey = SortKey.NAME,
        order: SortOrder = SortOrder.ASC,
        offset: int = 0,
        limit: int = 20,
    ) -> list[tuple[GameRecord, int]]:
        """
        Filtered, sorted page of games with their distinct-owner counts.

        Returns:
            (game without owner edges, owner count) pairs
        """
        owner_counts = (
            select(
                Ownership.game_id.label("game_id"),
                func.count(distinct(Ownership.user_id)).label("owner_count"),
            )
            .group_by(Ownership.game_id)
            .subquery()
        )
        owner_count = func.coalesce(owner_counts.c.owner_count, 0)

        stmt = (
            select(Game, owner_count.label("owner_count"))
            .outerjoin(owner_counts, owner_counts.c.game_id == Game.id)
            .options(
                selectinload(Game.genres),
                selectinload(Game.platforms),
                selectinload(Game.modes),
            )
        )
        stmt = self._apply_criteria(stmt, criteria)

        sort_column: Any = {
            SortKey.NAME: Game.name_search,
            SortKey.RATING: Game.rating,
            SortKey.RELEASE_DATE: Game.release_date,
            SortKey.CREATED_AT: Game.created_at,
            SortKey.OWNER_COUNT: owner_count,
        }[sort]
        primary = sort_column.desc() if order == SortOrder.DESC else sort_column.asc()
        if sort in (SortKey.RATING, SortKey.RELEASE_DATE):
            primary = primary.nulls_last()

        stmt = stmt.order_by(primary, Game.name_search.asc(), Game.id.asc())
        stmt = stmt.offset(offset).limit(limit)

        with session_scope(self._session_factory) as session:
            rows = session.execute(stmt).all()
            return [
                (record_from_row(row.Game, include_owners=False), int(row.owner_count))
                for row in rows
            ]

    def count(self, criteria: GameQuery) -> int:
        stmt = self._apply_criteria(select(func.count(Game.id)), criteria)
        with session_scope(self._session_factory) as session:
            return int(session.scalar(stmt) or 0)

    def distinct_facets(self) -> FacetValues:
        """Distinct genre, platform and mode values over enriched games."""
        enriched = select(Game.id).where(*self._enriched_clause())

        with session_scope(self._session_factory) as session:

            def values(model: Any) -> list[str]:
                return sorted(
                    session.scalars(
                        select(distinct(model.value)).where(model.game_id.in_(enriched))
                    ).all()
                )

            return FacetValues(
                genres=values(GameGenre),
                platforms=values(GamePlatform),
                game_modes=values(GameMode),
            )

    def stats(self) -> dict[str, Any]:
        """Catalog-wide counts for dashboards."""
        with session_scope(self._session_factory) as session:
            by_status = dict(
                session.execute(
                    select(Game.enrichment_status, func.count(Game.id)).group_by(
                        Game.enrichment_status
                    )
                ).all()
            )
            distinct_owners = session.scalar(select(func.count(distinct(Ownership.user_id))))
            total_edges = session.scalar(select(func.count()).select_from(Ownership))
            avg_rating = session.scalar(
                select(func.avg(Game.rating)).where(*self._enriched_clause())
            )

        return {
            "total_games": sum(by_status.values()),
            "by_status": {
                status.value: int(by_status.get(status.value, 0)) for status in EnrichmentStatus
            },
            "distinct_owners": int(distinct_owners or 0),
            "total_ownership_edges": int(total_edges or 0),
            "average_rating": round(float(avg_rating), 2) if avg_rating is not None else None,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _full_select() -> Select[tuple[Game]]:
        return select(Game).options(
            selectinload(Game.owners).selectinload(Ownership.platforms),
            selectinload(Game.genres),
            selectinload(Game.platforms),
            selectinload(Game.modes),
        )

    @staticmethod
    def _enriched_clause() -> tuple[Any, ...]:
        return (
            Game.enrichment_status == EnrichmentStatus.ENRICHED.value,
            Game.external_id.is_not(None),
            Game.external_id >= 0,
        )

    def _apply_criteria(self, stmt: Any, criteria: GameQuery) -> Any:
        if criteria.enriched_only:
            stmt = stmt.where(*self._enriched_clause())

        if criteria.name_contains:
            stmt = stmt.where(
                Game.name_search.contains(criteria.name_contains.casefold(), autoescape=True)
            )

        for model, values in (
            (GameGenre, criteria.genres),
            (GamePlatform, criteria.platforms),
            (GameMode, criteria.game_modes),
        ):
            if values:
                stmt = stmt.where(
                    Game.id.in_(select(model.game_id).where(model.value.in_(values)))
                )

        if criteria.min_rating is not None:
            stmt = stmt.where(Game.rating >= criteria.min_rating)

        if criteria.owner_id is not None:
            stmt = stmt.where(
                Game.id.in_(select(Ownership.game_id).where(Ownership.user_id == criteria.owner_id))
            )

        return stmt

    def _find_by_status(self, status: EnrichmentStatus, limit: int) -> list[GameRecord]:
        with session_scope(self._session_factory) as session:
            games = session.scalars(
                self._full_select()
                .where(
                    Game.enrichment_status == status.value,
                    Game.id.in_(select(Ownership.game_id)),
                )
                .order_by(Game.created_at.desc(), Game.id)
                .limit(limit)
            ).all()
            return [record_from_row(game) for game in games]

    @staticmethod
    def _touched_value(now: datetime | None = None) -> Any:
        """SQL expression moving last_updated forward, never backward."""
        now = now or utcnow()
        return case((Game.last_updated > now, Game.last_updated), else_=now)

    def _touch(self, session: Session, game_ids: Sequence[str]) -> None:
        session.execute(
            update(Game)
            .where(Game.id.in_(game_ids))
            .values(last_updated=self._touched_value())
            .execution_options(synchronize_session=False)
        )

    def _upsert_owner(
        self,
        session: Session,
        name: str,
        user_id: str,
        platform: str,
        platform_external_id: str | None,
    ) -> OwnerUpsertResult:
        key = normalize(name)
        if not key or not user_id or not platform:
            raise ValidationError(f"Malformed ownership report: {name!r}/{platform!r}")

        now = utcnow()
        created_game = bool(
            session.execute(
                insert_ignore(session, Game).values(
                    id=generate_id(),
                    canonical_name=name.strip(),
                    name_search=name.strip().casefold(),
                    name_key=key,
                    enrichment_status=EnrichmentStatus.UNSET.value,
                    created_at=now,
                    last_updated=now,
                )
            ).rowcount
        )
        game_id, canonical_name = session.execute(
            select(Game.id, Game.canonical_name).where(Game.name_key == key)
        ).one()

        created_edge = bool(
            session.execute(
                insert_ignore(session, Ownership).values(
                    game_id=game_id, user_id=user_id, created_at=now
                )
            ).rowcount
        )
        added_platform = bool(
            session.execute(
                insert_ignore(session, OwnershipPlatform).values(
                    game_id=game_id,
                    user_id=user_id,
                    platform=platform,
                    platform_external_id=platform_external_id,
                )
            ).rowcount
        )

        if not created_game and (created_edge or added_platform):
            self._touch(session, [game_id])

        if created_game:
            self._logger.info("Game created", game_id=game_id, name=canonical_name)
        if created_edge or added_platform:
            self._logger.debug(
                "Ownership recorded",
                game_id=game_id,
                user_id=user_id,
                platform=platform,
                new_edge=created_edge,
            )

        return OwnerUpsertResult(
            game_id=game_id,
            canonical_name=canonical_name,
            created_game=created_game,
            created_edge=created_edge,
            added_platform=added_platform,
        )

    def _apply_enrichment(
        self,
        session: Session,
        game_id: str,
        external_id: int,
        metadata: GameMetadata,
    ) -> bool:
        if external_id < 0:
            raise ValidationError(f"Invalid external id: {external_id}")

        updated = session.execute(
            update(Game)
            .where(
                Game.id == game_id,
                Game.enrichment_status == EnrichmentStatus.UNSET.value,
            )
            .values(
                enrichment_status=EnrichmentStatus.ENRICHED.value,
                external_id=external_id,
                enrichment_error=None,
                description=metadata.description,
                rating=metadata.rating,
                artwork_url=metadata.artwork_url,
                release_date=metadata.release_date,
                videos=list(metadata.videos),
                publishers=list(metadata.publishers),
                canonical_url=metadata.canonical_url,
                last_updated=self._touched_value(),
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        if not updated:
            return False

        for model, values in (
            (GameGenre, metadata.genres),
            (GamePlatform, metadata.platforms),
            (GameMode, metadata.game_modes),
        ):
            session.execute(delete(model).where(model.game_id == game_id))
            for value in dict.fromkeys(v for v in values if v):
                session.execute(insert_ignore(session, model).values(game_id=game_id, value=value))

        return True
