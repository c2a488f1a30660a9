"""
Catalog storage models.

Canonical games, their ownership edges and their search facets.
Uniqueness invariants live in the schema so that concurrent writers
are serialized by the database rather than by application locks.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from gsplay_catalog.catalog.db import Base


def generate_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EnrichmentStatus(str, Enum):
    """Stored enrichment state of a game."""

    UNSET = "unset"
    ENRICHED = "enriched"
    FAILED = "failed"


class Game(Base):
    __tablename__ = "games"

    id = Column(String(36), primary_key=True, default=generate_id)
    canonical_name = Column(String(300), unique=True, nullable=False)
    name_key = Column(String(300), unique=True, nullable=False, index=True)
    # casefolded canonical_name for substring search and name ordering
    name_search = Column(String(300), nullable=False, index=True)

    enrichment_status = Column(
        String(16), nullable=False, default=EnrichmentStatus.UNSET.value, index=True
    )
    external_id = Column(Integer, nullable=True, index=True)
    enrichment_error = Column(Text, nullable=True)

    # Provider metadata, present only while enriched
    description = Column(Text, nullable=True)
    rating = Column(Float, nullable=True, index=True)
    artwork_url = Column(String(500), nullable=True)
    release_date = Column(DateTime(timezone=True), nullable=True)
    videos = Column(JSON, nullable=True)
    publishers = Column(JSON, nullable=True)
    canonical_url = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_updated = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    owners = relationship("Ownership", back_populates="game", cascade="all, delete-orphan")
    genres = relationship("GameGenre", cascade="all, delete-orphan")
    platforms = relationship("GamePlatform", cascade="all, delete-orphan")
    modes = relationship("GameMode", cascade="all, delete-orphan")


class User(Base):
    __tablename__ = "users"

    user_id = Column(String(64), primary_key=True)
    display_name = Column(String(120), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Ownership(Base):
    """One user's ownership edge on one game."""

    __tablename__ = "ownerships"

    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(64), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    game = relationship("Game", back_populates="owners")
    platforms = relationship(
        "OwnershipPlatform",
        cascade="all, delete-orphan",
        order_by="OwnershipPlatform.platform",
    )


class OwnershipPlatform(Base):
    """A storefront through which a user owns a game."""

    __tablename__ = "ownership_platforms"
    __table_args__ = (
        ForeignKeyConstraint(
            ["game_id", "user_id"],
            ["ownerships.game_id", "ownerships.user_id"],
            ondelete="CASCADE",
        ),
    )

    game_id = Column(String(36), primary_key=True)
    user_id = Column(String(64), primary_key=True)
    platform = Column(String(32), primary_key=True)
    platform_external_id = Column(String(128), nullable=True)


class GameGenre(Base):
    __tablename__ = "game_genres"
    __table_args__ = (Index("ix_game_genres_value", "value"),)

    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), primary_key=True)
    value = Column(String(120), primary_key=True)


class GamePlatform(Base):
    __tablename__ = "game_platforms"
    __table_args__ = (Index("ix_game_platforms_value", "value"),)

    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), primary_key=True)
    value = Column(String(120), primary_key=True)


class GameMode(Base):
    __tablename__ = "game_modes"
    __table_args__ = (Index("ix_game_modes_value", "value"),)

    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), primary_key=True)
    value = Column(String(120), primary_key=True)
