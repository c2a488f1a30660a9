"""
Database engine and session management.

SQLite is the default backend; any SQLAlchemy URL with ON CONFLICT
support (SQLite, PostgreSQL) works.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from gsplay_catalog.config import DatabaseConfig, get_settings

Base = declarative_base()


def create_catalog_engine(config: DatabaseConfig | None = None) -> Engine:
    """
    Create an engine for the catalog database.

    In-memory SQLite URLs share a single connection so every session
    sees the same database.

    Args:
        config: Database section (read from settings if None)

    Returns:
        Engine: Configured SQLAlchemy engine
    """
    db_config = config or get_settings().database
    url = db_config.url
    is_sqlite = url.startswith("sqlite")

    engine_kwargs: dict[str, Any] = {"echo": db_config.echo}
    if is_sqlite:
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_recycle"] = db_config.pool_recycle_seconds

    engine = create_engine(url, **engine_kwargs)

    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    return engine


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_db(engine: Engine) -> None:
    """Create all catalog tables that do not exist yet."""
    # Register models on Base.metadata
    from gsplay_catalog.catalog import models  # noqa: F401

    Base.metadata.create_all(engine)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Build the session factory bound to `engine`."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """
    Provide a transactional scope around a series of operations.

    Commits on success, rolls back and re-raises on any error.
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def insert_ignore(session: Session, table: Any) -> Any:
    """
    Build an INSERT for `table` that is a no-op on unique conflicts.

    This is the storage-level create-if-absent primitive: two callers
    racing on the same unique key both succeed and exactly one row exists.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table).on_conflict_do_nothing()
    if dialect == "sqlite":
        return sqlite.insert(table).on_conflict_do_nothing()
    raise NotImplementedError(f"Unsupported dialect for upserts: {dialect}")
