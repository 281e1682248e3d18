"""Database infrastructure for CrispSync Core."""

from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from crispsync_core.config import get_settings


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    """SQLite only enforces ON DELETE CASCADE with the pragma switched on."""

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_store_engine(url: Optional[str] = None, **kwargs) -> Engine:
    """Create a synchronous engine for the record store."""
    url = url or get_settings().mysql_url
    if url.startswith("sqlite"):
        engine = create_engine(url, **kwargs)
        _enable_sqlite_foreign_keys(engine)
        return engine
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
        **kwargs,
    )


# Session factories
_sync_engine = None
_sync_session_factory = None


def get_sync_session_factory() -> sessionmaker[Session]:
    """Get synchronous session factory (singleton)."""
    global _sync_engine, _sync_session_factory
    if _sync_session_factory is None:
        _sync_engine = create_store_engine()
        _sync_session_factory = sessionmaker(
            bind=_sync_engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
    return _sync_session_factory

