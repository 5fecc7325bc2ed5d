"""
Database engine and session factory for the remote document store.
"""

from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from driver_portal.config import settings

Base = declarative_base()

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def build_engine(url: str) -> Engine:
    """Create an engine; SQLite URLs get thread-safe connection settings."""
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every worker thread sees an empty database
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool, future=True)
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, future=True)
    return create_engine(url, pool_pre_ping=True, future=True)


def get_engine() -> Engine:
    """Lazily create the process-wide engine from settings"""
    global _engine
    if _engine is None:
        _engine = build_engine(settings.database_url)
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)
    return _session_factory


def init_db(engine: Optional[Engine] = None) -> None:
    """Create tables that do not exist yet. Production deployments use Alembic."""
    from driver_portal.models import document  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())
