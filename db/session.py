from collections.abc import Generator
from contextlib import contextmanager

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

import core.logging  # noqa: F401
from core.dependencies import get_settings_or_default
from core.settings import Settings
from db.models import Base

# Process-wide engine, built on first use
_engine: Engine | None = None

SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def create_db_engine(database_url: str, settings: Settings | None = None) -> Engine:
    """Engine for ``database_url``; pool sizing comes from ``settings`` on PostgreSQL."""
    if database_url.startswith("postgresql"):
        pool = {}
        if settings is not None:
            pool = {
                "pool_size": settings.DATABASE_POOL_SIZE,
                "max_overflow": settings.DATABASE_MAX_OVERFLOW,
                "pool_timeout": settings.DATABASE_POOL_TIMEOUT,
                "pool_recycle": settings.DATABASE_POOL_RECYCLE,
            }
        return create_engine(
            database_url, poolclass=QueuePool, pool_pre_ping=True, **pool
        )
    if database_url.startswith("sqlite"):
        # One shared connection keeps in-memory databases alive across threadpool workers
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url)


def get_engine(settings: Settings) -> Engine:
    global _engine
    if _engine is None:
        _engine = create_db_engine(settings.DATABASE_URL, settings)
    return _engine


def reset_engines():
    """Dispose the cached engine. Used for testing."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


def get_db(request: Request) -> Generator[Session, None, None]:
    """FastAPI dependency yielding a session; also exposed to the audit middleware."""
    SessionLocal.configure(bind=get_engine(get_settings_or_default()))
    db = SessionLocal()
    request.state.db = db
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_session_context(settings: Settings | None = None) -> Generator[Session, None, None]:
    """Session for scripts; commits on success and rolls back on error."""
    SessionLocal.configure(bind=get_engine(settings or get_settings_or_default()))
    with SessionLocal() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


def init_db(settings: Settings) -> None:
    """Create any missing tables."""
    Base.metadata.create_all(get_engine(settings))
