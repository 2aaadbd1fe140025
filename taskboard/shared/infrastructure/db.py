"""
Database engine and session factory construction.
Uses SQLAlchemy 2.0 patterns.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from taskboard.shared.config.settings import Settings


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def build_engine(settings: Settings) -> Engine:
    """
    Create the engine backing the store gateway.

    The pool is sized to ``store_max_concurrency`` with no overflow, so the
    gateway's concurrency limit and the number of open connections agree.
    SQLite (tests, local runs) gets a thread-shareable single connection.
    """
    url = settings.database_url

    if _is_sqlite(url):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if _is_memory_sqlite(url):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, **kwargs)

    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=settings.store_max_concurrency,
        max_overflow=0,
        pool_timeout=settings.store_pool_timeout,
        pool_recycle=1800,  # Recycle connections after 30 minutes
        connect_args={"connect_timeout": settings.store_connect_timeout},
        echo=False,
    )


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to ``engine``."""
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Transactional scope around a series of operations.

    Commits on success, rolls back and re-raises on failure.

    Usage:
        with session_scope(factory) as db:
            db.add(task)
    """
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
