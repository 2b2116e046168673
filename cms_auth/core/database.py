"""
Database engine and session management
"""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from cms_auth.core.config import Settings


Base = declarative_base()


def create_db_engine(settings: Settings) -> Engine:
    """
    Create the SQLAlchemy engine for the configured database

    SQLite needs `check_same_thread=False` because FastAPI runs sync
    endpoints in a threadpool; in-memory SQLite additionally needs a
    single shared connection or every checkout sees an empty database.

    Args:
        settings: Application settings

    Returns:
        SQLAlchemy engine
    """
    url = settings.DATABASE_URL

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=settings.DATABASE_ECHO, **kwargs)

    return create_engine(
        url,
        echo=settings.DATABASE_ECHO,
        pool_pre_ping=True,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to *engine*"""
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def init_db(engine: Engine) -> None:
    """Create any tables that do not exist yet"""
    # Model modules must be imported so their tables register on Base.metadata
    import cms_auth.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def dispose_db(engine: Engine) -> None:
    """Close all pooled connections"""
    engine.dispose()


def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Yield a session and always close it

    Used by the `get_db` dependency; rolls back if the request failed
    half-way through a unit of work.
    """
    db = session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
