"""
SQLAlchemy declarative base and database session configuration
"""
from datetime import datetime, timezone
from typing import Tuple

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

# Create declarative base
Base = declarative_base()


def create_session_factory(database_url: str, echo: bool = False) -> Tuple[Engine, sessionmaker]:
    """
    Create an engine and a session factory for a database URL

    SQLite connections are shared across request threads; an in-memory
    SQLite database is pinned to a single connection so every session sees
    the same data.

    Args:
        database_url: SQLAlchemy database URL
        echo: Log emitted SQL

    Returns:
        (engine, sessionmaker)
    """
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url == "sqlite://":
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    session_factory = sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine
    )
    return engine, session_factory


def init_db(engine: Engine) -> None:
    """
    Initialize database by creating all tables
    """
    # Register models on the metadata before creating tables
    from provisioner import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
