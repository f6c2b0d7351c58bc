"""
SQLAlchemy engine, session factory and declarative base.
"""
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


def make_engine(database_url: str, echo: bool = False):
    """Create an engine; SQLite connections are shared across worker threads."""
    kwargs = {"echo": echo, "future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def make_session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine) -> None:
    """Create tables if they don't exist."""
    # Register every model on the metadata before create_all
    import examhub.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ready (%s)", engine.url)
