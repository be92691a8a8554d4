"""
Database engine and session factory built from ``DatabaseConfig``.
"""

from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .config import DatabaseConfig, get_settings
from .logging import get_logger

logger = get_logger(__name__)


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    """Turn on FK enforcement and let SQLAlchemy own BEGIN so SAVEPOINTs nest properly."""

    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_database_engine(config: DatabaseConfig | None = None) -> Engine:
    """
    Create SQLAlchemy engine with proper configuration.

    Example:
        >>> engine = create_database_engine()
    """
    if config is None:
        config = get_settings().database

    connection_url = config.get_connection_url()
    engine_options = config.get_engine_options()

    logger.info(f"Creating database engine for {config.backend} backend")
    logger.debug(f"Connection URL: {connection_url.split('@')[0]}@***")

    try:
        engine = create_engine(connection_url, **engine_options)
    except Exception as e:
        logger.error(f"Failed to create database engine: {str(e)}")
        raise

    if config.backend == "sqlite":
        _enable_sqlite_foreign_keys(engine)
    return engine


def create_memory_engine() -> Engine:
    """Single-connection in-memory SQLite engine, shared across sessions."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_sqlite_foreign_keys(engine)
    return engine


def create_session_factory(engine: Engine | None = None) -> sessionmaker:
    """
    Create SQLAlchemy session factory.

    Example:
        >>> SessionLocal = create_session_factory()
        >>> with SessionLocal() as session:
        ...     pass
    """
    if engine is None:
        engine = create_database_engine()

    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def make_engine_and_session(connection_url: str | None = None) -> tuple[Engine, sessionmaker]:
    """
    Create engine and session factory, from an explicit URL or from configuration.

    Example:
        >>> engine, SessionLocal = make_engine_and_session("sqlite:///./checkins.db")
    """
    if connection_url:
        engine = create_engine(connection_url, pool_pre_ping=True)
        if connection_url.startswith("sqlite"):
            _enable_sqlite_foreign_keys(engine)
    else:
        engine = create_database_engine()
    return engine, create_session_factory(engine)

