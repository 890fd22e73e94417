"""
Database Persistence Layer - Core Engine.

============================================================
RELATIONAL STORE ACCESS
============================================================

Requirements:
- SQLAlchemy ORM
- Explicit transaction management
- Structured logging
- Hard failures on persistence errors

Services receive a session factory and open one transaction
scope per unit of work (one lifecycle operation, or one record
inside a sweep).

============================================================
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from core.exceptions import DatabasePersistenceError, ModerationError

logger = logging.getLogger(__name__)

# =============================================================
# DECLARATIVE BASE
# =============================================================

Base = declarative_base()

# =============================================================
# DATABASE ENGINE
# =============================================================

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None

REQUIRED_TABLES = [
    "ban_records",
    "price_proposals",
    "proposal_statistics",
]


def create_database_engine(url: str, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine.

    In-memory SQLite gets a StaticPool so that every session (and
    the sweeper worker threads) share the one connection.

    Args:
        url: SQLAlchemy database URL
        echo: Log SQL statements
    """
    logger.info(f"Creating database engine for: {url.split('@')[-1]}")

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, future=True, **kwargs)
    else:
        engine = create_engine(
            url,
            echo=echo,
            future=True,
            pool_size=10,
            max_overflow=20,
            pool_timeout=30,
            pool_recycle=1800,
            pool_pre_ping=True,
        )

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Database connection established")

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to engine."""
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


def configure_database(url: str, echo: bool = False) -> sessionmaker:
    """Create the process-wide engine and session factory."""
    global _engine, _SessionFactory

    _engine = create_database_engine(url, echo=echo)
    _SessionFactory = create_session_factory(_engine)
    return _SessionFactory


def get_engine() -> Engine:
    """Get the process-wide engine."""
    if _engine is None:
        raise DatabasePersistenceError("Database has not been configured")
    return _engine


def get_session_factory() -> sessionmaker:
    """Get the process-wide session factory."""
    if _SessionFactory is None:
        raise DatabasePersistenceError("Database has not been configured")
    return _SessionFactory


# =============================================================
# SESSION MANAGEMENT
# =============================================================


@contextmanager
def transaction_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for explicit transaction boundaries.

    Commits only if no exception occurs.
    Rolls back on ANY exception.

    SQLAlchemy errors are re-raised as DatabasePersistenceError;
    ModerationError subclasses raised inside the scope propagate
    unchanged so the caller can still map them to a result.

    Usage:
        with transaction_scope(factory) as session:
            session.add(record)
            # Commits automatically at end
    """
    session = session_factory()
    try:
        yield session
        session.commit()
        logger.debug("Database transaction committed successfully")
    except SQLAlchemyError as e:
        logger.error(f"Database transaction failed, rolling back: {e}")
        session.rollback()
        raise DatabasePersistenceError(f"Transaction failed: {e}", cause=e) from e
    except ModerationError:
        session.rollback()
        raise
    except Exception as e:
        logger.error(f"Transaction failed with unexpected error: {e}")
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================
# DATABASE INITIALIZATION
# =============================================================


def create_all_tables(engine: Engine) -> None:
    """
    Create all tables defined in ORM models.

    Raises:
        DatabasePersistenceError if table creation fails
    """
    from . import models  # noqa: F401

    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise DatabasePersistenceError(f"Table creation failed: {e}", cause=e) from e


def verify_required_tables(engine: Engine) -> None:
    """Verify all required tables exist."""
    existing = set(inspect(engine).get_table_names())
    missing = [t for t in REQUIRED_TABLES if t not in existing]
    if missing:
        raise DatabasePersistenceError(
            f"Missing required tables: {', '.join(missing)}",
            context={"missing": missing},
        )


def initialize_database(url: str, echo: bool = False) -> sessionmaker:
    """
    Full database initialization sequence.

    1. Create engine and session factory
    2. Create tables if not exist
    3. Verify tables exist

    This MUST be called at application startup.
    """
    logger.info("=" * 60)
    logger.info("INITIALIZING DATABASE")
    logger.info("=" * 60)

    try:
        factory = configure_database(url, echo=echo)
        create_all_tables(get_engine())
        verify_required_tables(get_engine())
    except Exception as e:
        logger.critical(f"DATABASE INITIALIZATION FAILED: {e}")
        raise

    logger.info("DATABASE INITIALIZATION COMPLETE")
    return factory
