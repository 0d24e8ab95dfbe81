from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from catalogue.config.settings import settings


def _is_sqlite(database_url: str) -> bool:
    return database_url.lower().startswith("sqlite")


def _validate_postgresql_driver() -> None:
    """Validate PostgreSQL driver is installed when using PostgreSQL.

    Must actually import psycopg2 (not just find_spec) because SQLAlchemy
    will try to import it when creating the engine.
    """
    try:
        import psycopg2  # noqa: F401

        logger.info("PostgreSQL driver (psycopg2) is available")
    except ImportError as e:
        logger.error(
            "⚠️ CRITICAL: PostgreSQL driver (psycopg2) is not installed!\n"
            "Install it with: pip install psycopg2-binary"
        )
        raise ImportError("PostgreSQL driver required. Install with: pip install psycopg2-binary") from e


def _install_sqlite_locking(engine: Engine) -> None:
    """Make every SQLite transaction take the database write lock at BEGIN.

    pysqlite defers BEGIN until the first DML statement, so a SELECT ... FOR
    UPDATE (rendered without FOR UPDATE on SQLite) would lock nothing. With
    BEGIN IMMEDIATE the read, the log insert and the conditional update run
    under one writer lock, and concurrent writers queue on the busy timeout.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def create_database_engine(database_url: str) -> Engine:
    """Create an engine for the given URL with the dialect-specific setup applied."""
    if _is_sqlite(database_url):
        logger.warning("Using SQLite database (local development only)")
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": settings.sqlite_busy_timeout},
            echo=False,
        )
        _install_sqlite_locking(engine)
        return engine

    if "postgres" in database_url.lower():
        _validate_postgresql_driver()
        logger.info("Using PostgreSQL database")

    return create_engine(
        database_url,
        connect_args={"connect_timeout": 10, "application_name": "building-catalogue"},
        echo=False,
        pool_pre_ping=True,
        pool_recycle=settings.db_pool_recycle,
    )


# Lazy initialization to avoid import-time database connections
_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def _get_engine() -> Engine:
    """Get or create the database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        logger.info(f"Initializing database engine: {settings.database_url}")
        _engine = create_database_engine(settings.database_url)
        logger.info("Database engine initialized")
    return _engine


def get_engine() -> Engine:
    """Get or create the database engine (public API)."""
    return _get_engine()


def _get_session_local() -> sessionmaker[Session]:
    """Get or create the session factory (lazy initialization)."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_get_engine())
        logger.info("Database session factory initialized")
    return _SessionLocal


def init_db() -> None:
    """Create all tables that do not exist yet."""
    from catalogue.db.models import Base

    engine = _get_engine()
    Base.metadata.create_all(bind=engine)
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("Database schema verified")


def get_db() -> Generator[Session, None, None]:
    """Get database session for FastAPI dependencies.

    Read-only endpoints use this; mutations open their own transaction
    through get_session() inside the service layer.
    """
    session = _get_session_local()()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def get_session(isolation_level: str | None = None) -> Generator[Session, None, None]:
    """Get a transactional session context manager.

    Commits when the block exits normally. Any exception rolls the whole
    transaction back and is re-raised unchanged, so a caller never observes
    a partially applied change.

    Args:
        isolation_level: Optional isolation level for this transaction
            (e.g. "SERIALIZABLE"). Applied before the first statement.
    """
    session = _get_session_local()()
    try:
        if isolation_level is not None:
            session.connection(execution_options={"isolation_level": isolation_level})
        yield session
        session.commit()
    except Exception as e:
        logger.debug(f"Rolling back session after {type(e).__name__}: {e}")
        session.rollback()
        raise
    finally:
        session.close()
