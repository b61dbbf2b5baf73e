"""
Database configuration and session management for the durable booking store.
Supports SQLite and PostgreSQL through SQLAlchemy, with a connectivity flag
that engine lifecycle events keep current.

Version: 1.0.0
"""
from sqlalchemy import create_engine, text, inspect, event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool, QueuePool
from sqlalchemy.exc import (
    SQLAlchemyError,
    DisconnectionError,
    OperationalError
)
import logging
import os
import time
import threading
from contextlib import contextmanager
from typing import Generator, Optional, Dict, Any
from pathlib import Path

from .config import settings

logger = logging.getLogger(__name__)

# Create declarative base
Base = declarative_base()

REQUIRED_TABLES = ['bookings', 'user_preferences', 'emergency_alerts']


class ConnectionHealth:
    """
    Cached connectivity flag for one engine.

    Updated by engine events (connect, handle_error) and by explicit
    checks; read by the storage gateway before every operation so no
    per-call ping is needed.
    """

    def __init__(self, healthy: bool = False):
        self._healthy = healthy
        self._lock = threading.Lock()
        self.last_change: Optional[float] = None
        self.last_error: Optional[str] = None

    @property
    def healthy(self) -> bool:
        return self._healthy

    def mark_up(self) -> None:
        with self._lock:
            if not self._healthy:
                logger.info("Durable store marked healthy")
                self.last_change = time.time()
                self.last_error = None
            self._healthy = True

    def mark_down(self, reason: str = "") -> None:
        with self._lock:
            if self._healthy:
                logger.warning(f"Durable store marked unhealthy: {reason}")
                self.last_change = time.time()
            self._healthy = False
            self.last_error = reason or self.last_error


def _enable_sqlite_wal_mode(dbapi_connection, connection_record):
    """Enable WAL mode for SQLite for better concurrency."""
    try:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()
        logger.debug("SQLite WAL mode enabled")
    except Exception as e:
        logger.warning(f"Failed to enable SQLite optimizations: {e}")


def _attach_health_listeners(engine: Engine, health: ConnectionHealth) -> None:
    """Keep the health flag in step with the engine's connection lifecycle."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        health.mark_up()

    @event.listens_for(engine, "handle_error")
    def _on_error(context):
        if context.is_disconnect or isinstance(context.original_exception, OperationalError):
            health.mark_down(str(context.original_exception))


def create_database_engine(
    database_url: Optional[str] = None,
    echo: Optional[bool] = None,
    health: Optional[ConnectionHealth] = None
) -> Engine:
    """
    Create a synchronous engine for the durable store.

    Args:
        database_url: SQLAlchemy URL, defaults to settings.database_url
        echo: Echo SQL, defaults to settings.database_echo
        health: Flag to attach to the engine's lifecycle events

    Returns:
        Configured engine
    """
    url = database_url or settings.database_url
    echo = settings.database_echo if echo is None else echo

    if not url:
        raise ValueError("No database URL configured")

    logger.info("Creating database engine...")

    if url.startswith("sqlite"):
        db_path = url.replace('sqlite:///', '')
        in_memory = db_path in ('', ':memory:') or url == 'sqlite://'

        # Ensure directory exists
        if not in_memory and not os.path.isabs(db_path):
            db_dir = os.path.dirname(db_path)
            if db_dir:
                Path(db_dir).mkdir(parents=True, exist_ok=True)

        engine = create_engine(
            url,
            connect_args={
                "check_same_thread": False,
                "timeout": 20
            },
            poolclass=StaticPool,
            echo=echo,
            pool_pre_ping=True
        )

        if not in_memory:
            event.listen(engine, "connect", _enable_sqlite_wal_mode)

        logger.info(f"SQLite database engine created: {db_path or ':memory:'}")

    elif url.startswith("postgresql"):
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_pool_overflow,
            pool_recycle=settings.database_pool_recycle,
            pool_pre_ping=True,
            echo=echo,
            connect_args={
                "application_name": settings.app_name,
                "connect_timeout": 10
            }
        )
        logger.info(
            f"PostgreSQL database engine created "
            f"(pool_size={settings.database_pool_size}, "
            f"max_overflow={settings.database_pool_overflow})"
        )

    else:
        engine = create_engine(url, pool_pre_ping=True, echo=echo)
        logger.info("Generic database engine created")

    if health is not None:
        _attach_health_listeners(engine, health)

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False
    )


@contextmanager
def get_db_context(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Commits on success, rolls back and re-raises on failure.
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"Database context error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def init_db(engine: Engine) -> None:
    """
    Create the durable store tables.

    Raises:
        RuntimeError: If required tables are missing after creation
    """
    logger.info("Initializing database...")

    # Import all models to register with Base
    from .models import booking, preferences, alert  # noqa: F401

    start_time = time.time()
    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info(f"Database tables created in {time.time() - start_time:.2f}s")

    inspector = inspect(engine)
    table_names = inspector.get_table_names()
    missing_tables = [table for table in REQUIRED_TABLES if table not in table_names]

    if missing_tables:
        raise RuntimeError(f"Failed to create required tables: {missing_tables}")

    logger.info(f"Database tables: {table_names}")


def check_db_connection(
    engine: Engine,
    health: Optional[ConnectionHealth] = None,
    max_retries: int = 1,
    retry_delay: float = 1.0
) -> bool:
    """
    Check the database with SELECT 1 and update the health flag.

    Args:
        engine: Engine to check
        health: Flag to update with the outcome
        max_retries: Maximum attempts
        retry_delay: Delay between attempts in seconds

    Returns:
        True if connection is healthy
    """
    for attempt in range(max_retries):
        try:
            with engine.connect() as connection:
                result = connection.execute(text("SELECT 1"))
                if result.fetchone()[0] == 1:
                    logger.debug("Database connection check passed")
                    if health is not None:
                        health.mark_up()
                    return True

        except (DisconnectionError, OperationalError) as e:
            logger.warning(
                f"Database connection check failed "
                f"(attempt {attempt + 1}/{max_retries}): {e}"
            )
            if health is not None:
                health.mark_down(str(e))
            if attempt < max_retries - 1:
                time.sleep(retry_delay)
                retry_delay *= 2
        except SQLAlchemyError as e:
            logger.error(f"Unexpected database connection error: {e}")
            if health is not None:
                health.mark_down(str(e))
            break

    return False


def get_database_info(engine: Engine, health: Optional[ConnectionHealth] = None) -> Dict[str, Any]:
    """Database information for monitoring. Credentials are stripped from the URL."""
    url = str(engine.url)
    info = {
        "url": url.split('@')[-1] if '@' in url else url,
        "dialect": engine.dialect.name,
        "healthy": health.healthy if health is not None else None
    }

    if health is not None and health.last_error:
        info["last_error"] = health.last_error

    pool = engine.pool
    if isinstance(pool, QueuePool):
        info.update({
            "pool_size": pool.size(),
            "checked_out": pool.checkedout()
        })

    return info


def cleanup_db(engine: Optional[Engine]) -> None:
    """Dispose of the engine's pool."""
    if engine is None:
        return

    try:
        engine.dispose()
        logger.info("Database engine disposed")
    except SQLAlchemyError as e:
        logger.error(f"Error disposing engine: {e}")


__all__ = [
    'Base',
    'ConnectionHealth',
    'REQUIRED_TABLES',
    'create_database_engine',
    'create_session_factory',
    'get_db_context',
    'init_db',
    'check_db_connection',
    'get_database_info',
    'cleanup_db'
]
