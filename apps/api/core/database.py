"""
Database connection management with connection pooling.

The engine and the `SessionLocal` factory are created once at import and
live for the whole process. `SessionLocal` is the handle injected into the
goal engine components; each operation opens its own session from it.
"""
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for `url`.

    PostgreSQL gets a QueuePool sized from settings. SQLite (tests, local
    tinkering) gets a single shared connection and explicit BEGIN handling
    so SAVEPOINTs behave like they do on Postgres.
    """
    if url.startswith("sqlite"):
        sqlite_engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )

        @event.listens_for(sqlite_engine, "connect")
        def _disable_pysqlite_transactions(dbapi_conn, connection_record):
            # Let SQLAlchemy emit BEGIN itself (pysqlite defers it otherwise).
            dbapi_conn.isolation_level = None

        @event.listens_for(sqlite_engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return sqlite_engine

    pg_engine = create_engine(
        url,
        poolclass=QueuePool,
        pool_size=settings.DB_POOL_SIZE,  # Number of connections to maintain
        max_overflow=settings.DB_MAX_OVERFLOW,  # Additional connections beyond pool_size
        pool_timeout=settings.DB_POOL_TIMEOUT,  # Seconds to wait for connection
        pool_recycle=settings.DB_POOL_RECYCLE,  # Recycle connections after this many seconds
        pool_pre_ping=True,  # Verify connections before using
        echo=echo,
    )

    @event.listens_for(pg_engine, "checkout")
    def receive_checkout(dbapi_conn, connection_record, connection_proxy):
        """Log when connection is checked out from pool."""
        logger.debug("Connection checked out from pool")

    @event.listens_for(pg_engine, "checkin")
    def receive_checkin(dbapi_conn, connection_record):
        """Log when connection is returned to pool."""
        logger.debug("Connection returned to pool")

    return pg_engine


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=bind,
        expire_on_commit=False,  # Prevent lazy loading issues
    )


engine = build_engine(settings.database_url, echo=settings.DEBUG)

# Session factory
SessionLocal = build_session_factory(engine)


def check_db_connection() -> bool:
    """
    Check if database connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
