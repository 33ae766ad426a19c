"""
Database engine and session management for SQLAlchemy.
Provides connection pooling and session factories for the metadata ledger.
"""
import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    """
    Create a database engine for the given URL.

    SQLite connections are shared across request threads and the reclaimer
    thread, so same-thread checking is disabled. Other databases get a
    pre-pinged connection pool.

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        Engine: Configured SQLAlchemy engine
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=False,
        )

    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using them
        pool_size=10,  # Number of connections to keep open
        max_overflow=20,  # Additional connections if pool is full
        pool_recycle=3600,  # Recycle connections after 1 hour
        echo=False,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    """
    Create a session factory bound to an engine.

    Objects stay usable after commit so ledger records can be returned to
    callers once the session is closed.
    """
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


def init_db(engine: Engine) -> None:
    """
    Create the ledger tables if they do not exist.
    """
    from oneshot.models import Base

    logger.info("Initializing database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized successfully")


def check_db_connection(engine: Engine) -> bool:
    """
    Check if database connection is working.

    Returns:
        bool: True if connection is successful, False otherwise
    """
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check: FAILED - {e}")
        return False
