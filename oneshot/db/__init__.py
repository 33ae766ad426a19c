"""
Database module for SQLAlchemy engine and session management.
"""
from oneshot.db.session import build_engine, build_session_factory, init_db, check_db_connection

__all__ = ["build_engine", "build_session_factory", "init_db", "check_db_connection"]
