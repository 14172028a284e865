"""
CVR Forecast Database Configuration

Sets up the SQLAlchemy engine, session factory, and declarative base.
Uses SQLite locally with a file-based database (cvr.db).

Architecture:
    - SQLAlchemy 2.0 style with mapped_column and type annotations
    - SQLite for local development; change DATABASE_URL only to switch to PostgreSQL
    - All models inherit from Base (defined here)
    - Session management via get_db() dependency for FastAPI

Environment:
    DATABASE_URL         SQLAlchemy URL (default: sqlite file next to this module)
    SQLALCHEMY_ECHO      "true" to echo SQL
    CVR_RUN_RATE_WINDOW  trailing actual periods averaged by the run-rate method
"""

import os
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

_DB_DIR = Path(__file__).parent
DATABASE_URL = os.environ.get(
    "DATABASE_URL",
    f"sqlite:///{_DB_DIR / 'cvr.db'}"
)

RUN_RATE_WINDOW = int(os.environ.get("CVR_RUN_RATE_WINDOW", "3"))

# Request handlers run in a threadpool, so SQLite connections are shared across threads.
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in DATABASE_URL else {},
    pool_pre_ping=True,
    echo=os.environ.get("SQLALCHEMY_ECHO", "false").lower() == "true",
)


@event.listens_for(engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Turn on foreign keys (cascades from periods) and WAL journaling."""
    if "sqlite" in DATABASE_URL:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Base for contracts, periods, ledger records, changes and scenarios."""
    pass


def get_db():
    """Request-scoped session; forecast writes commit or roll back inside it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create any missing tables. Used at startup and by the seed script."""
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
