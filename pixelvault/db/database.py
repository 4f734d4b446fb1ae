"""SQLAlchemy engine and sessions for image records and database-backed blobs."""

import logging
from pathlib import Path
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from pixelvault.models import Base
from config import get_settings

logger = logging.getLogger(__name__)

SQLITE_FILE_PREFIX = "sqlite:///"


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for ``database_url``.

    File-backed SQLite databases get their parent directory created and run
    in WAL mode so readers of cached variations do not block the writer
    filling them. Other databases use a bounded connection pool.
    """
    options: dict[str, Any]
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
    else:
        options = {
            "pool_size": 5,
            "max_overflow": 10,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }

    is_sqlite_file = database_url.startswith(SQLITE_FILE_PREFIX) and ":memory:" not in database_url
    if is_sqlite_file:
        Path(database_url[len(SQLITE_FILE_PREFIX):]).parent.mkdir(parents=True, exist_ok=True)

    db_engine = create_engine(database_url, echo=echo, **options)

    if is_sqlite_file:
        @event.listens_for(db_engine, "connect")
        def enable_wal(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    return db_engine


settings = get_settings()

engine = create_db_engine(settings.database_url, echo=settings.database_echo)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create the record and blob tables if they do not exist."""
    logger.info(f"Creating database tables at {settings.database_url}")
    Base.metadata.create_all(bind=engine)
    logger.info(f"Database ready with tables: {', '.join(sorted(Base.metadata.tables))}")


def drop_db() -> None:
    """Drop every table. Only meant for tests and local development."""
    logger.warning(f"Dropping all database tables at {settings.database_url}")
    Base.metadata.drop_all(bind=engine)
