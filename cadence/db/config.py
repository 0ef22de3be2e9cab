"""Database configuration for the recurrence engine."""
from typing import Generator
from sqlmodel import create_engine, Session
import os
from dotenv import load_dotenv
from sqlalchemy import event
from sqlalchemy.engine import Engine

from cadence.utils.logger import get_logger

logger = get_logger(__name__)

load_dotenv()

# Use the DATABASE_URL from environment variable, with fallback to SQLite for local dev
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./cadence.db")


def create_db_engine(url: str, **kwargs) -> Engine:
    """Create an engine; SQLite connections get foreign keys and WAL switched on."""
    is_sqlite = url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    engine = create_engine(url, echo=False, connect_args=connect_args, **kwargs)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            # ON DELETE CASCADE / SET NULL need foreign keys enabled per connection
            cursor.execute("PRAGMA foreign_keys=ON")
            if ":memory:" not in url:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    logger.info("Database engine created", backend=url.split(":", 1)[0])
    return engine


engine = create_db_engine(DATABASE_URL)


def get_session() -> Generator[Session, None, None]:
    """Dependency for getting database sessions."""
    with Session(engine) as session:
        yield session
