"""
Database engine and session factory.

SPACECAL_DB_URL selects the backend: SQLite (default, also used by tests)
or PostgreSQL with a connection pool. A ``.env`` file next to ``src/`` is
loaded first when present.
"""

import os
from pathlib import Path
from typing import Generator

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.src.utils.logging_config import get_logger


logger = get_logger("db")

env_path = Path(__file__).parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.environ.get("SPACECAL_DB_URL", "sqlite:///./spacecal.db")


def _build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        built = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )

        # ON DELETE CASCADE from series to overrides needs this per connection
        @event.listens_for(built, "connect")
        def _enable_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return built

    return create_engine(
        url,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=3600,
        future=True,
    )


engine = _build_engine(DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autoflush=False, future=True)


def get_db() -> Generator[Session, None, None]:
    """
    Yield a session and close it afterwards.

    Usage:
        for db in get_db():
            SeriesService(db).split_series_from(guid, now, patch)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create any missing calendar tables."""
    from backend.src.models import Base

    Base.metadata.create_all(bind=engine)
    logger.info(f"Initialized database schema ({engine.url.get_backend_name()})")


def dispose_engine() -> None:
    """Close all pooled connections."""
    engine.dispose()
