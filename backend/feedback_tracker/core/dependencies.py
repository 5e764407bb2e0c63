import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager

from fastapi import HTTPException
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from feedback_tracker.core.config import get_settings

logger = logging.getLogger(__name__)


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def build_engine(database_url: str) -> Engine:
    connect_args: dict[str, object] = {}
    if _is_sqlite(database_url):
        # Sync handlers run in FastAPI's threadpool; the connection crosses threads.
        connect_args = {"check_same_thread": False, "timeout": 30}

    new_engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)

    if _is_sqlite(database_url):
        # Comment/history rows rely on ON DELETE CASCADE.
        @event.listens_for(new_engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, _connection_record) -> None:  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()

    return new_engine


settings = get_settings()
engine = build_engine(settings.database_url) if settings.database_url else None
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine) if engine else None


def get_db() -> Generator[Session, None, None]:
    if SessionLocal is None:
        raise RuntimeError("DATABASE_URL is not configured")
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for scripts: commit on success, roll back on error."""
    if SessionLocal is None:
        raise RuntimeError("DATABASE_URL is not configured")
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def commit_or_conflict(db: Session, detail: str) -> None:
    """Commit, mapping a unique-constraint violation to 400."""
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Integrity error on commit: %s", detail)
        raise HTTPException(400, detail) from None
