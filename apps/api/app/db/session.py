from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings


def build_engine(database_url: str) -> Engine:
    is_sqlite = database_url.startswith("sqlite")
    engine_kwargs: dict = {"pool_pre_ping": True}

    if is_sqlite:
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        # A single shared connection keeps in-memory databases alive across sessions
        if ":memory:" in database_url:
            engine_kwargs["poolclass"] = StaticPool

    built = create_engine(database_url, **engine_kwargs)

    if is_sqlite:

        @event.listens_for(built, "connect")
        def _enable_foreign_keys(dbapi_connection, _record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return built


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
