from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text

import app.main as main_module
from app.config import settings
from app.db.migration_check import (
    alembic_ini_path,
    assert_db_is_up_to_date,
    get_alembic_head_revision,
    get_current_db_revision,
    maybe_create_schema,
)
from app.main import app


@pytest.fixture
def sqlite_engine(tmp_path: Path):
    db_path = tmp_path / "migration-check.db"
    engine = create_engine(f"sqlite+pysqlite:///{db_path}")
    try:
        yield engine
    finally:
        engine.dispose()


def _stamp(engine, revision: str) -> None:
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE alembic_version (version_num VARCHAR(32) NOT NULL)"))
        connection.execute(
            text("INSERT INTO alembic_version (version_num) VALUES (:rev)"), {"rev": revision}
        )


def _table_exists(engine, name: str) -> bool:
    with engine.begin() as connection:
        found = connection.execute(
            text("SELECT name FROM sqlite_master WHERE type='table' AND name=:name"),
            {"name": name},
        ).scalar_one_or_none()
    return found == name


def test_alembic_config_ships_with_the_app():
    assert alembic_ini_path().is_file()
    assert get_alembic_head_revision()


def test_assert_db_is_up_to_date_fails_when_alembic_version_missing(sqlite_engine):
    assert get_current_db_revision(sqlite_engine) is None
    with pytest.raises(RuntimeError, match="Database schema not up to date"):
        assert_db_is_up_to_date(sqlite_engine)


def test_assert_db_is_up_to_date_fails_on_stale_revision(sqlite_engine):
    _stamp(sqlite_engine, "0000_stale")

    with pytest.raises(RuntimeError, match="alembic upgrade head"):
        assert_db_is_up_to_date(sqlite_engine)


def test_assert_db_is_up_to_date_passes_at_head(sqlite_engine):
    head = get_alembic_head_revision()
    _stamp(sqlite_engine, head)

    assert get_current_db_revision(sqlite_engine) == head
    assert_db_is_up_to_date(sqlite_engine)


def test_maybe_create_schema_creates_tables_when_enabled(sqlite_engine, monkeypatch):
    monkeypatch.setattr(settings, "auto_create_schema", True)
    monkeypatch.setattr(settings, "app_mode", "development")

    assert maybe_create_schema(sqlite_engine) is True
    assert _table_exists(sqlite_engine, "deliveries")
    assert _table_exists(sqlite_engine, "service_requests")


def test_maybe_create_schema_is_skipped_when_disabled(sqlite_engine, monkeypatch):
    monkeypatch.setattr(settings, "auto_create_schema", False)

    assert maybe_create_schema(sqlite_engine) is False
    assert not _table_exists(sqlite_engine, "deliveries")


def test_maybe_create_schema_refuses_production(sqlite_engine, monkeypatch):
    monkeypatch.setattr(settings, "auto_create_schema", True)
    monkeypatch.setattr(settings, "app_mode", "production")

    with pytest.raises(RuntimeError, match="production"):
        maybe_create_schema(sqlite_engine)


def test_app_startup_fails_fast_in_production_when_revision_missing(tmp_path: Path, monkeypatch):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'startup-fail.db'}")
    monkeypatch.setattr(main_module, "engine", engine)
    monkeypatch.setattr(settings, "app_mode", "production")
    monkeypatch.setattr(settings, "testing", True)

    try:
        with pytest.raises(RuntimeError, match="Database schema not up to date"):
            with TestClient(app):
                pass
    finally:
        engine.dispose()


def test_app_startup_creates_schema_in_development(tmp_path: Path, monkeypatch):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'startup-dev.db'}")
    monkeypatch.setattr(main_module, "engine", engine)
    monkeypatch.setattr(settings, "app_mode", "development")
    monkeypatch.setattr(settings, "testing", True)
    monkeypatch.setattr(settings, "auto_create_schema", True)

    try:
        with TestClient(app):
            pass
        assert _table_exists(engine, "profiles")
    finally:
        engine.dispose()


def test_app_startup_passes_when_db_at_head(tmp_path: Path, monkeypatch):
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'startup-head.db'}")
    _stamp(engine, get_alembic_head_revision())
    monkeypatch.setattr(main_module, "engine", engine)
    monkeypatch.setattr(settings, "app_mode", "production")
    monkeypatch.setattr(settings, "testing", True)

    try:
        with TestClient(app):
            pass
    finally:
        engine.dispose()
