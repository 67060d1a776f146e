"""Unit tests for the application entrypoint module."""
from __future__ import annotations

import logging
from pathlib import Path

import pytest
from fastapi import FastAPI

from ledger_import import main
from ledger_import.core.settings import Settings


def test_ensure_sqlite_directory_creates_parent(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "db.sqlite"
    settings = Settings(database_url=f"sqlite:///{db_path}", environment="test")

    assert not db_path.parent.exists()

    main._ensure_sqlite_directory(settings)

    assert db_path.parent.is_dir()


def test_ensure_sqlite_directory_ignores_memory_and_other_databases(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    main._ensure_sqlite_directory(Settings(database_url="sqlite:///:memory:"))
    main._ensure_sqlite_directory(Settings(database_url="postgresql+psycopg://user:pw@db/ledger"))

    assert list(tmp_path.iterdir()) == []


def test_configure_logging_uses_settings_level(monkeypatch) -> None:
    received: dict[str, object] = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: received.update(kwargs))

    main._configure_logging(Settings(log_level="debug"))

    assert received["level"] == "DEBUG"


@pytest.mark.asyncio
async def test_lifespan_initializes_and_disposes_resources(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_settings = object()
    ensure_calls: list[object] = []
    schema_calls: list[bool] = []
    disposed: list[bool] = []

    class DummyEngine:
        def dispose(self) -> None:
            disposed.append(True)

    monkeypatch.setattr(main, "get_settings", lambda: fake_settings)
    monkeypatch.setattr(main, "_ensure_sqlite_directory", ensure_calls.append)
    monkeypatch.setattr(main, "create_database_schema", lambda: schema_calls.append(True))
    monkeypatch.setattr(main, "ENGINE", DummyEngine())

    app = FastAPI()

    async with main.lifespan(app):
        assert app.state.settings is fake_settings

    assert ensure_calls == [fake_settings]
    assert schema_calls == [True]
    assert disposed == [True]


def test_create_app_configures_routes_and_metadata(monkeypatch: pytest.MonkeyPatch) -> None:
    custom_settings = Settings(app_name="Test App", database_url="sqlite:///:memory:", environment="test")
    monkeypatch.setattr(main, "get_settings", lambda: custom_settings)

    application = main.create_app()

    assert application.title == "Test App"
    assert application.version == "0.1.0"
    assert application.router.lifespan_context is main.lifespan

    paths = {getattr(route, "path", None) for route in application.routes}
    assert "/api/health" in paths
    assert "/api/users/{user_id}/imports" in paths
    assert "/api/users/{user_id}/imports/parse" in paths


def test_module_level_app_is_fastapi_instance() -> None:
    assert isinstance(main.app, FastAPI)
