from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import text

import rental_tax_filer.config.paths as paths
import rental_tax_filer.db.engine as engine_mod
from rental_tax_filer.db.engine import resolve_database_url


@pytest.fixture
def base_dir(tmp_path, monkeypatch) -> Path:
    base = tmp_path / "app"
    base.mkdir()
    monkeypatch.setattr(paths, "app_base_dir", lambda: base)
    return base


@pytest.mark.unit
def test_relative_sqlite_file_is_anchored_at_base_dir(base_dir):
    url = resolve_database_url("sqlite:///bookings.db")
    assert url.database == str(base_dir / "bookings.db")


@pytest.mark.unit
def test_absolute_sqlite_file_is_kept(base_dir, tmp_path):
    target = tmp_path / "elsewhere" / "queue.db"
    url = resolve_database_url(f"sqlite:///{target}")
    assert url.database == str(target)


@pytest.mark.unit
@pytest.mark.parametrize("value", ["sqlite://", "sqlite:///:memory:"])
def test_in_memory_sqlite_is_unchanged(base_dir, value):
    assert resolve_database_url(value).database in (None, "", ":memory:")


@pytest.mark.unit
def test_server_urls_are_unchanged(base_dir):
    url = resolve_database_url("postgresql://user:pw@db.local:5432/bookings")
    assert url.database == "bookings"
    assert url.host == "db.local"


@pytest.mark.unit
def test_engine_opens_same_file_from_any_working_directory(base_dir, tmp_path, monkeypatch):
    """
    What it does:
    - Opens the default relative SQLite URL while the working directory is elsewhere.

    Why it matters:
    - A second store per directory would queue the same platform_id twice.

    Behavior:
    - The file is created next to .env, not in the current directory.
    """
    elsewhere = tmp_path / "elsewhere"
    elsewhere.mkdir()
    monkeypatch.chdir(elsewhere)
    monkeypatch.setattr(engine_mod, "require_database_url", lambda: "sqlite:///bookings.db")
    monkeypatch.setattr(engine_mod, "_ENGINE", None)
    monkeypatch.setattr(engine_mod, "SessionLocal", None)

    engine = engine_mod.get_engine()
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    finally:
        engine.dispose()

    assert (base_dir / "bookings.db").exists()
    assert not (elsewhere / "bookings.db").exists()
