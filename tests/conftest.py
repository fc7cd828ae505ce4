"""Shared fixtures: a file-backed SQLite database per test."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from finance_manager.config import Settings
from finance_manager.database import Database, reset_shared_state


def sqlite_url(tmp_path: Path) -> str:
    # File-backed so every pooled connection sees the same data.
    return f"sqlite:///{tmp_path / 'finance.sqlite3'}"


@pytest.fixture(autouse=True)
def _reset_shared_database_state():
    yield
    reset_shared_state()


@pytest.fixture()
def database(tmp_path: Path):
    db = Database(sqlite_url(tmp_path))
    db.initialize()
    yield db
    db.dispose()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=sqlite_url(tmp_path),
        environment="test",
        session_secret="tests-secret-key",
    )
