from __future__ import annotations

from dataclasses import replace

import pytest
from sqlalchemy import func, select

import finance_manager.database as database_module
from finance_manager.config import LogVerbosity
from finance_manager.database import Database, get_database
from finance_manager.schema import UserRecord


def test_shared_handle_is_reused_when_retained(settings, monkeypatch) -> None:
    calls = []
    real_build = database_module.build_engine

    def counting_build(url, **kwargs):
        calls.append(url)
        return real_build(url, **kwargs)

    monkeypatch.setattr(database_module, "build_engine", counting_build)

    first = get_database(replace(settings, retain_handle_across_reload=True))
    second = get_database(replace(settings, retain_handle_across_reload=True))

    assert first is second
    assert calls == [settings.database_url]


def test_unretained_handles_share_one_pool(settings, monkeypatch) -> None:
    calls = []
    real_build = database_module.build_engine

    def counting_build(url, **kwargs):
        calls.append(url)
        return real_build(url, **kwargs)

    monkeypatch.setattr(database_module, "build_engine", counting_build)
    production = replace(settings, environment="production", retain_handle_across_reload=False)

    first = get_database(production)
    second = get_database(production)

    assert first is not second
    assert first.engine is second.engine
    assert len(calls) == 1


def test_verbose_handle_echoes_sql(settings) -> None:
    verbose = get_database(replace(settings, log_verbosity=LogVerbosity.VERBOSE))
    assert verbose.engine.echo is True


def test_quiet_handle_does_not_echo(tmp_path) -> None:
    database = Database(f"sqlite:///{tmp_path / 'quiet.sqlite3'}", verbosity=LogVerbosity.QUIET)
    try:
        assert database.engine.echo is False
    finally:
        database.dispose()


def test_session_scope_rolls_back_on_error(database: Database) -> None:
    with pytest.raises(RuntimeError):
        with database.session() as session:
            session.add(UserRecord(email="rollback@example.com", name="Rollback"))
            session.flush()
            raise RuntimeError("boom")

    with database.session() as session:
        assert session.scalar(select(func.count()).select_from(UserRecord)) == 0


def test_initialize_creates_missing_sqlite_directory(tmp_path) -> None:
    target = tmp_path / "nested" / "dir" / "finance.sqlite3"
    database = Database(f"sqlite:///{target}")
    try:
        database.initialize()
    finally:
        database.dispose()
    assert target.exists()
