"""SQLAlchemy-backed persistence handle for the finance manager.

The pooled engine for a URL is built at most once per process. The entry
point constructs a :class:`Database`, hands it to the web app and disposes
it on shutdown; :func:`get_database` is the shared accessor for code that
runs outside that lifecycle (CLI helpers, development reloads).
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from .config import LogVerbosity, Settings
from .schema import Base

logger = logging.getLogger("finance_manager.database")


def _ensure_sqlite_directory(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return
    if parsed.database and parsed.database != ":memory:":
        Path(parsed.database).expanduser().parent.mkdir(parents=True, exist_ok=True)


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _record):  # pragma: no cover - driver bridge
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()


def build_engine(url: str, *, verbosity: LogVerbosity = LogVerbosity.QUIET) -> Engine:
    """Create the pooled engine for ``url``."""

    _ensure_sqlite_directory(url)
    engine = create_engine(
        url,
        echo=verbosity is LogVerbosity.VERBOSE,
        pool_pre_ping=True,
    )
    if engine.dialect.name == "sqlite":
        _enable_sqlite_foreign_keys(engine)
    logger.debug("Created connection pool for %s", engine.url.render_as_string(hide_password=True))
    return engine


class Database:
    """Owns one connection pool and the session factory bound to it."""

    def __init__(
        self,
        url: str,
        *,
        verbosity: LogVerbosity = LogVerbosity.QUIET,
        engine: Optional[Engine] = None,
    ) -> None:
        self._url = url
        self._verbosity = verbosity
        self._engine = engine if engine is not None else build_engine(url, verbosity=verbosity)
        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=self._engine, expire_on_commit=False, class_=Session
        )

    @property
    def url(self) -> str:
        return self._url

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        Base.metadata.create_all(bind=self._engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self._engine.dispose()


_lock = threading.Lock()
_engines: Dict[str, Engine] = {}
_shared: Optional[Database] = None


def get_database(settings: Settings) -> Database:
    """Return the process-wide database handle for ``settings``.

    The engine is always cached per URL. The handle itself is kept on the
    shared slot only when ``settings.retain_handle_across_reload`` is set;
    otherwise callers get a fresh handle over the cached engine.
    """

    global _shared
    with _lock:
        if _shared is not None and _shared.url == settings.database_url:
            return _shared

        engine = _engines.get(settings.database_url)
        if engine is None:
            engine = build_engine(settings.database_url, verbosity=settings.log_verbosity)
            _engines[settings.database_url] = engine

        database = Database(
            settings.database_url,
            verbosity=settings.log_verbosity,
            engine=engine,
        )
        if settings.retain_handle_across_reload:
            _shared = database
        return database


def reset_shared_state() -> None:
    """Dispose every cached pool and forget the shared handle."""

    global _shared
    with _lock:
        for engine in _engines.values():
            engine.dispose()
        _engines.clear()
        _shared = None


__all__ = ["Database", "build_engine", "get_database", "reset_shared_state"]
