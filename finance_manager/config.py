"""Runtime configuration for the finance manager, resolved once at startup."""
from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

ENVIRONMENTS = frozenset({"development", "production", "test"})


class LogVerbosity(str, Enum):
    QUIET = "quiet"
    VERBOSE = "verbose"


TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _env_flag(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    value = env.get(name)
    if value is None or not value.strip():
        return default
    normalised = value.strip().lower()
    if normalised in TRUE_VALUES:
        return True
    if normalised in FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag (1/true/yes/on or 0/false/no/off); got '{value}'")


def resolve_database_url(env_value: Optional[str]) -> str:
    """Resolve the database URL, defaulting to a SQLite file under ``data/``."""

    if env_value and env_value.strip():
        return env_value.strip()
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return f"sqlite:///{(base_dir / 'finance.sqlite3').resolve(strict=False)}"


@dataclass(frozen=True)
class Settings:
    """Options the entry point resolves and hands to every component."""

    database_url: str
    environment: str = "development"
    log_verbosity: LogVerbosity = LogVerbosity.VERBOSE
    retain_handle_across_reload: bool = True
    session_secret: Optional[str] = None
    session_secure: bool = False
    auth_url: Optional[str] = None
    auth_api_key: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from environment variables."""

    env = os.environ if environ is None else environ

    environment = env.get("FINANCE_ENV", "development").strip().lower() or "development"
    if environment not in ENVIRONMENTS:
        raise ValueError(
            f"FINANCE_ENV must be one of {', '.join(sorted(ENVIRONMENTS))}; got '{environment}'"
        )

    raw_verbosity = env.get("FINANCE_LOG_VERBOSITY")
    if raw_verbosity:
        try:
            verbosity = LogVerbosity(raw_verbosity.strip().lower())
        except ValueError as exc:
            raise ValueError(
                f"FINANCE_LOG_VERBOSITY must be 'quiet' or 'verbose'; got '{raw_verbosity}'"
            ) from exc
    elif environment == "development":
        verbosity = LogVerbosity.VERBOSE
    else:
        verbosity = LogVerbosity.QUIET

    retain = _env_flag(env, "FINANCE_RETAIN_DB_HANDLE", environment != "production")

    auth_url = env.get("FINANCE_AUTH_URL")
    return Settings(
        database_url=resolve_database_url(env.get("DATABASE_URL")),
        environment=environment,
        log_verbosity=verbosity,
        retain_handle_across_reload=retain,
        session_secret=env.get("FINANCE_SESSION_SECRET") or None,
        session_secure=_env_flag(env, "FINANCE_SESSION_SECURE", environment == "production"),
        auth_url=auth_url.strip().rstrip("/") if auth_url and auth_url.strip() else None,
        auth_api_key=env.get("FINANCE_AUTH_API_KEY") or None,
    )


__all__ = ["ENVIRONMENTS", "LogVerbosity", "Settings", "load_settings", "resolve_database_url"]
