"""Command-line interface for the AI Finance Manager service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Sequence


def _running_in_virtualenv() -> bool:
    """Return ``True`` when the current interpreter is executing inside a venv."""

    base_prefix = getattr(sys, "base_prefix", sys.prefix)
    return sys.prefix != base_prefix


def _bootstrap_virtualenv() -> None:
    """Re-exec the script using the bundled virtualenv interpreter when available."""

    if _running_in_virtualenv():
        return

    root = Path(__file__).resolve().parent
    venv_dir = root / ".venv"
    if not venv_dir.is_dir():
        return

    candidates = (
        venv_dir / "bin" / "python",
        venv_dir / "bin" / "python3",
        venv_dir / "Scripts" / "python.exe",
        venv_dir / "Scripts" / "python",
    )

    script = str(Path(__file__).resolve())
    for candidate in candidates:
        if candidate.exists():
            os.execv(str(candidate), [str(candidate), script, *sys.argv[1:]])


if __name__ == "__main__":
    _bootstrap_virtualenv()

from sqlalchemy.exc import SQLAlchemyError

from finance_manager.config import LogVerbosity, Settings, load_settings
from finance_manager.database import Database, reset_shared_state
from finance_manager.models import ExternalIdentity

logger = logging.getLogger("finance_manager.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="AI Finance Manager utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the database schema")

    serve_parser = subparsers.add_parser("serve", help="Start the web application")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the HTTP server (default: 8000)",
    )

    sync_parser = subparsers.add_parser(
        "sync-user", help="Create or update a local user from an email address"
    )
    sync_parser.add_argument("email", help="Email address identifying the user")
    sync_parser.add_argument("--name", default=None, help="Display name to store")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "sync-user"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _configure_logging(settings: Settings) -> None:
    level = logging.DEBUG if settings.log_verbosity is LogVerbosity.VERBOSE else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def _open_database(settings: Settings) -> Database:
    database = Database(settings.database_url, verbosity=settings.log_verbosity)
    database.initialize()
    logger.info("Database ready (%s)", settings.environment)
    return database


def _serve(*, database: Database, settings: Settings, host: str, port: int) -> None:
    from finance_manager.web import create_app
    import uvicorn

    logger.info("Starting web application on http://%s:%s", host, port)
    app = create_app(database=database, settings=settings, initialize_database=False)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _sync_user(database: Database, email: str, name: str | None) -> int:
    from finance_manager.user_sync import sync_user

    identity = ExternalIdentity(id=None, email=email, user_metadata={"name": name} if name else {})
    try:
        user = sync_user(database, identity)
    except (ValueError, SQLAlchemyError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Synced user #{user.id}: {user.name} <{user.email}>")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    settings = load_settings()
    _configure_logging(settings)

    database = _open_database(settings)
    try:
        if args.command == "serve":
            _serve(database=database, settings=settings, host=args.host, port=args.port)
        elif args.command == "sync-user":
            return _sync_user(database, args.email, args.name)
        elif args.command == "init-db":
            print("Database initialisation complete.")
    finally:
        database.dispose()
        reset_shared_state()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
