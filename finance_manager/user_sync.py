"""Mirror identities from the external auth provider into the local user table."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .database import Database
from .models import ExternalIdentity, User
from .schema import NAME_MAX_LENGTH, UserRecord

logger = logging.getLogger("finance_manager.user_sync")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def stored_name(identity: ExternalIdentity) -> str | None:
    """Display name for ``identity``, cut to fit the ``users.name`` column."""

    name = identity.display_name
    return name[:NAME_MAX_LENGTH] if name is not None else None


def record_to_user(record: UserRecord) -> User:
    return User(
        id=record.id,
        email=record.email,
        name=record.name,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _upsert_statement(dialect_name: str):
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return None
    return insert(UserRecord)


def _upsert(session: Session, dialect_name: str, *, email: str, name: str | None, now: datetime) -> None:
    insert_stmt = _upsert_statement(dialect_name)
    if insert_stmt is None:
        # Dialects without ON CONFLICT: read-modify-write inside the session's transaction.
        record = session.scalars(select(UserRecord).where(UserRecord.email == email)).one_or_none()
        if record is None:
            session.add(UserRecord(email=email, name=name, created_at=now, updated_at=now))
        else:
            record.name = name
            record.updated_at = now
        session.flush()
        return

    stmt = insert_stmt.values(email=email, name=name, created_at=now, updated_at=now)
    stmt = stmt.on_conflict_do_update(
        index_elements=[UserRecord.email],
        set_={"name": stmt.excluded.name, "updated_at": stmt.excluded.updated_at},
    )
    session.execute(stmt)


def sync_user(database: Database, identity: ExternalIdentity, *, clock: Clock = _utcnow) -> User:
    """Create or update the local user row matching ``identity`` by email.

    The stored name comes from ``user_metadata.name`` and falls back to the
    local part of the email. Failures are logged and re-raised unchanged.
    """

    try:
        if not identity.email or not identity.email.strip():
            raise ValueError("External identity has no email address")

        email = normalize_email(identity.email)
        name = stored_name(replace(identity, email=email))
        with database.session() as session:
            _upsert(session, database.dialect_name, email=email, name=name, now=clock())
            record = session.scalars(select(UserRecord).where(UserRecord.email == email)).one()
            user = record_to_user(record)
    except (ValueError, SQLAlchemyError):
        logger.exception("Error syncing user to database (identity id=%s)", identity.id)
        raise

    logger.info("Synced user #%s <%s>", user.id, user.email)
    return user


def get_user(database: Database, user_id: int) -> User | None:
    with database.session() as session:
        record = session.get(UserRecord, user_id)
        return record_to_user(record) if record is not None else None


def get_user_by_email(database: Database, email: str) -> User | None:
    with database.session() as session:
        record = session.scalars(
            select(UserRecord).where(UserRecord.email == normalize_email(email))
        ).one_or_none()
        return record_to_user(record) if record is not None else None


def delete_user(database: Database, email: str) -> bool:
    """Remove the local row for ``email``; related accounts cascade.

    Storage failures are logged and reported as ``False`` so that sign-out
    can still proceed.
    """

    try:
        with database.session() as session:
            result = session.execute(
                delete(UserRecord).where(UserRecord.email == normalize_email(email))
            )
            removed = result.rowcount or 0
    except SQLAlchemyError:
        logger.exception("Error deleting user account <%s>", email)
        return False

    if removed == 0:
        logger.info("User <%s> not found in database, skipping deletion", email)
        return False
    logger.info("Deleted user <%s> from database", email)
    return True


__all__ = [
    "delete_user",
    "get_user",
    "get_user_by_email",
    "normalize_email",
    "record_to_user",
    "stored_name",
    "sync_user",
]
