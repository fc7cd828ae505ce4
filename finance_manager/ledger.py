"""Account and transaction bookkeeping: create, update, delete and list."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from .models import DEBT_ACCOUNT_TYPES, AccountSummary, AccountType, TransactionType
from .schema import AccountRecord, TransactionRecord

logger = logging.getLogger("finance_manager.ledger")

LOAN_FIELDS = ("loan_amount", "remaining_balance", "loan_term", "monthly_payment")

# Detail fields an account of each type may carry.
TYPE_FIELDS: Dict[AccountType, Tuple[str, ...]] = {
    AccountType.CREDIT_CARD: ("credit_limit", "apr"),
    AccountType.LOAN: LOAN_FIELDS + ("apr",),
}
DETAIL_FIELDS = ("credit_limit", "apr") + LOAN_FIELDS

SUMMARY_GROUPS = (
    ("credit_cards", AccountType.CREDIT_CARD),
    ("checking", AccountType.CHECKING),
    ("savings", AccountType.SAVINGS),
    ("loans", AccountType.LOAN),
    ("investments", AccountType.INVESTMENT),
)


class LedgerError(Exception):
    """A request that is well-formed but cannot be applied."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def as_utc(value: datetime) -> datetime:
    """Convert ``value`` to UTC; naive datetimes are taken to be UTC already."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _clean_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("Account name is required")
    return cleaned


def _finite(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is not None and not value.is_finite():
        raise ValueError("Balance must be a valid number")
    return value


class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    balance: Decimal = Decimal("0")
    currency: str = Field("USD", min_length=3, max_length=3)
    credit_limit: Optional[Decimal] = Field(None, gt=0)
    apr: Optional[Decimal] = Field(None, ge=0, le=100)
    loan_amount: Optional[Decimal] = Field(None, gt=0)
    remaining_balance: Optional[Decimal] = Field(None, ge=0)
    loan_term: Optional[int] = Field(None, gt=0)
    monthly_payment: Optional[Decimal] = Field(None, gt=0)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: Optional[str]) -> Optional[str]:
        return _clean_name(value)

    @field_validator("balance")
    @classmethod
    def _finite_balance(cls, value: Optional[Decimal]) -> Optional[Decimal]:
        return _finite(value)

    @model_validator(mode="after")
    def _require_type_fields(self) -> "AccountCreate":
        if self.type is AccountType.CREDIT_CARD:
            required: Sequence[str] = ("credit_limit", "apr")
        elif self.type is AccountType.LOAN:
            required = LOAN_FIELDS
        else:
            required = ()
        missing = [name for name in required if getattr(self, name) is None]
        if missing:
            raise ValueError(
                f"{self.type.value} accounts require: {', '.join(missing)}"
            )
        return self


class AccountUpdate(BaseModel):
    """Partial account update; the account type itself cannot change."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    balance: Optional[Decimal] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    credit_limit: Optional[Decimal] = Field(None, gt=0)
    apr: Optional[Decimal] = Field(None, ge=0, le=100)
    loan_amount: Optional[Decimal] = Field(None, gt=0)
    remaining_balance: Optional[Decimal] = Field(None, ge=0)
    loan_term: Optional[int] = Field(None, gt=0)
    monthly_payment: Optional[Decimal] = Field(None, gt=0)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: Optional[str]) -> Optional[str]:
        return _clean_name(value)

    @field_validator("balance")
    @classmethod
    def _finite_balance(cls, value: Optional[Decimal]) -> Optional[Decimal]:
        return _finite(value)


class TransactionCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    type: TransactionType
    date: datetime
    account_id: int
    description: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)
    is_recurring: bool = False

    @field_validator("date")
    @classmethod
    def _utc_date(cls, value: datetime) -> datetime:
        return as_utc(value)


class TransactionUpdate(BaseModel):
    """Partial transaction update; the owning account cannot change."""

    amount: Optional[Decimal] = Field(None, gt=0)
    type: Optional[TransactionType] = None
    date: Optional[datetime] = None
    description: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)
    is_recurring: Optional[bool] = None

    @field_validator("date")
    @classmethod
    def _utc_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


def field_errors(exc: ValidationError) -> Dict[str, List[str]]:
    """Group pydantic errors by dotted field path."""

    grouped: Dict[str, List[str]] = {}
    for error in exc.errors():
        path = ".".join(str(part) for part in error.get("loc", ())) or "__root__"
        grouped.setdefault(path, []).append(str(error.get("msg", "Invalid value")))
    return grouped


def balance_change(account_type: AccountType, transaction_type: TransactionType, amount: Decimal) -> Decimal:
    """Signed change a transaction applies to its account balance."""

    if account_type in DEBT_ACCOUNT_TYPES:
        # Balances on debt accounts are amounts owed.
        if transaction_type in (TransactionType.EXPENSE, TransactionType.INTEREST_CHARGE):
            return amount
        if transaction_type in (TransactionType.INCOME, TransactionType.LOAN_PAYMENT):
            return -amount
        return Decimal("0")

    if transaction_type is TransactionType.INCOME:
        return amount
    if transaction_type is TransactionType.EXPENSE:
        return -amount
    return Decimal("0")


def _transaction_impact(transaction: TransactionRecord) -> Decimal:
    return balance_change(transaction.account.type, transaction.type, Decimal(transaction.amount))


def _owned_account(session: Session, user_id: int, account_id: int, action: str) -> AccountRecord:
    account = session.get(AccountRecord, account_id)
    if account is None:
        raise LedgerError(404, "Account not found.")
    if account.user_id != user_id:
        raise LedgerError(403, f"You do not have permission to {action} this account.")
    return account


def _owned_transaction(
    session: Session, user_id: int, transaction_id: int, action: str
) -> TransactionRecord:
    transaction = session.get(
        TransactionRecord, transaction_id, options=[joinedload(TransactionRecord.account)]
    )
    if transaction is None:
        raise LedgerError(404, "Transaction not found.")
    if transaction.user_id != user_id:
        raise LedgerError(403, f"You do not have permission to {action} this transaction.")
    return transaction


def create_account(session: Session, user_id: int, data: AccountCreate) -> AccountRecord:
    values = data.model_dump()
    allowed = TYPE_FIELDS.get(data.type, ())
    for name in DETAIL_FIELDS:
        if name not in allowed:
            values[name] = None

    account = AccountRecord(user_id=user_id, **values)
    session.add(account)
    session.flush()
    logger.info("Created %s account #%s for user #%s", account.type.value, account.id, user_id)
    return account


def update_account(
    session: Session, user_id: int, account_id: int, data: AccountUpdate
) -> AccountRecord:
    """Apply the supplied fields; detail fields of other account types are ignored."""

    account = _owned_account(session, user_id, account_id, "update")
    allowed = TYPE_FIELDS.get(account.type, ())
    for name, value in data.model_dump(exclude_none=True).items():
        if name in DETAIL_FIELDS and name not in allowed:
            continue
        setattr(account, name, value)
    session.flush()
    logger.info("Updated account #%s for user #%s", account.id, user_id)
    return account


def delete_financial_account(session: Session, user_id: int, account_id: int) -> str:
    """Delete an account and its transactions; returns a confirmation message."""

    account = _owned_account(session, user_id, account_id, "delete")
    related = session.scalar(
        select(func.count())
        .select_from(TransactionRecord)
        .where(TransactionRecord.account_id == account.id)
    ) or 0
    name = account.name
    session.delete(account)
    session.flush()
    logger.info("Deleted account #%s (%s related records) for user #%s", account_id, related, user_id)
    if related:
        return f'Account "{name}" and {related} related records have been deleted.'
    return f'Account "{name}" has been deleted.'


def list_accounts(session: Session, user_id: int) -> List[AccountRecord]:
    return list(
        session.scalars(
            select(AccountRecord)
            .where(AccountRecord.user_id == user_id)
            .order_by(AccountRecord.name, AccountRecord.id)
        )
    )


def summarize_accounts(accounts: Sequence[AccountRecord]) -> Dict[str, List[AccountSummary]]:
    """Group accounts by type, plus an ``all`` entry in the given order."""

    summaries = [AccountSummary.from_record(account) for account in accounts]
    grouped = {
        key: [summary for summary in summaries if summary.type is account_type]
        for key, account_type in SUMMARY_GROUPS
    }
    grouped["all"] = summaries
    return grouped


def create_transaction(session: Session, user_id: int, data: TransactionCreate) -> TransactionRecord:
    """Record a transaction and apply its balance impact in the same unit of work."""

    account = _owned_account(session, user_id, data.account_id, "add transactions to")

    transaction = TransactionRecord(
        user_id=user_id,
        account_id=account.id,
        amount=data.amount,
        type=data.type,
        date=data.date,
        description=data.description,
        notes=data.notes,
        is_recurring=data.is_recurring,
    )
    session.add(transaction)
    account.balance = Decimal(account.balance) + balance_change(account.type, data.type, data.amount)
    session.flush()
    logger.info(
        "Recorded %s of %s on account #%s for user #%s",
        data.type.value,
        data.amount,
        account.id,
        user_id,
    )
    return transaction


def update_transaction(
    session: Session, user_id: int, transaction_id: int, data: TransactionUpdate
) -> TransactionRecord:
    """Apply the supplied fields and move the balance by the change in impact."""

    transaction = _owned_transaction(session, user_id, transaction_id, "update")
    previous_impact = _transaction_impact(transaction)

    for name, value in data.model_dump(exclude_unset=True).items():
        if value is None and name in ("amount", "type", "date", "is_recurring"):
            continue
        setattr(transaction, name, value)

    delta = _transaction_impact(transaction) - previous_impact
    if delta:
        account = transaction.account
        account.balance = Decimal(account.balance) + delta
    session.flush()
    logger.info("Updated transaction #%s for user #%s", transaction.id, user_id)
    return transaction


def delete_transaction(session: Session, user_id: int, transaction_id: int) -> AccountRecord:
    """Remove a transaction, reversing its balance impact; returns the account."""

    transaction = _owned_transaction(session, user_id, transaction_id, "delete")
    account = transaction.account
    account.balance = Decimal(account.balance) - _transaction_impact(transaction)
    session.delete(transaction)
    session.flush()
    logger.info("Deleted transaction #%s for user #%s", transaction_id, user_id)
    return account


def list_recurring_transactions(
    session: Session, user_id: int, *, limit: int = 100, offset: int = 0
) -> Tuple[List[TransactionRecord], int]:
    """Newest-first page of the user's recurring transactions and their total count."""

    condition = (TransactionRecord.user_id == user_id) & TransactionRecord.is_recurring.is_(True)
    total = session.scalar(
        select(func.count()).select_from(TransactionRecord).where(condition)
    ) or 0
    transactions = session.scalars(
        select(TransactionRecord)
        .options(joinedload(TransactionRecord.account))
        .where(condition)
        .order_by(TransactionRecord.date.desc(), TransactionRecord.id.desc())
        .limit(limit)
        .offset(offset)
    ).all()
    return list(transactions), total


__all__ = [
    "AccountCreate",
    "AccountUpdate",
    "LedgerError",
    "TransactionCreate",
    "TransactionUpdate",
    "as_utc",
    "balance_change",
    "create_account",
    "create_transaction",
    "delete_financial_account",
    "delete_transaction",
    "field_errors",
    "list_accounts",
    "list_recurring_transactions",
    "summarize_accounts",
    "update_account",
    "update_transaction",
]
