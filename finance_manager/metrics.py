"""Dashboard figures: monthly spending totals and upcoming recurring payments."""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from .ledger import as_utc
from .models import (
    AccountType,
    ExpenseMetrics,
    ExpenseMetricsComparison,
    TransactionType,
    UpcomingPayment,
)
from .schema import TransactionRecord

DateLike = Union[date, datetime]

PAYMENT_TYPES = (TransactionType.EXPENSE, TransactionType.LOAN_PAYMENT)


def month_date_range(day: DateLike) -> Tuple[datetime, datetime]:
    """Return the first and last instant (UTC) of the month containing ``day``."""

    start = datetime(day.year, day.month, 1, tzinfo=timezone.utc)
    if day.month == 12:
        next_start = datetime(day.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        next_start = datetime(day.year, day.month + 1, 1, tzinfo=timezone.utc)
    return start, next_start - timedelta(microseconds=1)


def previous_month(day: DateLike) -> date:
    """Same day one month earlier, clamped to the length of that month."""

    year, month = (day.year - 1, 12) if day.month == 1 else (day.year, day.month - 1)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def percentage_change(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def _total(transactions: Iterable[TransactionRecord]) -> float:
    return float(sum((Decimal(tx.amount) for tx in transactions), Decimal("0")))


def summarize_transactions(transactions: Iterable[TransactionRecord]) -> ExpenseMetrics:
    """Aggregate already-loaded transactions (with their accounts) into metrics."""

    items = list(transactions)
    expenses = [tx for tx in items if tx.type is TransactionType.EXPENSE]

    return ExpenseMetrics(
        total_expenses=_total(expenses),
        interest_paid=_total(tx for tx in items if tx.type is TransactionType.INTEREST_CHARGE),
        recurring_charges=_total(tx for tx in expenses if tx.is_recurring),
        credit_card_spending=_total(
            tx for tx in expenses if tx.account.type is AccountType.CREDIT_CARD
        ),
        loan_payments=_total(
            tx
            for tx in items
            if tx.type is TransactionType.LOAN_PAYMENT
            or (tx.type is TransactionType.EXPENSE and tx.account.type is AccountType.LOAN)
        ),
    )


def monthly_expense_metrics(session: Session, user_id: int, month: DateLike) -> ExpenseMetrics:
    start, end = month_date_range(month)
    transactions = session.scalars(
        select(TransactionRecord)
        .options(joinedload(TransactionRecord.account))
        .where(
            TransactionRecord.user_id == user_id,
            TransactionRecord.date >= start,
            TransactionRecord.date <= end,
        )
    ).all()
    return summarize_transactions(transactions)


def expense_metrics_with_comparison(
    session: Session,
    user_id: int,
    month: Optional[DateLike] = None,
) -> ExpenseMetricsComparison:
    """Metrics for ``month`` (default: now) with month-over-month changes."""

    current_month = month or datetime.now(timezone.utc)
    current = monthly_expense_metrics(session, user_id, current_month)
    previous = monthly_expense_metrics(session, user_id, previous_month(current_month))

    values = {name: getattr(current, name) for name in ExpenseMetrics.metric_names()}
    changes = {
        f"{name}_change": percentage_change(getattr(current, name), getattr(previous, name))
        for name in ExpenseMetrics.metric_names()
    }
    return ExpenseMetricsComparison(**values, **changes)


def _add_month(value: datetime) -> datetime:
    year, month = (value.year + 1, 1) if value.month == 12 else (value.year, value.month + 1)
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(value.day, last_day))


def upcoming_payments(
    session: Session,
    user_id: int,
    *,
    now: Optional[datetime] = None,
    window_days: int = 14,
) -> List[UpcomingPayment]:
    """Recurring payments falling due within ``window_days``, earliest first.

    A series is the recurring transactions sharing an account and description.
    Series repeat monthly, so the next due date is one month after the latest
    occurrence.
    """

    current = as_utc(now or datetime.now(timezone.utc))
    today = current.replace(hour=0, minute=0, second=0, microsecond=0)
    horizon = current + timedelta(days=window_days)

    transactions = session.scalars(
        select(TransactionRecord)
        .options(joinedload(TransactionRecord.account))
        .where(
            TransactionRecord.user_id == user_id,
            TransactionRecord.is_recurring.is_(True),
            TransactionRecord.type.in_(PAYMENT_TYPES),
        )
        .order_by(TransactionRecord.date, TransactionRecord.id)
    ).all()

    latest = {}
    for tx in transactions:
        latest[(tx.account_id, tx.description or "")] = tx

    payments = []
    for tx in latest.values():
        due = _add_month(as_utc(tx.date))
        if today <= due <= horizon:
            payments.append(
                UpcomingPayment(
                    description=tx.description or "Recurring payment",
                    account_name=tx.account.name,
                    amount=float(tx.amount),
                    due_date=due,
                )
            )
    return sorted(payments, key=lambda payment: payment.due_date)


__all__ = [
    "expense_metrics_with_comparison",
    "month_date_range",
    "monthly_expense_metrics",
    "percentage_change",
    "previous_month",
    "summarize_transactions",
    "upcoming_payments",
]
