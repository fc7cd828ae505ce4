"""Domain types shared by the pages, the data layer and the sync service."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class AccountType(str, Enum):
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"
    CREDIT_CARD = "CREDIT_CARD"
    LOAN = "LOAN"
    INVESTMENT = "INVESTMENT"


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    TRANSFER = "TRANSFER"
    INTEREST_CHARGE = "INTEREST_CHARGE"
    LOAN_PAYMENT = "LOAN_PAYMENT"


DEBT_ACCOUNT_TYPES = frozenset({AccountType.CREDIT_CARD, AccountType.LOAN})


@dataclass(frozen=True)
class ExpenseMetrics:
    """Spending totals for a single month."""

    total_expenses: float = 0.0
    interest_paid: float = 0.0
    recurring_charges: float = 0.0
    credit_card_spending: float = 0.0
    loan_payments: float = 0.0

    @classmethod
    def metric_names(cls) -> tuple[str, ...]:
        return tuple(item.name for item in fields(ExpenseMetrics))


@dataclass(frozen=True)
class ExpenseMetricsComparison(ExpenseMetrics):
    """Monthly totals with the percentage change against the previous month."""

    total_expenses_change: float = 0.0
    interest_paid_change: float = 0.0
    recurring_charges_change: float = 0.0
    credit_card_spending_change: float = 0.0
    loan_payments_change: float = 0.0

    def change_for(self, metric: str) -> float:
        return getattr(self, f"{metric}_change")


@dataclass(frozen=True)
class ExternalIdentity:
    """User record issued by the external authentication provider."""

    id: Optional[str]
    email: Optional[str]
    user_metadata: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_payload(data: Mapping[str, Any]) -> "ExternalIdentity":
        """Build an identity from the provider's JSON ``user`` object."""

        metadata = data.get("user_metadata")
        email = data.get("email")
        return ExternalIdentity(
            id=str(data["id"]) if data.get("id") is not None else None,
            email=str(email) if email else None,
            user_metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )

    @property
    def display_name(self) -> Optional[str]:
        """Profile name, falling back to the local part of the email."""

        name = self.user_metadata.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
        if self.email:
            return self.email.split("@", 1)[0]
        return None


@dataclass(frozen=True)
class AccountSummary:
    """Essential account fields for listings and dashboard cards."""

    id: int
    name: str
    type: AccountType
    balance: float
    credit_limit: Optional[float] = None

    @staticmethod
    def from_record(record: Any) -> "AccountSummary":
        return AccountSummary(
            id=record.id,
            name=record.name,
            type=record.type,
            balance=float(record.balance),
            credit_limit=float(record.credit_limit) if record.credit_limit is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "balance": self.balance,
            "credit_limit": self.credit_limit,
        }


@dataclass(frozen=True)
class UpcomingPayment:
    description: str
    account_name: str
    amount: float
    due_date: datetime


@dataclass(frozen=True)
class User:
    """Represents a user row stored in the application database."""

    id: int
    email: str
    name: Optional[str]
    created_at: datetime
    updated_at: datetime


__all__ = [
    "AccountSummary",
    "AccountType",
    "DEBT_ACCOUNT_TYPES",
    "ExpenseMetrics",
    "ExpenseMetricsComparison",
    "ExternalIdentity",
    "TransactionType",
    "UpcomingPayment",
    "User",
]
