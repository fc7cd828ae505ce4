import argparse
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from finance_manager.config import load_settings
from finance_manager.database import Database
from finance_manager.ledger import AccountCreate, TransactionCreate, create_account, create_transaction
from finance_manager.models import ExternalIdentity, User
from finance_manager.user_sync import sync_user

DEMO_EMAIL = "demo@example.com"

DEMO_ACCOUNTS = [
    {"name": "Everyday Checking", "type": "CHECKING", "balance": "4250.00"},
    {"name": "High-Yield Savings", "type": "SAVINGS", "balance": "15000.00"},
    {"name": "Rewards Visa", "type": "CREDIT_CARD", "balance": "0", "credit_limit": "8000", "apr": "21.99"},
    {
        "name": "Auto Loan",
        "type": "LOAN",
        "balance": "18500.00",
        "loan_amount": "25000",
        "remaining_balance": "18500",
        "loan_term": 60,
        "monthly_payment": "450",
        "apr": "6.5",
    },
]

# (account name, type, amount, days ago, description, recurring)
DEMO_TRANSACTIONS = [
    ("Everyday Checking", "INCOME", "5200.00", 2, "Salary", False),
    ("Everyday Checking", "EXPENSE", "1850.00", 3, "Rent", True),
    ("Everyday Checking", "EXPENSE", "89.99", 5, "Electric bill", True),
    ("Rewards Visa", "EXPENSE", "156.42", 1, "Groceries", False),
    ("Rewards Visa", "EXPENSE", "15.99", 4, "Streaming subscription", True),
    ("Rewards Visa", "INTEREST_CHARGE", "12.37", 6, "Interest charge", False),
    ("Auto Loan", "LOAN_PAYMENT", "450.00", 7, "Monthly payment", True),
    ("Everyday Checking", "EXPENSE", "64.10", 35, "Dining out", False),
    ("Rewards Visa", "EXPENSE", "220.00", 38, "Groceries", False),
]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed the finance manager database with demo data")
    parser.add_argument("--email", default=DEMO_EMAIL, help="Email address of the demo user")
    parser.add_argument("--name", default="Demo User", help="Display name of the demo user")
    return parser.parse_args()


def seed(database: Database, *, email: str = DEMO_EMAIL, name: str = "Demo User") -> User:
    """Create the demo user with a handful of accounts and recent transactions."""

    user = sync_user(database, ExternalIdentity(id=None, email=email, user_metadata={"name": name}))
    now = datetime.now(timezone.utc)

    with database.session() as session:
        accounts = {}
        for account_fields in DEMO_ACCOUNTS:
            account = create_account(session, user.id, AccountCreate(**account_fields))
            accounts[account.name] = account.id

        for account_name, kind, amount, days_ago, description, recurring in DEMO_TRANSACTIONS:
            create_transaction(
                session,
                user.id,
                TransactionCreate(
                    amount=amount,
                    type=kind,
                    date=now - timedelta(days=days_ago),
                    account_id=accounts[account_name],
                    description=description,
                    is_recurring=recurring,
                ),
            )
    return user


def main() -> int:
    args = parse_args()
    settings = load_settings()

    database = Database(settings.database_url, verbosity=settings.log_verbosity)
    database.initialize()
    try:
        user = seed(database, email=args.email.strip().lower(), name=args.name.strip())
    finally:
        database.dispose()

    print(f"Seeded demo data for user #{user.id}: {user.name} <{user.email}>")
    print(f"{len(DEMO_ACCOUNTS)} accounts and {len(DEMO_TRANSACTIONS)} transactions created.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
