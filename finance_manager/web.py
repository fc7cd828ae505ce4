"""Browser-facing pages for the finance manager."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import FastAPI, Form, Query, Request, status
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from .auth import AuthenticationError, AuthProvider
from .config import Settings, load_settings
from .database import Database, get_database
from .formatting import FILTERS
from .ledger import (
    AccountCreate,
    AccountUpdate,
    LedgerError,
    TransactionCreate,
    TransactionUpdate,
    create_account,
    create_transaction,
    delete_financial_account,
    delete_transaction,
    field_errors,
    list_accounts,
    list_recurring_transactions,
    summarize_accounts,
    update_account,
    update_transaction,
)
from .metrics import expense_metrics_with_comparison, upcoming_payments
from .models import ExpenseMetrics, User
from .user_sync import delete_user, get_user, sync_user

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

APP_NAME = "AI Finance Manager"
SESSION_COOKIE_NAME = "finance_session"

NAVIGATION = (
    ("dashboard", "Dashboard"),
    ("transactions", "Transactions"),
    ("budgets", "Budgets"),
    ("analytics", "Analytics"),
    ("help", "Help"),
)

METRIC_LABELS = {
    "total_expenses": "Total expenses",
    "interest_paid": "Interest paid",
    "recurring_charges": "Recurring charges",
    "credit_card_spending": "Credit card spending",
    "loan_payments": "Loan payments",
}

PLACEHOLDER_PAGES = {
    "analytics": (
        "Analytics",
        "Insights into your spending patterns and trends.",
        "Analytics dashboard coming soon...",
    ),
    "budgets": (
        "Budgets",
        "Create and track your spending budgets.",
        "Budget management coming soon...",
    ),
    "transactions": (
        "Transactions",
        "Review and categorize your transactions.",
        "Transaction history coming soon...",
    ),
}

logger = logging.getLogger("finance_manager.web")


def _build_auth_provider(settings: Settings) -> Optional[AuthProvider]:
    if not settings.auth_url or not settings.auth_api_key:
        return None
    return AuthProvider(settings.auth_url, settings.auth_api_key)


def create_app(
    *,
    database: Optional[Database] = None,
    settings: Optional[Settings] = None,
    auth_provider: Optional[AuthProvider] = None,
    initialize_database: bool = True,
) -> FastAPI:
    """Create the finance manager web application."""

    if settings is None:
        settings = load_settings()
    if database is None:
        database = get_database(settings)
    if initialize_database:
        database.initialize()
    if auth_provider is None:
        auth_provider = _build_auth_provider(settings)

    if not settings.session_secret:
        raise RuntimeError("FINANCE_SESSION_SECRET must be configured to serve the web interface")

    app = FastAPI(title=APP_NAME, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.database = database
    app.state.settings = settings
    app.state.auth_provider = auth_provider

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=SESSION_COOKIE_NAME,
        https_only=settings.session_secure,
        same_site="lax",
        max_age=60 * 60 * 24 * 7,
    )

    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    templates.env.filters.update(FILTERS)
    templates.env.globals["app_name"] = APP_NAME
    templates.env.globals["navigation"] = NAVIGATION
    templates.env.globals["now"] = lambda: datetime.now(timezone.utc)

    def _flash(request: Request, message: str, *, category: str = "info") -> None:
        messages = request.session.get("flash_messages")
        if not isinstance(messages, list):
            messages = []
        messages.append({"message": message, "category": category})
        request.session["flash_messages"] = messages

    def _consume_flash(request: Request) -> List[Dict[str, str]]:
        messages = request.session.pop("flash_messages", [])
        if isinstance(messages, list):
            return messages
        return []

    def _get_current_user(request: Request) -> Optional[User]:
        user_id = request.session.get("user_id")
        if not user_id:
            return None
        try:
            numeric_id = int(user_id)
        except (TypeError, ValueError):
            request.session.pop("user_id", None)
            return None
        user = get_user(database, numeric_id)
        if user is None:
            request.session.pop("user_id", None)
        return user

    def _redirect(request: Request, name: str) -> RedirectResponse:
        return RedirectResponse(request.url_for(name), status_code=status.HTTP_303_SEE_OTHER)

    def _login_failed(request: Request, message: str) -> RedirectResponse:
        request.session["login_error"] = message
        return _redirect(request, "show_login")

    def _render_page(request: Request, template: str, user: User, **context) -> HTMLResponse:
        return templates.TemplateResponse(
            request,
            template,
            {
                "user": user,
                "messages": _consume_flash(request),
                "active_page": context.pop("active_page", None),
                **context,
            },
        )

    def _complete_sign_in(request: Request, identity) -> RedirectResponse:
        try:
            user = sync_user(database, identity)
        except (ValueError, SQLAlchemyError):
            return _login_failed(request, "We could not finish signing you in. Please try again.")

        request.session.clear()
        request.session["user_id"] = user.id
        return _redirect(request, "dashboard")

    @app.exception_handler(StarletteHTTPException)
    async def not_found_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code != status.HTTP_404_NOT_FOUND or request.url.path.startswith("/api/"):
            return await http_exception_handler(request, exc)
        return templates.TemplateResponse(
            request,
            "not_found.html",
            {},
            status_code=status.HTTP_404_NOT_FOUND,
        )

    @app.get("/", response_class=HTMLResponse, name="home")
    async def home(request: Request):
        user = _get_current_user(request)
        return templates.TemplateResponse(request, "home.html", {"user": user})

    @app.get("/login", response_class=HTMLResponse, name="show_login")
    async def login_form(request: Request):
        if _get_current_user(request) is not None:
            return _redirect(request, "dashboard")
        error = request.session.pop("login_error", None)
        return templates.TemplateResponse(
            request,
            "login.html",
            {
                "error": error,
                "messages": _consume_flash(request),
                "auth_configured": auth_provider is not None,
            },
        )

    @app.post("/login", name="process_login")
    async def process_login(request: Request, email: str = Form(...), password: str = Form(...)):
        if auth_provider is None:
            return _login_failed(request, "Sign-in is not configured for this deployment.")
        try:
            identity = auth_provider.sign_in_with_password(email.strip(), password)
        except AuthenticationError as exc:
            logger.info("Sign-in failed for %s: %s", email.strip(), exc)
            return _login_failed(request, "Invalid email or password.")
        return _complete_sign_in(request, identity)

    @app.post("/signup", name="process_signup")
    async def process_signup(
        request: Request,
        email: str = Form(...),
        password: str = Form(...),
        name: str = Form(""),
    ):
        if auth_provider is None:
            return _login_failed(request, "Sign-up is not configured for this deployment.")
        try:
            identity = auth_provider.sign_up(email.strip(), password, name=name.strip() or None)
        except AuthenticationError as exc:
            return _login_failed(request, f"Could not create your account: {exc}")
        return _complete_sign_in(request, identity)

    @app.get("/logout", name="logout")
    async def logout(request: Request):
        request.session.clear()
        return _redirect(request, "show_login")

    @app.get("/dashboard", response_class=HTMLResponse, name="dashboard")
    async def dashboard(request: Request):
        user = _get_current_user(request)
        if user is None:
            return _redirect(request, "show_login")

        with database.session() as session:
            metrics = expense_metrics_with_comparison(session, user.id)
            accounts = summarize_accounts(list_accounts(session, user.id))
            upcoming = upcoming_payments(session, user.id)

        rows = [
            {
                "key": name,
                "label": METRIC_LABELS[name],
                "value": getattr(metrics, name),
                "change": metrics.change_for(name),
            }
            for name in ExpenseMetrics.metric_names()
        ]
        return _render_page(
            request,
            "dashboard.html",
            user,
            active_page="dashboard",
            metrics=rows,
            credit_cards=accounts["credit_cards"],
            upcoming=upcoming,
        )

    def _register_placeholder(page: str) -> None:
        title, subtitle, notice = PLACEHOLDER_PAGES[page]

        async def placeholder(request: Request):
            user = _get_current_user(request)
            if user is None:
                return _redirect(request, "show_login")
            return _render_page(
                request,
                "placeholder.html",
                user,
                active_page=page,
                title=title,
                subtitle=subtitle,
                notice=notice,
            )

        app.add_api_route(
            f"/{page}",
            placeholder,
            methods=["GET"],
            response_class=HTMLResponse,
            name=page,
        )

    for page in PLACEHOLDER_PAGES:
        _register_placeholder(page)

    @app.get("/help", response_class=HTMLResponse, name="help")
    async def help_page(request: Request):
        user = _get_current_user(request)
        if user is None:
            return _redirect(request, "show_login")
        return _render_page(request, "help.html", user, active_page="help")

    @app.post("/settings/delete-account", name="delete_account")
    async def delete_account(request: Request):
        user = _get_current_user(request)
        if user is None:
            return _redirect(request, "show_login")

        delete_user(database, user.email)
        request.session.clear()
        _flash(request, "Your account has been deleted.", category="success")
        return _redirect(request, "show_login")

    def _json_error(status_code: int, message: str, **extra) -> JSONResponse:
        return JSONResponse({"success": False, "error": message, **extra}, status_code=status_code)

    async def _parse_body(request: Request, model, message: str):
        try:
            return model.model_validate(await request.json()), None
        except ValueError as exc:
            errors = field_errors(exc) if isinstance(exc, ValidationError) else {}
            return None, _json_error(422, message, field_errors=errors)

    def _transaction_payload(transaction) -> Dict[str, object]:
        return {
            "id": transaction.id,
            "amount": float(transaction.amount),
            "type": transaction.type.value,
            "date": transaction.date.isoformat(),
            "description": transaction.description,
            "is_recurring": transaction.is_recurring,
            "account_id": transaction.account_id,
            "account_balance": float(transaction.account.balance),
        }

    @app.get("/api/accounts", name="api_list_accounts")
    async def api_list_accounts(request: Request):
        user = _get_current_user(request)
        if user is None:
            return _json_error(401, "No authenticated user found. Please sign in to view your accounts.")

        with database.session() as session:
            grouped = summarize_accounts(list_accounts(session, user.id))
            data = {key: [summary.to_dict() for summary in items] for key, items in grouped.items()}
        return JSONResponse({"success": True, "data": data})

    @app.post("/api/accounts", name="api_create_account")
    async def api_create_account(request: Request):
        user = _get_current_user(request)
        if user is None:
            return _json_error(401, "You must be signed in to create an account.")
        data, error = await _parse_body(
            request, AccountCreate, "Invalid account data. Please check your inputs."
        )
        if error is not None:
            return error

        try:
            with database.session() as session:
                account = create_account(session, user.id, data)
                payload = {"id": account.id, "name": account.name, "type": account.type.value}
        except SQLAlchemyError:
            logger.exception("Error creating account for user #%s", user.id)
            return _json_error(500, "Failed to create account. Please try again.")

        return JSONResponse({"success": True, "account": payload}, status_code=201)

    @app.patch("/api/accounts/{account_id}", name="api_update_account")
    async def api_update_account(request: Request, account_id: int):
        user = _get_current_user(request)
        if user is None:
            return _json_error(401, "You must be signed in to update an account.")
        data, error = await _parse_body(
            request, AccountUpdate, "Invalid account data. Please check your inputs."
        )
        if error is not None:
            return error

        try:
            with database.session() as session:
                account = update_account(session, user.id, account_id, data)
                payload = {
                    "id": account.id,
                    "name": account.name,
                    "type": account.type.value,
                    "balance": float(account.balance),
                }
        except LedgerError as exc:
            return _json_error(exc.status_code, exc.message)
        except SQLAlchemyError:
            logger.exception("Error updating account #%s for user #%s", account_id, user.id)
            return _json_error(500, "Failed to update account. Please try again.")

        return JSONResponse({"success": True, "account": payload})

    @app.delete("/api/accounts/{account_id}", name="api_delete_account")
    async def api_delete_account(request: Request, account_id: int):
        user = _get_current_user(request)
        if user is None:
            return _json_error(401, "You must be signed in to delete an account.")

        try:
            with database.session() as session:
                message = delete_financial_account(session, user.id, account_id)
        except LedgerError as exc:
            return _json_error(exc.status_code, exc.message)
        except SQLAlchemyError:
            logger.exception("Error deleting account #%s for user #%s", account_id, user.id)
            return _json_error(500, "Failed to delete account. Please try again.")

        return JSONResponse({"success": True, "message": message})

    @app.get("/api/transactions/recurring", name="api_recurring_transactions")
    async def api_recurring_transactions(
        request: Request,
        limit: int = Query(100, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ):
        user = _get_current_user(request)
        if user is None:
            return _json_error(401, "No authenticated user found. Please sign in to view transactions.")

        with database.session() as session:
            transactions, total = list_recurring_transactions(
                session, user.id, limit=limit, offset=offset
            )
            items = [_transaction_payload(transaction) for transaction in transactions]
        return JSONResponse({"success": True, "transactions": items, "total": total})

    @app.post("/api/transactions", name="api_create_transaction")
    async def api_create_transaction(request: Request):
        user = _get_current_user(request)
        if user is None:
            return _json_error(401, "You must be signed in to create a transaction.")
        data, error = await _parse_body(
            request, TransactionCreate, "Invalid transaction data. Please check your inputs."
        )
        if error is not None:
            return error

        try:
            with database.session() as session:
                transaction = create_transaction(session, user.id, data)
                payload = _transaction_payload(transaction)
        except LedgerError as exc:
            return _json_error(exc.status_code, exc.message)
        except SQLAlchemyError:
            logger.exception("Error creating transaction for user #%s", user.id)
            return _json_error(500, "Failed to create transaction. Please try again.")

        return JSONResponse({"success": True, "transaction": payload}, status_code=201)

    @app.patch("/api/transactions/{transaction_id}", name="api_update_transaction")
    async def api_update_transaction(request: Request, transaction_id: int):
        user = _get_current_user(request)
        if user is None:
            return _json_error(401, "You must be signed in to update a transaction.")
        data, error = await _parse_body(
            request, TransactionUpdate, "Invalid transaction data. Please check your inputs."
        )
        if error is not None:
            return error

        try:
            with database.session() as session:
                transaction = update_transaction(session, user.id, transaction_id, data)
                payload = _transaction_payload(transaction)
        except LedgerError as exc:
            return _json_error(exc.status_code, exc.message)
        except SQLAlchemyError:
            logger.exception("Error updating transaction #%s for user #%s", transaction_id, user.id)
            return _json_error(500, "Failed to update transaction. Please try again.")

        return JSONResponse({"success": True, "transaction": payload})

    @app.delete("/api/transactions/{transaction_id}", name="api_delete_transaction")
    async def api_delete_transaction(request: Request, transaction_id: int):
        user = _get_current_user(request)
        if user is None:
            return _json_error(401, "You must be signed in to delete a transaction.")

        try:
            with database.session() as session:
                account = delete_transaction(session, user.id, transaction_id)
                balance = float(account.balance)
        except LedgerError as exc:
            return _json_error(exc.status_code, exc.message)
        except SQLAlchemyError:
            logger.exception("Error deleting transaction #%s for user #%s", transaction_id, user.id)
            return _json_error(500, "Failed to delete transaction. Please try again.")

        return JSONResponse(
            {"success": True, "message": "Transaction deleted successfully.", "account_balance": balance}
        )

    return app


__all__ = ["APP_NAME", "create_app"]
