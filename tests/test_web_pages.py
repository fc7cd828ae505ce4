from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from finance_manager.auth import AuthProvider
from finance_manager.user_sync import get_user_by_email
from finance_manager.web import create_app


EMAIL = "alice@example.com"
PASSWORD = "correct-horse-battery"


def _auth_handler(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    if request.url.path == "/auth/v1/signup":
        return httpx.Response(
            200,
            json={
                "id": "new-user",
                "email": body["email"],
                "user_metadata": body.get("data", {}),
            },
        )
    if body.get("email") == EMAIL and body.get("password") == PASSWORD:
        return httpx.Response(
            200,
            json={
                "access_token": "token",
                "user": {"id": "alice-id", "email": EMAIL, "user_metadata": {"name": "Alice"}},
            },
        )
    return httpx.Response(400, json={"error_description": "Invalid login credentials"})


@pytest.fixture()
def app(database, settings):
    provider = AuthProvider(
        "https://auth.example.com",
        "anon-key",
        transport=httpx.MockTransport(_auth_handler),
    )
    return create_app(database=database, settings=settings, auth_provider=provider)


def _login(client: TestClient) -> None:
    response = client.post(
        "/login",
        data={"email": EMAIL, "password": PASSWORD},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"].endswith("/dashboard")


def test_login_syncs_user_and_opens_dashboard(app, database) -> None:
    with TestClient(app) as client:
        _login(client)

        dashboard = client.get("/dashboard", follow_redirects=False)
        assert dashboard.status_code == 200
        assert "Monthly spending" in dashboard.text
        assert 'data-metric="total_expenses"' in dashboard.text

    user = get_user_by_email(database, EMAIL)
    assert user is not None
    assert user.name == "Alice"


def test_invalid_credentials_return_to_login_with_error(app, database) -> None:
    with TestClient(app) as client:
        response = client.post(
            "/login",
            data={"email": EMAIL, "password": "wrong"},
            follow_redirects=False,
        )
        assert response.status_code == 303
        assert response.headers["location"].endswith("/login")

        page = client.get("/login")
        assert "Invalid email or password." in page.text

    assert get_user_by_email(database, EMAIL) is None


def test_signup_creates_user_named_from_form(app, database) -> None:
    with TestClient(app) as client:
        response = client.post(
            "/signup",
            data={"email": "bob@example.com", "password": "pw", "name": "Bob"},
            follow_redirects=False,
        )
        assert response.status_code == 303
        assert response.headers["location"].endswith("/dashboard")

    user = get_user_by_email(database, "bob@example.com")
    assert user is not None
    assert user.name == "Bob"


@pytest.mark.parametrize("path", ["/dashboard", "/analytics", "/budgets", "/transactions", "/help"])
def test_authenticated_pages_redirect_anonymous_visitors(app, path) -> None:
    with TestClient(app) as client:
        response = client.get(path, follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"].endswith("/login")


@pytest.mark.parametrize(
    ("path", "heading", "notice"),
    [
        ("/analytics", "Analytics", "Analytics dashboard coming soon..."),
        ("/budgets", "Budgets", "Budget management coming soon..."),
        ("/transactions", "Transactions", "Transaction history coming soon..."),
        ("/help", "Help &amp; Support", "Get help and support"),
    ],
)
def test_placeholder_pages_render_with_settings_trigger(app, path, heading, notice) -> None:
    with TestClient(app) as client:
        _login(client)
        response = client.get(path)

    assert response.status_code == 200
    assert f"<h1>{heading}</h1>" in response.text
    assert notice in response.text
    assert 'aria-label="Open settings"' in response.text
    assert EMAIL in response.text


def test_delete_account_removes_user_and_signs_out(app, database) -> None:
    with TestClient(app) as client:
        _login(client)
        response = client.post("/settings/delete-account", follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"].endswith("/login")

        follow = client.get("/dashboard", follow_redirects=False)
        assert follow.status_code == 303

        login_page = client.get("/login")
        assert "Your account has been deleted." in login_page.text

    assert get_user_by_email(database, EMAIL) is None


def test_unknown_route_renders_not_found_page(app) -> None:
    with TestClient(app) as client:
        response = client.get("/this-page-does-not-exist")

    assert response.status_code == 404
    assert "404 - Page Not Found" in response.text
    assert "Go back home" in response.text


def test_api_requires_session(app) -> None:
    with TestClient(app) as client:
        response = client.post("/api/accounts", json={"name": "Checking", "type": "CHECKING"})

    assert response.status_code == 401
    assert response.json()["success"] is False


def test_api_creates_account_and_transaction(app) -> None:
    with TestClient(app) as client:
        _login(client)

        created = client.post(
            "/api/accounts",
            json={"name": "Visa", "type": "CREDIT_CARD", "balance": 0, "credit_limit": 2000, "apr": 21.5},
        )
        assert created.status_code == 201, created.text
        account = created.json()["account"]
        assert account["type"] == "CREDIT_CARD"

        recorded = client.post(
            "/api/transactions",
            json={
                "amount": 60.25,
                "type": "EXPENSE",
                "date": datetime.now(timezone.utc).isoformat(),
                "account_id": account["id"],
                "description": "Groceries",
            },
        )
        assert recorded.status_code == 201, recorded.text
        assert recorded.json()["transaction"]["account_balance"] == pytest.approx(60.25)

        dashboard = client.get("/dashboard")
        assert "$60.25" in dashboard.text


def test_api_updates_lists_and_deletes_ledger_records(app) -> None:
    with TestClient(app) as client:
        _login(client)

        account = client.post(
            "/api/accounts",
            json={"name": "Checking", "type": "CHECKING", "balance": 1000},
        ).json()["account"]
        transaction = client.post(
            "/api/transactions",
            json={
                "amount": 200,
                "type": "EXPENSE",
                "date": "2025-03-05T09:00:00Z",
                "account_id": account["id"],
                "description": "Rent",
                "is_recurring": True,
            },
        ).json()["transaction"]
        assert transaction["account_balance"] == pytest.approx(800)

        updated = client.patch(f"/api/transactions/{transaction['id']}", json={"amount": 250})
        assert updated.status_code == 200, updated.text
        assert updated.json()["transaction"]["account_balance"] == pytest.approx(750)

        recurring = client.get("/api/transactions/recurring").json()
        assert recurring["total"] == 1
        assert recurring["transactions"][0]["description"] == "Rent"

        renamed = client.patch(f"/api/accounts/{account['id']}", json={"name": "Bills"})
        assert renamed.json()["account"]["name"] == "Bills"

        listing = client.get("/api/accounts").json()
        assert listing["success"] is True
        assert [item["name"] for item in listing["data"]["checking"]] == ["Bills"]
        assert listing["data"]["all"][0]["balance"] == pytest.approx(750)

        removed = client.delete(f"/api/transactions/{transaction['id']}")
        assert removed.json()["account_balance"] == pytest.approx(1000)
        assert client.delete(f"/api/transactions/{transaction['id']}").status_code == 404

        deleted = client.delete(f"/api/accounts/{account['id']}")
        assert deleted.json() == {"success": True, "message": 'Account "Bills" has been deleted.'}
        assert client.get("/api/accounts").json()["data"]["all"] == []


def test_dashboard_lists_credit_cards_and_upcoming_payments(app) -> None:
    with TestClient(app) as client:
        _login(client)

        card = client.post(
            "/api/accounts",
            json={"name": "Visa", "type": "CREDIT_CARD", "balance": 0, "credit_limit": 1000, "apr": 20},
        ).json()["account"]
        client.post(
            "/api/transactions",
            json={
                "amount": 950,
                "type": "EXPENSE",
                "date": (datetime.now(timezone.utc) - timedelta(days=25)).isoformat(),
                "account_id": card["id"],
                "description": "Streaming",
                "is_recurring": True,
            },
        )

        dashboard = client.get("/dashboard")

    assert f'data-account="{card["id"]}"' in dashboard.text
    assert 'class="utilization critical">95% used' in dashboard.text
    assert 'data-payment="Streaming"' in dashboard.text
    assert "Due " in dashboard.text
    assert "No upcoming payments" not in dashboard.text


def test_ledger_api_requires_session(app) -> None:
    with TestClient(app) as client:
        assert client.get("/api/accounts").status_code == 401
        assert client.patch("/api/accounts/1", json={"name": "x"}).status_code == 401
        assert client.delete("/api/transactions/1").status_code == 401

def test_api_reports_field_errors(app) -> None:
    with TestClient(app) as client:
        _login(client)
        response = client.post("/api/transactions", json={"amount": -1, "type": "EXPENSE"})

    assert response.status_code == 422
    errors = response.json()["field_errors"]
    assert "amount" in errors
    assert "account_id" in errors


def test_create_app_requires_session_secret(database, settings) -> None:
    from dataclasses import replace

    with pytest.raises(RuntimeError):
        create_app(database=database, settings=replace(settings, session_secret=None))
