"""Client for the hosted authentication provider."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .models import ExternalIdentity

logger = logging.getLogger("finance_manager.auth")


class AuthenticationError(RuntimeError):
    """Raised when the provider rejects a request or cannot be reached."""


class AuthProvider:
    """Password sign-in and sign-up against the provider's auth endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        cleaned = base_url.strip().rstrip("/")
        if not cleaned:
            raise ValueError("Auth provider URL must not be empty")
        if not api_key:
            raise ValueError("Auth provider API key must not be empty")
        self._base_url = cleaned
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={
                "apikey": self._api_key,
                "Authorization": f"Bearer {self._api_key}",
            },
        )

    def _post(self, path: str, *, params: Optional[Dict[str, str]] = None, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            with self._client() as client:
                response = client.post(path, params=params, json=payload)
        except httpx.HTTPError as exc:
            raise AuthenticationError(f"Failed to contact auth provider: {exc}") from exc

        if response.status_code >= 400:
            message = _error_message(response)
            logger.info("Auth provider rejected %s with %s: %s", path, response.status_code, message)
            raise AuthenticationError(message)

        try:
            body = response.json()
        except ValueError as exc:
            raise AuthenticationError("Auth provider returned an unexpected response format") from exc
        if not isinstance(body, dict):
            raise AuthenticationError("Auth provider returned an unexpected response format")
        return body

    def sign_in_with_password(self, email: str, password: str) -> ExternalIdentity:
        body = self._post(
            "/auth/v1/token",
            params={"grant_type": "password"},
            payload={"email": email, "password": password},
        )
        return _identity_from_body(body)

    def sign_up(self, email: str, password: str, *, name: Optional[str] = None) -> ExternalIdentity:
        payload: Dict[str, Any] = {"email": email, "password": password}
        if name:
            payload["data"] = {"name": name}
        body = self._post("/auth/v1/signup", payload=payload)
        return _identity_from_body(body)


def _identity_from_body(body: Dict[str, Any]) -> ExternalIdentity:
    # Sign-in responses wrap the user in a session; sign-up may return it bare.
    user = body.get("user")
    if user is None and "email" in body and "id" in body:
        user = body
    if not isinstance(user, dict):
        raise AuthenticationError("Auth provider response did not include a user")
    return ExternalIdentity.from_payload(user)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or f"Auth provider responded with {response.status_code}"
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return f"Auth provider responded with {response.status_code}"


__all__ = ["AuthProvider", "AuthenticationError"]
