"""Authentication API client: login, token refresh, identity, logout."""

from __future__ import annotations

from typing import Any

from expense_flow.api.base import BackendHttpClient, parse_record
from expense_flow.errors import TransportError
from expense_flow.models import ApiConfig, User
from expense_flow.session.store import SessionTokens


class AuthClient(BackendHttpClient):
    """Client for the auth endpoints.

    Tokens are passed explicitly so that the session owning them stays the
    only place they live.
    """

    def __init__(self, config: ApiConfig, **kwargs: Any) -> None:
        self.config = config
        super().__init__(
            config.resolved_auth_base_url,
            timeout=config.timeout,
            read_attempts=config.read_attempts,
            retry_backoff=config.retry_backoff,
            **kwargs,
        )

    async def __aenter__(self) -> AuthClient:
        return self

    async def login(self, email: str, password: str) -> SessionTokens:
        data = await self._request(
            "POST",
            "/auth/login",
            json={"email": email, "password": password},
            requires_auth=False,
        )
        return _tokens_from(data)

    async def refresh(self, refresh_token: str) -> SessionTokens:
        data = await self._request(
            "POST",
            "/auth/refresh",
            json={"refresh_token": refresh_token},
            requires_auth=False,
        )
        return _tokens_from(data)

    async def get_current_user(self, access_token: str) -> User:
        data = await self._get("/users/me", token=access_token)
        return parse_record(User.from_api, data, what="user")

    async def logout(self, access_token: str) -> None:
        await self._request("POST", "/auth/logout", token=access_token)


def _tokens_from(data: Any) -> SessionTokens:
    if not isinstance(data, dict) or not data.get("access_token"):
        raise TransportError("Authentication response did not include an access token")
    return SessionTokens(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
    )
