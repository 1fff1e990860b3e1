"""Shared HTTP plumbing for the backend API clients."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import httpx
import structlog
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from expense_flow.errors import SessionExpiredError, TransportError

logger = structlog.get_logger()

TokenProvider = Callable[[], "str | None"]
T = TypeVar("T")

_ENVELOPE_KEYS = {"success", "data", "message", "errors"}


def _is_network_failure(exc: BaseException) -> bool:
    return isinstance(exc, TransportError) and exc.status_code == 0


def parse_record(parse: Callable[[Any], T], data: Any, *, what: str) -> T:
    """Parse a response payload, reporting a malformed one as ``TransportError``."""
    try:
        return parse(data)
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        logger.warning("api_unexpected_response", record=what, error=str(e))
        raise TransportError(f"Unexpected response from backend: invalid {what}") from e


def _error_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class BackendHttpClient:
    """Async JSON client for the expense backend.

    Injects the bearer token, unwraps the ``{success, data, ...}`` response
    envelope, and turns HTTP failures into ``TransportError``. A 401 fires
    ``on_unauthorized`` (which clears the session) before raising
    ``SessionExpiredError``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        token_provider: TokenProvider | None = None,
        on_unauthorized: Callable[[], None] | None = None,
        read_attempts: int = 3,
        retry_backoff: float = 0.5,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url
        self._token_provider = token_provider
        self._on_unauthorized = on_unauthorized
        self._read_attempts = read_attempts
        self._retry_backoff = retry_backoff
        self._http = http or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    def _auth_headers(self, token: str | None, requires_auth: bool) -> dict[str, str]:
        if token is None and self._token_provider is not None:
            token = self._token_provider()
        if token:
            return {"Authorization": f"Bearer {token}"}
        if requires_auth:
            raise SessionExpiredError("No authentication token available")
        return {}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        requires_auth: bool = True,
        token: str | None = None,
    ) -> Any:
        """Execute a request against the backend.

        Args:
            method: HTTP method.
            path: Path relative to the base URL, e.g. "/expenses/42".
            params: Query parameters.
            json: JSON request body.
            requires_auth: Fail before sending if no token is available.
            token: Explicit bearer token, overriding the token provider.

        Returns:
            The unwrapped response payload, or None for empty responses.

        Raises:
            SessionExpiredError: On HTTP 401 or a missing token.
            TransportError: On network failures and other non-2xx responses.
        """
        headers = self._auth_headers(token, requires_auth)
        log = logger.bind(method=method, path=path)
        log.debug("api_request")

        try:
            response = await self._http.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.TransportError as e:
            log.warning("api_unreachable", error=str(e))
            raise TransportError(str(e) or "Network error") from e

        if response.status_code == 401:
            log.info("api_unauthorized")
            if self._on_unauthorized is not None:
                self._on_unauthorized()
            raise SessionExpiredError()

        if response.status_code == 403:
            raise TransportError("Access forbidden", status_code=403)

        if response.is_error:
            body = _error_body(response)
            log.info("api_error", status=response.status_code, message=body.get("message"))
            raise TransportError(
                body.get("message") or "Request failed",
                status_code=response.status_code,
                errors=body.get("errors"),
            )

        if response.status_code == 204 or not response.content:
            return None
        if "application/json" not in response.headers.get("content-type", ""):
            return None

        body = response.json()
        if isinstance(body, dict) and "data" in body and set(body) <= _ENVELOPE_KEYS:
            return body["data"]
        return body

    async def _get(self, path: str, *, params: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        """GET with retries on network-level failures. Reads are idempotent."""
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_network_failure),
            stop=stop_after_attempt(self._read_attempts),
            wait=wait_exponential(multiplier=self._retry_backoff, max=10),
            reraise=True,
        ):
            with attempt:
                return await self._request("GET", path, params=params, **kwargs)
