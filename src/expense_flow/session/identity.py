"""Signed-in session: tokens, current user, and the session-expired flow."""

from __future__ import annotations

from collections.abc import Callable

import structlog

from expense_flow.api.auth import AuthClient
from expense_flow.errors import ExpenseFlowError
from expense_flow.models import AppConfig, User
from expense_flow.session.store import SessionTokens, TokenStore

logger = structlog.get_logger()


class Session:
    """Holds the current user's identity and credentials.

    When the backend answers 401, API clients call :meth:`expire`, which
    clears credentials and notifies ``on_expired`` listeners. The host UI
    registers a listener to send the user back to its login screen.

    Usage:
        session = Session.from_config(load_config())
        session.on_expired(lambda: router.push("/login"))
        if not await session.check():
            await session.login(email, password)
    """

    def __init__(self, auth: AuthClient, store: TokenStore | None = None) -> None:
        self.auth = auth
        self.store = store
        self.user: User | None = None
        self._tokens: SessionTokens | None = None
        self._expired_listeners: list[Callable[[], None]] = []

    @classmethod
    def from_config(cls, config: AppConfig, profile: str = "default") -> Session:
        """Build a session for the configured backend, persisting tokens if enabled."""
        store = TokenStore(config.session.state_dir, profile) if config.session.persist_tokens else None
        return cls(AuthClient(config.api), store)

    @property
    def access_token(self) -> str | None:
        return self._tokens.access_token if self._tokens else None

    @property
    def refresh_token(self) -> str | None:
        return self._tokens.refresh_token if self._tokens else None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self._tokens is not None

    def token_provider(self, fallback: str | None = None) -> Callable[[], str | None]:
        """Return a callable yielding the current access token (or ``fallback``)."""

        def provide() -> str | None:
            return self.access_token or fallback

        return provide

    def on_expired(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a session-expired listener. Returns an unsubscribe callable."""
        self._expired_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._expired_listeners:
                self._expired_listeners.remove(listener)

        return unsubscribe

    def _set_tokens(self, tokens: SessionTokens) -> None:
        self._tokens = tokens
        if self.store is not None:
            self.store.save(tokens)

    def _clear(self) -> None:
        self.user = None
        self._tokens = None
        if self.store is not None:
            self.store.clear()

    async def login(self, email: str, password: str) -> bool:
        """Sign in and load the user profile. Returns False on failure."""
        try:
            tokens = await self.auth.login(email, password)
        except ExpenseFlowError as e:
            logger.warning("login_failed", email=email, error=e.message)
            return False

        self._set_tokens(tokens)
        return await self.fetch_user() is not None

    async def fetch_user(self) -> User | None:
        """Load the current user. Any failure ends the session."""
        if self.access_token is None:
            return None
        try:
            user = await self.auth.get_current_user(self.access_token)
        except ExpenseFlowError as e:
            logger.warning("fetch_user_failed", error=e.message)
            await self.logout()
            return None

        self.user = user
        logger.info("session_started", user_id=user.id, role=user.role.value)
        return user

    async def refresh(self) -> bool:
        """Exchange the refresh token for a new token pair."""
        if not self.refresh_token:
            return False
        try:
            tokens = await self.auth.refresh(self.refresh_token)
        except ExpenseFlowError as e:
            logger.warning("token_refresh_failed", error=e.message)
            await self.logout()
            return False

        self._set_tokens(tokens)
        logger.debug("tokens_refreshed")
        return True

    async def check(self) -> bool:
        """Restore a stored session, if any, and confirm it is still valid."""
        if self._tokens is None and self.store is not None:
            self._tokens = self.store.load()
        if self._tokens is None:
            return False
        return await self.fetch_user() is not None

    async def logout(self) -> None:
        """End the session locally, telling the backend when we can.

        Local state is cleared even if the backend call fails.
        """
        token = self.access_token
        if token:
            try:
                await self.auth.logout(token)
            except ExpenseFlowError as e:
                logger.warning("logout_call_failed", error=e.message)

        self._clear()
        logger.info("session_ended")

    def expire(self) -> None:
        """Drop credentials after the backend rejected them, then notify listeners."""
        logger.info("session_expired", user_id=self.user.id if self.user else None)
        self._clear()
        for listener in list(self._expired_listeners):
            listener()
