"""Session token persistence.

Stores and restores the access/refresh token pair so a signed-in session
survives process restarts.
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel

logger = structlog.get_logger()

DEFAULT_STATE_DIR = Path.home() / ".config" / "expense-flow" / "session"
TOKENS_FILENAME = "tokens.json"


class SessionTokens(BaseModel):
    access_token: str
    refresh_token: str | None = None


class TokenStore:
    """JSON file store for session tokens, one file per profile."""

    def __init__(self, state_dir: Path | None = None, profile: str = "default") -> None:
        self.state_dir = (state_dir or DEFAULT_STATE_DIR) / profile
        self.profile = profile

    @property
    def path(self) -> Path:
        return self.state_dir / TOKENS_FILENAME

    def save(self, tokens: SessionTokens) -> Path:
        """Write tokens to disk, readable only by the current user.

        Returns:
            Path to the saved tokens file.
        """
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.path.write_text(tokens.model_dump_json(indent=2))
        self.path.chmod(0o600)
        logger.debug("tokens_saved", profile=self.profile)
        return self.path

    def load(self) -> SessionTokens | None:
        """Load previously saved tokens.

        Returns:
            The stored tokens, or None if nothing usable is stored.
        """
        if not self.path.exists():
            logger.debug("no_saved_tokens", profile=self.profile)
            return None

        try:
            tokens = SessionTokens.model_validate(json.loads(self.path.read_text()))
        except (ValueError, TypeError):
            logger.warning("tokens_unreadable", profile=self.profile, path=str(self.path))
            return None

        logger.debug("tokens_loaded", profile=self.profile)
        return tokens

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
        logger.debug("tokens_cleared", profile=self.profile)
