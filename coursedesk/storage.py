"""
Persistent storage for the session's token pair.

The tokens live in one small JSON file (by default ~/.coursedesk/session.json):

    {"auth_tokens": {"accessToken": "...", "refreshToken": "..."}}

Both tokens are stored together as ONE record under the ``auth_tokens`` key,
so a refresh can never leave a new access token next to a stale refresh
token. The file survives restarts; logout deletes the record.

TokenStore is the only owner of this state. The session client and the auth
service receive the same instance, nothing reads the file directly.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from coursedesk.model import TokenPair


TOKENS_KEY = "auth_tokens"

logger = logging.getLogger(__name__)


class TokenStore:
    """
    Durable token pair, cached in memory after ``load()``.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._tokens = TokenPair()

    @property
    def tokens(self) -> TokenPair:
        return self._tokens

    def load(self) -> TokenPair:
        """
        Read the persisted pair. A missing or corrupted file means "logged out"
        and never crashes the application.
        """
        self._tokens = TokenPair()
        if not self.path.exists():
            return self._tokens
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            self._tokens = TokenPair.from_record(data.get(TOKENS_KEY))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError, AttributeError):
            logger.warning("Ignoring unreadable token file %s", self.path)
        return self._tokens

    def save(self, tokens: TokenPair) -> None:
        """
        Replace the stored pair. Creates parent directories if needed.
        """
        self._tokens = tokens
        data = self._read_all()
        data[TOKENS_KEY] = tokens.to_record()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    def clear(self) -> None:
        """
        Forget the pair (logout or failed refresh).
        """
        self._tokens = TokenPair()
        data = self._read_all()
        if TOKENS_KEY not in data:
            return
        del data[TOKENS_KEY]
        if data:
            self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        else:
            self.path.unlink(missing_ok=True)

    def _read_all(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError):
            return {}
        return data if isinstance(data, dict) else {}
