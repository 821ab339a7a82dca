"""
Runtime settings.

Values come from environment variables and can be overridden by CLI flags
(see ``coursedesk.cli``). Using a function instead of module constants
makes testing easier, because tests can pass their own environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from coursedesk.errors import ConfigError


DEFAULT_BASE_URL = "http://localhost:8080/api"
DEFAULT_TIMEOUT = 30.0


def _default_token_path() -> Path:
    return Path.home() / ".coursedesk" / "session.json"


@dataclass(frozen=True)
class Settings:
    base_url: str = DEFAULT_BASE_URL
    token_path: Path = _default_token_path()
    timeout: float = DEFAULT_TIMEOUT
    refresh_timeout: Optional[float] = None
    log_level: str = "WARNING"

    def with_overrides(self, **changes: object) -> "Settings":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _seconds(env: Mapping[str, str], name: str, default: Optional[float]) -> Optional[float]:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number of seconds, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from the environment (``os.environ`` by default).
    """
    env = os.environ if env is None else env

    base_url = env.get("COURSEDESK_BASE_URL", "").strip() or DEFAULT_BASE_URL
    token_file = env.get("COURSEDESK_TOKEN_FILE", "").strip()

    return Settings(
        base_url=base_url.rstrip("/"),
        token_path=Path(token_file).expanduser() if token_file else _default_token_path(),
        timeout=_seconds(env, "COURSEDESK_TIMEOUT", DEFAULT_TIMEOUT) or DEFAULT_TIMEOUT,
        refresh_timeout=_seconds(env, "COURSEDESK_REFRESH_TIMEOUT", None),
        log_level=(env.get("COURSEDESK_LOG_LEVEL", "").strip() or "WARNING").upper(),
    )
