"""
Login, logout and "who am I".

The token pair lives in the TokenStore shared with the SessionClient;
this module only decides WHEN it is created (login) and torn down
(logout, or a session that can no longer be verified).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

from coursedesk import api
from coursedesk.errors import ApiError, RefreshError
from coursedesk.model import TokenPair
from coursedesk.session import SessionClient


logger = logging.getLogger(__name__)


def normalize_role(role: Any) -> Optional[str]:
    """
    'ROLE_student' -> 'STUDENT'. Authority entries may also be
    {"authority": "ROLE_X"} objects.
    """
    if isinstance(role, dict):
        role = role.get("authority") or role.get("name")
    if not role:
        return None
    text = str(role).strip()
    if text.upper().startswith("ROLE_"):
        text = text[5:]
    return text.upper() or None


def resolve_role(profile: Any) -> Optional[str]:
    """
    Pick the user's role from a /auth/me answer:
    role, then roleCode, then the first authority, then the first role.
    """
    if not isinstance(profile, dict):
        return None
    candidates = [profile.get("role"), profile.get("roleCode")]
    for key in ("authorities", "roles"):
        values = profile.get(key)
        if isinstance(values, list) and values:
            candidates.append(values[0])
    for candidate in candidates:
        role = normalize_role(candidate)
        if role:
            return role
    return None


@dataclass
class CurrentUser:
    profile: dict[str, Any] = field(default_factory=dict)
    role: Optional[str] = None

    @property
    def display_name(self) -> str:
        return str(self.profile.get("fullName") or self.profile.get("name") or self.profile.get("email") or "")

    def has_role(self, *roles: str) -> bool:
        if not self.role:
            return False
        wanted = {normalize_role(r) for r in roles}
        return normalize_role(self.role) in wanted


class AuthService:
    def __init__(self, client: SessionClient) -> None:
        self.client = client
        self.store = client.store

    async def login(self, email: str, password: str) -> CurrentUser:
        data = await api.login(self.client, email, password)
        tokens = TokenPair.from_record(data)
        if not tokens.access_token:
            raise RefreshError("Login response contains no access token")
        self.store.save(tokens)
        logger.info("Logged in as %s", email)
        return await self.current_user()

    async def current_user(self) -> CurrentUser:
        profile = await api.me(self.client)
        profile = profile if isinstance(profile, dict) else {}
        return CurrentUser(profile=profile, role=resolve_role(profile))

    async def bootstrap(self) -> Optional[CurrentUser]:
        """
        Restore the session saved by a previous run.
        Returns None (and clears the stored tokens) if it is gone.
        """
        if not self.store.load().access_token:
            self.store.clear()
            return None
        try:
            return await self.current_user()
        except (ApiError, RefreshError, requests.RequestException) as exc:
            logger.info("Stored session is no longer valid: %s", exc)
            self.store.clear()
            return None

    async def register(self, form: dict[str, Any], auto_login: bool = False) -> Optional[CurrentUser]:
        await api.register(self.client, form)
        if auto_login:
            return await self.login(form["email"], form["password"])
        return None

    def logout(self) -> None:
        self.store.clear()
