"""
Authenticated HTTP client for the course-management REST API.

Every call carries ``Authorization: Bearer <access token>``. When the API
answers 401 the client refreshes the access token once and replays the call:

- only ONE refresh request is ever in flight; callers that hit a 401 while a
  refresh is running wait for that refresh instead of starting their own
- a replayed call that is refused again fails for good (no retry loops)
- if there is no refresh token, or the refresh itself fails, the stored
  tokens are cleared and the error is raised to the caller

Everything runs on one asyncio event loop. The blocking ``requests`` call is
pushed to a worker thread, but the refresh state below is only touched from
the loop thread, and checking and entering REFRESHING happens without an
``await`` in between, so no lock is needed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol

import requests

from coursedesk.errors import RefreshError, UnauthorizedError, error_for
from coursedesk.model import TokenPair
from coursedesk.storage import TokenStore


REFRESH_PATH = "/auth/refresh"

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> requests.Response: ...


class RequestsTransport:
    """
    Transport backed by a ``requests.Session``, run in a worker thread so the
    event loop stays responsive while the socket blocks.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 30.0) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> requests.Response:
        return await asyncio.to_thread(
            self.session.request,
            method,
            url,
            headers=headers,
            json=json,
            params=params,
            timeout=self.timeout,
        )

    def close(self) -> None:
        self.session.close()


class RefreshState(Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


@dataclass
class _Call:
    """One logical API call; replays reuse it with a new token."""

    method: str
    path: str
    body: Any = None
    params: Optional[dict[str, Any]] = None
    headers: dict[str, str] = field(default_factory=dict)
    retried: bool = False


class SessionClient:
    def __init__(
        self,
        base_url: str,
        store: TokenStore,
        transport: Optional[Transport] = None,
        refresh_timeout: Optional[float] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.store = store
        self.transport = transport or RequestsTransport()
        self.refresh_timeout = refresh_timeout
        self.state = RefreshState.IDLE
        self._pending: list[asyncio.Future[str]] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> requests.Response:
        """
        Send one API call and return the (2xx) response.

        Raises ApiError / UnauthorizedError for error responses and lets
        ``requests`` exceptions (no response at all) through unchanged.
        """
        call = _Call(method.upper(), path, body, params, dict(headers or {}))
        response = await self._send(call, self.store.tokens.access_token)

        if response.status_code == 401 and not call.retried:
            call.retried = True
            access_token = await self._recover(error_for(response, call.method, call.path))
            response = await self._send(call, access_token)

        if not response.ok:
            raise error_for(response, call.method, call.path)
        return response

    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> requests.Response:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Any = None, params: Optional[dict[str, Any]] = None) -> requests.Response:
        return await self.request("POST", path, body=body, params=params)

    async def put(self, path: str, body: Any = None) -> requests.Response:
        return await self.request("PUT", path, body=body)

    async def delete(self, path: str) -> requests.Response:
        return await self.request("DELETE", path)

    async def get_json(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        return _json_or_none(await self.get(path, params=params))

    async def post_json(self, path: str, body: Any = None, params: Optional[dict[str, Any]] = None) -> Any:
        return _json_or_none(await self.post(path, body=body, params=params))

    async def put_json(self, path: str, body: Any = None) -> Any:
        return _json_or_none(await self.put(path, body=body))

    async def delete_json(self, path: str) -> Any:
        return _json_or_none(await self.delete(path))

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _send(self, call: _Call, access_token: Optional[str]) -> requests.Response:
        headers = dict(call.headers)
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return await self.transport.send(
            call.method,
            self._url(call.path),
            headers=headers,
            json=call.body,
            params=call.params,
        )

    async def _recover(self, error: UnauthorizedError) -> str:
        """
        Get a fresh access token after a 401, either by joining the refresh in
        flight or by running one. Returns the new access token.
        """
        refresh_token = self.store.tokens.refresh_token
        if not refresh_token:
            logger.info("Access token rejected and no refresh token stored; ending session")
            self.store.clear()
            raise error

        if self.state is RefreshState.REFRESHING:
            waiter: asyncio.Future[str] = asyncio.get_running_loop().create_future()
            self._pending.append(waiter)
            return await waiter

        self.state = RefreshState.REFRESHING
        try:
            access_token = await self._refresh(refresh_token)
        except Exception as exc:
            logger.warning("Token refresh failed (%s); ending session", exc)
            self.store.clear()
            self._settle(error=exc)
            raise
        else:
            logger.info("Token refreshed; replaying %d queued request(s)", len(self._pending))
            self._settle(token=access_token)
            return access_token
        finally:
            self._reset()

    async def _refresh(self, refresh_token: str) -> str:
        send = self.transport.send(
            "POST",
            self._url(REFRESH_PATH),
            headers={"Authorization": f"Bearer {refresh_token}"},
            json={},
        )
        if self.refresh_timeout is not None:
            try:
                response = await asyncio.wait_for(send, self.refresh_timeout)
            except asyncio.TimeoutError as exc:
                raise RefreshError("Token refresh timed out") from exc
        else:
            response = await send

        if not response.ok:
            raise error_for(response, "POST", REFRESH_PATH)
        try:
            tokens = TokenPair.from_record(response.json())
        except ValueError:
            raise RefreshError("Refresh response is not JSON") from None
        if not tokens.access_token:
            raise RefreshError("Refresh response contains no access token")

        self.store.save(TokenPair(tokens.access_token, tokens.refresh_token or refresh_token))
        return tokens.access_token

    def _settle(self, token: Optional[str] = None, error: Optional[BaseException] = None) -> None:
        for waiter in self._pending:
            if waiter.done():
                continue
            if error is not None:
                waiter.set_exception(error)
            else:
                waiter.set_result(token)

    def _reset(self) -> None:
        # only left-over waiters if the refresh itself was cancelled
        for waiter in self._pending:
            if not waiter.done():
                waiter.cancel()
        self._pending = []
        self.state = RefreshState.IDLE


def _json_or_none(response: requests.Response) -> Any:
    if not response.content:
        return None
    return response.json()
