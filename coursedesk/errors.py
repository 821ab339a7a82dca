"""
Exception types raised by coursedesk.

Transport failures (no HTTP response at all) are NOT wrapped: callers see the
original ``requests`` exception.
"""

from __future__ import annotations

from typing import Any, Optional

import requests


class CoursedeskError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(CoursedeskError):
    pass


class RefreshError(CoursedeskError):
    """The refresh endpoint answered, but without a usable access token."""


def _server_message(response: requests.Response) -> Optional[str]:
    try:
        body: Any = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


class ApiError(CoursedeskError):
    """
    Non-2xx response from the REST API.
    """

    def __init__(self, response: requests.Response, method: str = "", path: str = "") -> None:
        self.response = response
        self.status = response.status_code
        self.method = method
        self.path = path
        self.server_message = _server_message(response)
        self.message = self.server_message or f"HTTP {self.status}"
        super().__init__(f"{method} {path}: {self.message}".strip())


class UnauthorizedError(ApiError):
    """HTTP 401 that could not be recovered by a token refresh."""


def error_for(response: requests.Response, method: str = "", path: str = "") -> ApiError:
    if response.status_code == 401:
        return UnauthorizedError(response, method, path)
    return ApiError(response, method, path)
