"""
errors.py – exception taxonomy shared by providers and routers.

  ConfigurationError       – missing credential/endpoint (never retried)
  UnknownProviderError     – provider type tag not recognised
  ProviderHTTPError        – backend answered with a non-2xx status
  ProviderConnectionError  – backend could not be reached (no status code)
"""
from __future__ import annotations

from typing import Any, Optional


class ProviderError(Exception):
    """Base class for every error raised by the provider layer."""

    status_code: Optional[int] = None

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ProviderError):
    pass


class UnknownProviderError(ConfigurationError):
    pass


class ProviderHTTPError(ProviderError):
    """Non-2xx backend response. *body* is the parsed JSON or the raw text."""

    def __init__(self, status_code: int, body: Any) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {self.error_text or 'no error body'}")

    @property
    def error_text(self) -> str:
        """Best-effort human readable error string from the backend body."""
        body = self.body
        if isinstance(body, dict):
            err = body.get("error", "")
            if isinstance(err, dict):
                return str(err.get("message", ""))
            return str(err or "")
        if body is None:
            return ""
        return str(body)


class ProviderConnectionError(ProviderError):
    """Network-level failure; carries no HTTP status."""
