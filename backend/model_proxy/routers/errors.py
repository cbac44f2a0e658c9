"""
errors.py – map provider-layer exceptions onto JSON error responses.
"""
from __future__ import annotations

from fastapi.responses import JSONResponse

from ..errors import (
    ConfigurationError,
    ProviderConnectionError,
    ProviderError,
    ProviderHTTPError,
)


def error_status(exc: Exception) -> int:
    if isinstance(exc, ConfigurationError):
        return 400
    if isinstance(exc, ProviderHTTPError):
        return 502
    if isinstance(exc, ProviderConnectionError):
        return 503
    return 500


def error_response(exc: Exception) -> JSONResponse:
    message = exc.message if isinstance(exc, ProviderError) else str(exc)
    payload: dict = {"error": message or "An unknown server error occurred"}
    if isinstance(exc, ProviderHTTPError):
        payload["upstream_status"] = exc.status_code
    return JSONResponse(status_code=error_status(exc), content=payload)
