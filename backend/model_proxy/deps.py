"""
deps.py – FastAPI dependencies shared by the routers.

Tests override these through ``app.dependency_overrides`` to inject settings
and a fake httpx transport.
"""
from __future__ import annotations

from typing import Optional

import httpx

from .config import Settings, get_settings


def settings_dep() -> Settings:
    return get_settings()


def transport_dep() -> Optional[httpx.AsyncBaseTransport]:
    """Outbound transport for provider calls (None = real network)."""
    return None
