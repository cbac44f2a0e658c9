"""
providers/__init__.py – Provider factory.

Exports:
  create_provider()   – build a fresh LLMProvider for one request
  provider_status()   – configuration status of every provider type
  PROVIDER_TYPES      – canonical provider type tags

Providers are never cached: each call returns a new instance bound to the
credential resolved for that request.
"""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from ...config import Settings, mask_secret
from ...errors import ConfigurationError, UnknownProviderError
from ...schemas import Credentials
from .base import LLMProvider
from .cloud import CloudProvider
from .ollama import SelfHostedProvider

logger = logging.getLogger(__name__)

PROVIDER_TYPES = ("cloud", "selfhosted")

# Tags used by older front ends
_ALIASES = {
    "openai": "cloud",
    "ollama": "selfhosted",
}


def resolve_provider_type(provider_type: str) -> str:
    name = _ALIASES.get(provider_type, provider_type)
    if name not in PROVIDER_TYPES:
        raise UnknownProviderError(f"Unknown provider type: {provider_type}")
    return name


def create_provider(
    provider_type: str,
    credentials: Optional[Credentials],
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> LLMProvider:
    """Instantiate the requested provider.

    The explicit per-request credential wins; otherwise the configured
    default for that provider type is used.
    """
    name = resolve_provider_type(provider_type)
    creds = credentials or Credentials()
    cfg = settings.llm.providers[name]

    if name == "cloud":
        key = creds.api_key or cfg.api_key
        if not key:
            raise ConfigurationError("Missing OpenAI API key on server.")
        logger.debug("Creating cloud provider (api_key=%s)", mask_secret(key))
        return CloudProvider(
            api_key=key,
            base_url=cfg.base_url or "https://api.openai.com/v1",
            timeout=cfg.timeout,
            transport=transport,
        )

    url = creds.model_url or cfg.base_url
    if not url:
        raise ConfigurationError("Missing Self-Hosted model URL on server.")
    logger.debug("Creating self-hosted provider (base_url=%s)", url)
    return SelfHostedProvider(base_url=url, timeout=cfg.timeout, transport=transport)


def provider_status(settings: Settings) -> list[dict]:
    """Return status dicts for all provider types (no secrets)."""
    rows = []
    for name in PROVIDER_TYPES:
        cfg = settings.llm.providers[name]
        rows.append({
            "name": name,
            "base_url": cfg.base_url,
            "has_api_key": bool(cfg.api_key),
            "configured": bool(cfg.api_key) if name == "cloud" else bool(cfg.base_url),
        })
    return rows
