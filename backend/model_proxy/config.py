"""
config.py – loads config.yaml and exposes typed settings throughout the app.

The `llm.providers` dict holds one entry per provider type ("cloud",
"selfhosted"); these are the process-wide credential fallbacks used when a
request does not carry its own API key / model URL.
String values matching ${VAR_NAME} are expanded from environment variables.
"""
from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


# ──────────────────────────────────────────────────────────────────────────────
# Env-var expansion helper
# ──────────────────────────────────────────────────────────────────────────────

_ENV_VAR_RE = re.compile(r"^\$\{([^}]+)\}$")


def _expand(value: Any) -> Any:
    """Expand '${VAR_NAME}' strings from the process environment."""
    if isinstance(value, str):
        m = _ENV_VAR_RE.match(value)
        if m:
            return os.environ.get(m.group(1), "")
    return value


def mask_secret(value: str | None) -> str:
    """Render a credential for logs: only the last 4 characters survive."""
    if not value:
        return "<unset>"
    if len(value) <= 8:
        return "****"
    return f"****{value[-4:]}"


# ──────────────────────────────────────────────────────────────────────────────
# Provider config
# ──────────────────────────────────────────────────────────────────────────────

class ProviderConfig(BaseModel):
    base_url: str = ""
    api_key: str = ""
    timeout: int = 120

    @field_validator("api_key", "base_url", mode="before")
    @classmethod
    def expand_env_vars(cls, v: Any) -> Any:
        return _expand(v)


def _default_providers() -> dict[str, ProviderConfig]:
    return {
        "cloud": ProviderConfig(
            base_url="https://api.openai.com/v1",
            api_key="${OPENAI_API_KEY}",
            timeout=60,
        ),
        "selfhosted": ProviderConfig(
            base_url="${MODEL_URL}",
            timeout=120,
        ),
    }


# ──────────────────────────────────────────────────────────────────────────────
# LLM top-level config
# ──────────────────────────────────────────────────────────────────────────────

class GenerationConfig(BaseModel):
    temperature: float = 0.7
    max_tokens: int = 4000
    think: bool = False


class LLMConfig(BaseModel):
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    providers: dict[str, ProviderConfig] = Field(default_factory=_default_providers)

    @model_validator(mode="before")
    @classmethod
    def merge_providers(cls, data: Any) -> Any:
        """Merge YAML providers with defaults so omitted keys still work."""
        if not isinstance(data, dict):
            return data
        defaults = _default_providers()
        raw_providers = data.get("providers") or {}
        merged: dict[str, Any] = {}
        for name, default_cfg in defaults.items():
            yaml_cfg = raw_providers.get(name, {})
            if isinstance(yaml_cfg, dict):
                merged[name] = {**default_cfg.model_dump(), **yaml_cfg}
            else:
                merged[name] = default_cfg.model_dump()
        data["providers"] = merged
        return data


class AppConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    max_image_size_mb: int = 20


class Settings(BaseModel):
    llm: LLMConfig = Field(default_factory=LLMConfig)
    app: AppConfig = Field(default_factory=AppConfig)


# ──────────────────────────────────────────────────────────────────────────────
# Loader
# ──────────────────────────────────────────────────────────────────────────────

def _find_config() -> Path:
    candidates = [
        Path(os.environ.get("MODEL_PROXY_CONFIG", "")),
        Path(__file__).parent.parent.parent / "config.yaml",  # repo root
        Path(__file__).parent.parent / "config.yaml",          # backend/
    ]
    for c in candidates:
        if c.is_file():
            return c
    return candidates[1]


def load_settings(path: Path) -> Settings:
    if path.is_file():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return Settings(**raw)
    return Settings()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings(_find_config())


def reload_settings() -> Settings:
    """Clear the cache and reload config.yaml."""
    get_settings.cache_clear()
    return get_settings()
