"""
models.py – model listing endpoint.

POST /api/models – list models served by the selected provider
"""
from __future__ import annotations

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..config import Settings
from ..deps import settings_dep, transport_dep
from ..schemas import Credentials, ModelDescriptor
from ..services.providers import create_provider
from .errors import error_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["models"])


class ModelsRequest(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, protected_namespaces=()
    )

    provider_type: str
    api_key: Optional[str] = None
    model_url: Optional[str] = None


@router.post("/models", response_model=list[ModelDescriptor])
async def list_models(
    req: ModelsRequest,
    settings: Settings = Depends(settings_dep),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(transport_dep),
):
    """Return the models available from the requested provider."""
    try:
        provider = create_provider(
            req.provider_type,
            Credentials(api_key=req.api_key, model_url=req.model_url),
            settings,
            transport=transport,
        )
        logger.info("Fetching models for %s...", req.provider_type)
        return await provider.fetch_models()
    except Exception as exc:
        logger.error("An error occurred fetching models: %s", exc)
        return error_response(exc)
