"""
chat.py – chat proxy endpoints.

POST /api/chat         – JSON body; bulk JSON reply or raw chunked text stream
POST /api/chat/upload  – multipart: `payload` (same JSON) + one `image` file,
                         merged into the last user message
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..config import GenerationConfig, Settings
from ..deps import settings_dep, transport_dep
from ..errors import ProviderError
from ..schemas import Credentials, Message, NormalizedRequest
from ..services import chat_service
from ..services.chat_service import QueueSink
from ..services.providers import create_provider
from .errors import error_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["chat"])


class ChatRequest(BaseModel):
    """Wire format sent by the browser front end (camelCase keys)."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, protected_namespaces=()
    )

    provider_type: str
    model: str
    messages: list[Message] = Field(..., min_length=1)
    api_key: Optional[str] = None
    model_url: Optional[str] = None
    stream: bool = False
    think: Optional[bool] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    def credentials(self) -> Credentials:
        return Credentials(api_key=self.api_key, model_url=self.model_url)

    def to_normalized(self, gen: GenerationConfig) -> NormalizedRequest:
        return NormalizedRequest(
            model=self.model,
            messages=self.messages,
            temperature=gen.temperature if self.temperature is None else self.temperature,
            max_tokens=gen.max_tokens if self.max_tokens is None else self.max_tokens,
            think=gen.think if self.think is None else self.think,
            stream=self.stream,
        )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _unprocessable(message: str) -> JSONResponse:
    return _error(422, message)


async def _run_chat(
    chat: ChatRequest,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport],
    image: Optional[tuple[bytes, str]] = None,
):
    try:
        provider = create_provider(chat.provider_type, chat.credentials(), settings, transport=transport)
        request = chat.to_normalized(settings.llm.generation)
        if image is not None:
            request = chat_service.attach_image(request, *image)
    except ProviderError as exc:
        logger.error("An error occurred: %s", exc)
        return error_response(exc)
    except ValueError as exc:
        return _unprocessable(str(exc))

    # ── Bulk ──────────────────────────────────────────────────────────────────
    if not request.stream:
        try:
            content = await chat_service.generate(provider, request)
        except Exception as exc:
            logger.error("An error occurred: %s", exc)
            return error_response(exc)
        return {"content": content}

    # ── Stream ────────────────────────────────────────────────────────────────
    # Hold the response back until the backend accepted the request, so a
    # failure before the first chunk can still become a JSON error.
    sink = QueueSink()
    task = asyncio.create_task(chat_service.stream(provider, request, sink))
    await sink.wait_started(task)
    if task.done() and not task.cancelled() and task.exception() is not None:
        exc = task.exception()
        logger.error("An error occurred: %s", exc)
        return error_response(exc)

    return StreamingResponse(
        sink.iter_content(task),
        media_type="application/octet-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/chat")
async def chat(
    req: ChatRequest,
    settings: Settings = Depends(settings_dep),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(transport_dep),
):
    """Proxy a chat request to the selected provider."""
    return await _run_chat(req, settings, transport)


@router.post("/chat/upload")
async def chat_with_image(
    payload: str = Form(...),
    image: UploadFile = File(...),
    settings: Settings = Depends(settings_dep),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(transport_dep),
):
    """Same as /api/chat, with one image attached to the last user message."""
    try:
        req = ChatRequest.model_validate_json(payload)
    except ValidationError as exc:
        return _unprocessable(f"Invalid payload: {exc.errors()[0].get('msg', exc)}")

    mime_type = image.content_type or ""
    if not mime_type.startswith("image/"):
        return _error(415, f"Unsupported attachment type '{mime_type}'")

    # Size check after reading (image.size may be None for chunked uploads)
    max_bytes = settings.app.max_image_size_mb * 1024 * 1024
    raw = await image.read()
    if len(raw) > max_bytes:
        return _error(413, f"Image too large. Max {settings.app.max_image_size_mb} MB.")

    logger.info("Received image attachment %s (%s, %d bytes)", image.filename, mime_type, len(raw))
    return await _run_chat(req, settings, transport, image=(raw, mime_type))
