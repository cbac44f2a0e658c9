"""
ollama.py – Provider for self-hosted Ollama-compatible servers.

Uses the native Ollama REST API:
  POST /api/chat   – bulk chat (stream=False)
  POST /api/chat   – streaming chat (stream=True, NDJSON)
  GET  /api/tags   – list local models

Models that reject the "think" option answer with an error mentioning
"does not support thinking"; such requests are retried once with think=False.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Awaitable, Callable, TypeVar

from ...errors import ProviderHTTPError
from ...schemas import ModelDescriptor, NormalizedRequest
from ..messages import adapt_messages_for_ollama
from ..streaming import StreamIncrement, StreamSink
from .base import LLMProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

_THINK_UNSUPPORTED_RE = re.compile(r"does not support thinking")


def parse_ndjson_line(line: str) -> StreamIncrement:
    try:
        obj = json.loads(line)
    except ValueError as exc:
        logger.error("Invalid JSON line: %s (%s)", line, exc)
        return StreamIncrement()
    if not isinstance(obj, dict):
        return StreamIncrement()

    if obj.get("done") is True:
        return StreamIncrement.done("self-hosted DONE")

    msg = obj.get("message")
    if not isinstance(msg, dict):
        return StreamIncrement()
    content = msg.get("content")
    thinking = msg.get("thinking")
    return StreamIncrement(
        content=content if isinstance(content, str) else None,
        thinking=thinking if isinstance(thinking, str) else None,
    )


def is_think_unsupported(exc: Exception) -> bool:
    return isinstance(exc, ProviderHTTPError) and bool(
        _THINK_UNSUPPORTED_RE.search(exc.error_text)
    )


class SelfHostedProvider(LLMProvider):
    provider_name = "selfhosted"
    chat_path = "/api/chat"

    # ── Payload / parsing ─────────────────────────────────────────────────────

    def build_payload(self, request: NormalizedRequest) -> dict[str, Any]:
        payload = {
            "model": request.model,
            "messages": adapt_messages_for_ollama(request.messages),
            "stream": request.stream,
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_tokens,
            },
            "think": request.think,
        }
        logger.debug("Built Ollama payload.")
        return payload

    def parse_line(self, line: str) -> StreamIncrement:
        return parse_ndjson_line(line)

    # ── Think fallback ────────────────────────────────────────────────────────

    async def _with_think_fallback(
        self,
        request: NormalizedRequest,
        attempt: Callable[[NormalizedRequest], Awaitable[T]],
    ) -> T:
        """Run *attempt* with think=True when requested, else (or on
        "does not support thinking") once more with think=False."""
        if request.think:
            try:
                return await attempt(request.model_copy(update={"think": True}))
            except ProviderHTTPError as exc:
                if not is_think_unsupported(exc):
                    raise
                logger.warning("Thinking not supported by %s, retrying without thinking...", request.model)

        return await attempt(request.model_copy(update={"think": False}))

    # ── Contract ──────────────────────────────────────────────────────────────

    async def fetch_models(self) -> list[ModelDescriptor]:
        logger.info("Fetching models from %s/api/tags", self._base_url)
        data = await self._get_json("/api/tags")
        items = (data.get("models") if isinstance(data, dict) else None) or []
        models = [
            ModelDescriptor(id=m["name"], name=m["name"])
            for m in items
            if isinstance(m, dict) and isinstance(m.get("name"), str)
        ]
        logger.info("Fetched %d local models", len(models))
        return models

    async def generate_response(self, request: NormalizedRequest) -> str:
        async def attempt(req: NormalizedRequest) -> str:
            data = await self._post_chat(req)
            msg = data.get("message") if isinstance(data, dict) else None
            if not isinstance(msg, dict):
                return ""
            return msg.get("content") or ""

        return await self._with_think_fallback(
            request.model_copy(update={"stream": False}), attempt
        )

    async def stream_response(self, request: NormalizedRequest, sink: StreamSink) -> None:
        async def attempt(req: NormalizedRequest) -> None:
            await self._stream_chat(req, sink)

        await self._with_think_fallback(
            request.model_copy(update={"stream": True}), attempt
        )
