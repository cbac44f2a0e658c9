"""
cloud.py – Provider for the OpenAI chat completions API.

  POST {base}/chat/completions   – bulk, or SSE stream when stream=True
  GET  {base}/models             – list models

SSE lines look like ``data: {"choices":[{"delta":{"content":"..."}}]}`` and
the stream ends with ``data: [DONE]``.  No retry is attempted on failure.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from ...schemas import ModelDescriptor, NormalizedRequest
from ..streaming import StreamIncrement, StreamSink
from .base import LLMProvider

logger = logging.getLogger(__name__)

SSE_PREFIX = "data: "
SSE_DONE = "data: [DONE]"


def parse_sse_line(line: str) -> StreamIncrement:
    if line == SSE_DONE:
        return StreamIncrement.done("DONE sentinel")
    if not line.startswith(SSE_PREFIX):
        return StreamIncrement()

    json_str = line[len(SSE_PREFIX):]
    try:
        obj = json.loads(json_str)
    except ValueError as exc:
        logger.error("Invalid JSON line: %s (%s)", json_str, exc)
        return StreamIncrement()

    choices = obj.get("choices") if isinstance(obj, dict) else None
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return StreamIncrement()
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return StreamIncrement()
    content = delta.get("content")
    return StreamIncrement(content=content if isinstance(content, str) else None)


class CloudProvider(LLMProvider):
    provider_name = "cloud"
    chat_path = "/chat/completions"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(base_url, timeout=timeout, transport=transport)
        self._api_key = api_key

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    # ── Payload / parsing ─────────────────────────────────────────────────────

    def build_payload(self, request: NormalizedRequest) -> dict[str, Any]:
        return {
            "model": request.model,
            "messages": [m.model_dump(mode="json") for m in request.messages],
            "temperature": request.temperature,
            "stream": request.stream,
            "max_tokens": request.max_tokens,
        }

    def parse_line(self, line: str) -> StreamIncrement:
        return parse_sse_line(line)

    # ── Contract ──────────────────────────────────────────────────────────────

    async def fetch_models(self) -> list[ModelDescriptor]:
        logger.info("Fetching models from %s/models", self._base_url)
        data = await self._get_json("/models")
        items = (data.get("data") if isinstance(data, dict) else None) or []
        models = [
            ModelDescriptor(id=m["id"], name=m["id"])
            for m in items
            if isinstance(m, dict) and isinstance(m.get("id"), str)
        ]
        logger.info("Fetched %d cloud models", len(models))
        return models

    async def generate_response(self, request: NormalizedRequest) -> str:
        data = await self._post_chat(request.model_copy(update={"stream": False}))
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            return ""

    async def stream_response(self, request: NormalizedRequest, sink: StreamSink) -> None:
        await self._stream_chat(request.model_copy(update={"stream": True}), sink)
