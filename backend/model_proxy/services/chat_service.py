"""
chat_service.py – glue between the HTTP boundary and the provider layer.

  generate()      – bulk call with logging
  stream()        – streaming call with logging
  attach_image()  – merge an uploaded image into the last user message
  QueueSink       – StreamSink that turns increments into an async iterator
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, Optional, Union

from ..schemas import ContentPart, ImagePart, Message, NormalizedRequest, TextPart
from .providers.base import LLMProvider
from .streaming import StreamSink

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Calls
# ──────────────────────────────────────────────────────────────────────────────

async def generate(provider: LLMProvider, request: NormalizedRequest) -> str:
    """Bulk call; returns the full reply."""
    logger.info(
        "Proxying bulk request to %s model %s (%d messages)",
        provider.provider_name, request.model, len(request.messages),
    )
    start = time.perf_counter()
    content = await provider.generate_response(request)
    logger.info("Bulk reply: %d chars in %.2fs", len(content), time.perf_counter() - start)
    return content


async def stream(provider: LLMProvider, request: NormalizedRequest, sink: StreamSink) -> None:
    logger.info(
        "Proxying stream request to %s model %s (%d messages)",
        provider.provider_name, request.model, len(request.messages),
    )
    await provider.stream_response(request, sink)


# ──────────────────────────────────────────────────────────────────────────────
# Image attachment
# ──────────────────────────────────────────────────────────────────────────────

def attach_image(request: NormalizedRequest, raw: bytes, mime_type: str) -> NormalizedRequest:
    """Return a copy of *request* with the image appended to the last user message.

    Raises ValueError when the request has no user message.
    """
    messages = list(request.messages)
    for idx in range(len(messages) - 1, -1, -1):
        if messages[idx].role == "user":
            break
    else:
        raise ValueError("An image can only be attached to a user message")

    target = messages[idx]
    parts: list[ContentPart]
    if isinstance(target.content, str):
        parts = [TextPart(text=target.content)] if target.content else []
    else:
        parts = list(target.content)
    parts.append(ImagePart.from_bytes(raw, mime_type))

    messages[idx] = Message(role=target.role, content=parts)
    logger.debug("Attached %d-byte %s image to message %d", len(raw), mime_type, idx)
    return request.model_copy(update={"messages": messages})


# ──────────────────────────────────────────────────────────────────────────────
# Queue-backed sink
# ──────────────────────────────────────────────────────────────────────────────

_DONE = object()


class QueueSink:
    """Buffers content chunks for an HTTP streaming response.

    Thinking fragments are logged only.  on_done() enqueues an end marker that
    stops iter_content().
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Union[str, object]] = asyncio.Queue()
        self._started = asyncio.Event()
        self.done_count = 0

    # ── StreamSink ────────────────────────────────────────────────────────────

    def on_content(self, chunk: str) -> None:
        self._started.set()
        self._queue.put_nowait(chunk)

    def on_thinking(self, chunk: str) -> None:
        self._started.set()
        logger.debug("Thinking: %s", chunk)

    def on_done(self) -> None:
        self.done_count += 1
        self._started.set()
        self._queue.put_nowait(_DONE)
        logger.info("--- Stream complete ---")

    # ── Consumer side ─────────────────────────────────────────────────────────

    async def wait_started(self, task: "asyncio.Task[None]") -> None:
        """Return once the stream produced anything or *task* has finished."""
        waiter = asyncio.ensure_future(self._started.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()

    async def iter_content(self, task: Optional["asyncio.Task[None]"] = None) -> AsyncIterator[str]:
        """Yield content chunks until the end marker, or until *task* dies.

        If the consumer stops early the producing task is cancelled.
        """
        try:
            while True:
                if task is not None and task.done() and self._queue.empty():
                    break
                getter = asyncio.ensure_future(self._queue.get())
                pending = {getter} if task is None or task.done() else {getter, task}
                await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                if not getter.done():
                    getter.cancel()
                    continue
                item = getter.result()
                if item is _DONE:
                    break
                yield item  # type: ignore[misc]

            # Let the provider finish closing the backend response
            if task is not None and not task.cancelled():
                try:
                    await task
                except Exception as exc:
                    logger.error("Stream terminated by provider error: %s", exc)
        finally:
            if task is not None and not task.done():
                task.cancel()
