"""
base.py – Abstract LLMProvider interface.

Every concrete provider must implement:
  fetch_models()       – list the models the backend serves
  generate_response()  – bulk call, returns the full reply text
  stream_response()    – incremental call, feeds a StreamSink
  build_payload()      – normalized request -> backend request body
  parse_line()         – one streamed line -> StreamIncrement
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

from ...errors import ProviderConnectionError, ProviderHTTPError
from ...schemas import ModelDescriptor, NormalizedRequest
from ..streaming import StreamIncrement, StreamSink, reduce_stream

logger = logging.getLogger(__name__)


def _parse_error_body(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return text


class LLMProvider(ABC):
    """Abstract base class for all chat backends.

    *transport* is handed to httpx.AsyncClient; leave it unset to use the
    default network transport.  One instance serves a single request.
    """

    provider_name: str = ""
    chat_path: str = ""

    def __init__(
        self,
        base_url: str,
        timeout: float = 120,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    # ── Required overrides ────────────────────────────────────────────────────

    @abstractmethod
    async def fetch_models(self) -> list[ModelDescriptor]:
        ...

    @abstractmethod
    async def generate_response(self, request: NormalizedRequest) -> str:
        ...

    @abstractmethod
    async def stream_response(self, request: NormalizedRequest, sink: StreamSink) -> None:
        ...

    @abstractmethod
    def build_payload(self, request: NormalizedRequest) -> dict[str, Any]:
        ...

    @abstractmethod
    def parse_line(self, line: str) -> StreamIncrement:
        ...

    # ── Transport ─────────────────────────────────────────────────────────────

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    @property
    def base_url(self) -> str:
        return self._base_url

    @asynccontextmanager
    async def _open(
        self,
        method: str,
        path: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> AsyncIterator[httpx.Response]:
        """Send a request and yield the (unread) response.

        Non-2xx responses raise ProviderHTTPError carrying the status and the
        parsed-or-raw body; network failures raise ProviderConnectionError.
        The response is closed when the block exits.
        """
        url = f"{self._base_url}{path}"
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            request = client.build_request(method, url, json=payload, headers=self._headers())
            try:
                resp = await client.send(request, stream=True)
            except httpx.RequestError as exc:
                raise ProviderConnectionError(
                    f"{self.provider_name} backend unreachable at {url}: {exc}"
                ) from exc
            try:
                if not resp.is_success:
                    await resp.aread()
                    body = _parse_error_body(resp.text)
                    logger.error("Error body (HTTP %d): %s", resp.status_code, body)
                    raise ProviderHTTPError(resp.status_code, body)
                yield resp
            except httpx.RequestError as exc:
                raise ProviderConnectionError(
                    f"{self.provider_name} connection failed while reading {url}: {exc}"
                ) from exc
            finally:
                await resp.aclose()

    async def _get_json(self, path: str) -> Any:
        async with self._open("GET", path) as resp:
            await resp.aread()
            return resp.json()

    async def _post_chat(self, request: NormalizedRequest) -> Any:
        """Bulk POST to the chat endpoint; returns the decoded JSON body."""
        payload = self.build_payload(request)
        logger.info(">>> POST (bulk) %s%s", self._base_url, self.chat_path)
        logger.debug("Request body: %s", json.dumps(payload))
        async with self._open("POST", self.chat_path, payload) as resp:
            await resp.aread()
            return resp.json()

    async def _stream_chat(self, request: NormalizedRequest, sink: StreamSink) -> None:
        """Streaming POST to the chat endpoint, reduced into *sink*."""
        payload = self.build_payload(request)
        logger.info(">>> POST (stream) %s%s", self._base_url, self.chat_path)
        logger.debug("Request body: %s", json.dumps(payload))
        async with self._open("POST", self.chat_path, payload) as resp:
            await reduce_stream(resp.aiter_bytes(), self.parse_line, sink)
