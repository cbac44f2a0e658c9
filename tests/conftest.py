from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest

from model_proxy.config import ProviderConfig, Settings
from model_proxy.schemas import Message, NormalizedRequest


class Recorder:
    """httpx.MockTransport handler that records requests and replays a script."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self._handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.content]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        llm={
            "providers": {
                "cloud": ProviderConfig(
                    base_url="https://cloud.test/v1", api_key="sk-default-key", timeout=5
                ).model_dump(),
                "selfhosted": ProviderConfig(
                    base_url="http://ollama.test:11434", timeout=5
                ).model_dump(),
            }
        }
    )


@pytest.fixture
def make_request() -> Callable[..., NormalizedRequest]:
    def _make(content="hi", **overrides) -> NormalizedRequest:
        fields = {
            "model": "llama3",
            "messages": [Message(role="user", content=content)],
        }
        fields.update(overrides)
        return NormalizedRequest(**fields)

    return _make


def ndjson(*objs: dict) -> bytes:
    return "".join(json.dumps(o) + "\n" for o in objs).encode()


def sse(*objs, done: bool = True) -> bytes:
    lines = [f"data: {json.dumps(o)}\n\n" for o in objs]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()
