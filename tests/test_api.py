"""End-to-end tests of the HTTP front door with a mocked backend."""

from __future__ import annotations

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from model_proxy.deps import settings_dep, transport_dep
from model_proxy.main import app

from conftest import Recorder, ndjson, sse


@pytest.fixture
def backend():
    """Mutable holder for the mocked backend's handler."""

    class Backend:
        recorder = Recorder(lambda req: httpx.Response(500, text="no handler"))

        def respond(self, handler):
            self.recorder = Recorder(handler)
            return self.recorder

    return Backend()


@pytest.fixture
def client(settings, backend):
    app.dependency_overrides[settings_dep] = lambda: settings
    app.dependency_overrides[transport_dep] = lambda: httpx.MockTransport(
        lambda req: backend.recorder(req)
    )
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def chat_body(**overrides) -> dict:
    body = {
        "providerType": "selfhosted",
        "model": "llama3",
        "messages": [{"role": "user", "content": "hi"}],
        "stream": False,
    }
    body.update(overrides)
    return body


# ---------------------------------------------------------------------------
# /api/chat bulk
# ---------------------------------------------------------------------------

class TestChatBulk:
    def test_selfhosted_bulk(self, client, backend):
        recorder = backend.respond(lambda req: httpx.Response(200, json={"message": {"content": "hello"}}))

        r = client.post("/api/chat", json=chat_body())

        assert r.status_code == 200
        assert r.json() == {"content": "hello"}
        sent = recorder.bodies[0]
        assert sent["options"] == {"temperature": 0.7, "num_predict": 4000}
        assert sent["think"] is False

    def test_camel_case_parameters_forwarded(self, client, backend):
        recorder = backend.respond(lambda req: httpx.Response(200, json={"message": {"content": "x"}}))

        client.post("/api/chat", json=chat_body(temperature=0.2, maxTokens=64, think=True))

        sent = recorder.bodies[0]
        assert sent["options"] == {"temperature": 0.2, "num_predict": 64}
        assert sent["think"] is True

    def test_request_model_url_overrides_default(self, client, backend):
        recorder = backend.respond(lambda req: httpx.Response(200, json={"message": {"content": "x"}}))

        client.post("/api/chat", json=chat_body(modelUrl="http://other-host:11434"))

        assert str(recorder.requests[0].url) == "http://other-host:11434/api/chat"

    def test_cloud_bulk(self, client, backend):
        recorder = backend.respond(
            lambda req: httpx.Response(200, json={"choices": [{"message": {"content": "cloudy"}}]})
        )

        r = client.post("/api/chat", json=chat_body(providerType="openai", apiKey="sk-user"))

        assert r.json() == {"content": "cloudy"}
        assert recorder.requests[0].headers["Authorization"] == "Bearer sk-user"

    def test_unknown_provider(self, client):
        r = client.post("/api/chat", json=chat_body(providerType="bard"))
        assert r.status_code == 400
        assert r.json() == {"error": "Unknown provider type: bard"}

    def test_missing_credential(self, client, settings):
        settings.llm.providers["selfhosted"].base_url = ""

        r = client.post("/api/chat", json=chat_body())

        assert r.status_code == 400
        assert "model URL" in r.json()["error"]

    def test_backend_error(self, client, backend):
        backend.respond(lambda req: httpx.Response(404, json={"error": "model not found"}))

        r = client.post("/api/chat", json=chat_body())

        assert r.status_code == 502
        assert r.json()["upstream_status"] == 404
        assert "model not found" in r.json()["error"]

    def test_backend_redirect(self, client, backend):
        backend.respond(lambda req: httpx.Response(301, headers={"location": "https://moved.test/api/chat"}))

        r = client.post("/api/chat", json=chat_body(stream=True))

        assert r.status_code == 502
        assert r.json()["upstream_status"] == 301

    def test_backend_unreachable(self, client, backend):
        def handler(req):
            raise httpx.ConnectError("refused", request=req)

        backend.respond(handler)

        r = client.post("/api/chat", json=chat_body())

        assert r.status_code == 503

    def test_empty_messages_rejected(self, client):
        r = client.post("/api/chat", json=chat_body(messages=[]))
        assert r.status_code == 422


# ---------------------------------------------------------------------------
# /api/chat streaming
# ---------------------------------------------------------------------------

class TestChatStream:
    def test_selfhosted_stream(self, client, backend):
        body = ndjson(
            {"message": {"content": "a"}},
            {"message": {"thinking": "not forwarded"}},
            {"message": {"content": "b"}},
            {"done": True},
        )
        backend.respond(lambda req: httpx.Response(200, content=body))

        r = client.post("/api/chat", json=chat_body(stream=True))

        assert r.status_code == 200
        assert r.headers["content-type"].startswith("application/octet-stream")
        assert r.text == "ab"

    def test_cloud_stream(self, client, backend):
        backend.respond(
            lambda req: httpx.Response(
                200,
                content=sse(
                    {"choices": [{"delta": {"content": "Hel"}}]},
                    {"choices": [{"delta": {"content": "lo"}}]},
                ),
            )
        )

        r = client.post("/api/chat", json=chat_body(providerType="cloud", stream=True))

        assert r.text == "Hello"

    def test_stream_think_fallback(self, client, backend):
        def handler(req):
            if json.loads(req.content)["think"]:
                return httpx.Response(400, json={"error": "llama3 does not support thinking"})
            return httpx.Response(200, content=ndjson({"message": {"content": "ok"}}, {"done": True}))

        recorder = backend.respond(handler)

        r = client.post("/api/chat", json=chat_body(stream=True, think=True))

        assert r.text == "ok"
        assert [b["think"] for b in recorder.bodies] == [True, False]

    def test_error_before_first_chunk_is_json(self, client, backend):
        backend.respond(lambda req: httpx.Response(500, json={"error": "boom"}))

        r = client.post("/api/chat", json=chat_body(stream=True))

        assert r.status_code == 502
        assert "boom" in r.json()["error"]

    def test_empty_stream_still_closes(self, client, backend):
        backend.respond(lambda req: httpx.Response(200, content=b""))

        r = client.post("/api/chat", json=chat_body(stream=True))

        assert r.status_code == 200
        assert r.text == ""


# ---------------------------------------------------------------------------
# /api/chat/upload
# ---------------------------------------------------------------------------

class TestChatUpload:
    def test_image_merged_into_last_user_message(self, client, backend):
        recorder = backend.respond(lambda req: httpx.Response(200, json={"message": {"content": "a cat"}}))
        payload = chat_body(
            messages=[
                {"role": "user", "content": "first"},
                {"role": "assistant", "content": "ok"},
                {"role": "user", "content": "what is this?"},
            ]
        )

        r = client.post(
            "/api/chat/upload",
            data={"payload": json.dumps(payload)},
            files={"image": ("cat.png", b"\x89PNG", "image/png")},
        )

        assert r.status_code == 200
        assert r.json() == {"content": "a cat"}
        messages = recorder.bodies[0]["messages"]
        assert messages[0] == {"role": "user", "content": "first"}
        assert messages[-1] == {"role": "user", "content": "what is this?", "images": ["iVBORw=="]}

    def test_cloud_receives_data_url(self, client, backend):
        recorder = backend.respond(
            lambda req: httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})
        )

        client.post(
            "/api/chat/upload",
            data={"payload": json.dumps(chat_body(providerType="cloud"))},
            files={"image": ("cat.jpg", b"\x89PNG", "image/jpeg")},
        )

        content = recorder.bodies[0]["messages"][0]["content"]
        assert content == [
            {"type": "text", "text": "hi"},
            {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,iVBORw=="}},
        ]

    def test_non_image_rejected(self, client):
        r = client.post(
            "/api/chat/upload",
            data={"payload": json.dumps(chat_body())},
            files={"image": ("notes.txt", b"hello", "text/plain")},
        )
        assert r.status_code == 415
        assert "text/plain" in r.json()["error"]

    def test_oversized_image_rejected(self, client, settings):
        settings.app.max_image_size_mb = 0

        r = client.post(
            "/api/chat/upload",
            data={"payload": json.dumps(chat_body())},
            files={"image": ("big.png", b"\x89PNG", "image/png")},
        )

        assert r.status_code == 413
        assert "Image too large" in r.json()["error"]

    def test_no_user_message(self, client):
        payload = chat_body(messages=[{"role": "system", "content": "be nice"}])

        r = client.post(
            "/api/chat/upload",
            data={"payload": json.dumps(payload)},
            files={"image": ("cat.png", b"\x89PNG", "image/png")},
        )

        assert r.status_code == 422
        assert "user message" in r.json()["error"]

    def test_invalid_payload(self, client):
        r = client.post(
            "/api/chat/upload",
            data={"payload": "{not json"},
            files={"image": ("cat.png", b"\x89PNG", "image/png")},
        )
        assert r.status_code == 422


# ---------------------------------------------------------------------------
# /api/models and /api/health
# ---------------------------------------------------------------------------

class TestModels:
    def test_selfhosted_models(self, client, backend):
        backend.respond(lambda req: httpx.Response(200, json={"models": [{"name": "llama3:latest"}]}))

        r = client.post("/api/models", json={"providerType": "selfhosted"})

        assert r.status_code == 200
        assert r.json() == [{"id": "llama3:latest", "name": "llama3:latest"}]

    def test_cloud_models(self, client, backend):
        backend.respond(lambda req: httpx.Response(200, json={"data": [{"id": "gpt-4o"}]}))

        r = client.post("/api/models", json={"providerType": "cloud", "apiKey": "sk-x"})

        assert r.json() == [{"id": "gpt-4o", "name": "gpt-4o"}]

    def test_models_error(self, client, backend):
        backend.respond(lambda req: httpx.Response(401, json={"error": {"message": "bad key"}}))

        r = client.post("/api/models", json={"providerType": "cloud"})

        assert r.status_code == 502
        assert "bad key" in r.json()["error"]


def test_health(client):
    r = client.get("/api/health")

    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert {p["name"] for p in r.json()["providers"]} == {"cloud", "selfhosted"}
    assert "X-Process-Time" in r.headers
