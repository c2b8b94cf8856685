"""
Streaming Endpoint Integration Tests

End-to-end through FastAPI with a scripted upstream:
  - Line reassembly on the edge path, raw passthrough on the proxy path
  - Per-path max_tokens ceilings
  - Pre-stream failures as JSON bodies
  - Mid-stream failures as error frame + [DONE]
  - Preflight / method handling
"""

import asyncio
import json
import os
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from inference import StubUpstream, UpstreamBackend
from infra import RelayBootstrap
from main import app
from streaming import parse_frames

client = TestClient(app)

MESSAGES = [{"role": "user", "content": "hi"}]
SPLIT_CHUNKS = [b'data: {"a":1}\n\nda', b'ta: {"b":2}\n\n']
DONE = b"data: [DONE]\n\n"


@pytest.fixture
def env():
    with patch.dict(os.environ, {"FIREWORKS_API_KEY": "test-key"}, clear=True):
        yield


def use_upstream(upstream: UpstreamBackend) -> None:
    RelayBootstrap.get_instance(upstream_factory=lambda config, profile: upstream)


def post(path: str, **body):
    payload = {"model": "accounts/fireworks/models/test", "messages": MESSAGES}
    payload.update(body)
    return client.post(path, json=payload)


class HangingUpstream(UpstreamBackend):
    """Never answers with headers."""

    async def open_stream(self, request):
        await asyncio.Event().wait()


class TestStreamingSuccess:
    def test_edge_reassembles_split_frames(self, env):
        use_upstream(StubUpstream(chunks=SPLIT_CHUNKS))

        response = post("/api/streaming-edge")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.content == b'data: {"a":1}\n\ndata: {"b":2}\n\n' + DONE

    def test_proxy_forwards_raw_chunks(self, env):
        use_upstream(StubUpstream(chunks=SPLIT_CHUNKS))

        response = post("/api/streaming")

        assert response.status_code == 200
        assert response.content == b"".join(SPLIT_CHUNKS) + DONE

    def test_default_script_ends_with_done(self, env):
        use_upstream(StubUpstream())

        response = post("/api/streaming-edge")

        kinds = [frame.kind for frame in parse_frames(response.content)]
        assert kinds == ["data", "data", "done"]

    def test_stub_backend_needs_no_key(self):
        with patch.dict(os.environ, {"UPSTREAM_BACKEND": "stub"}, clear=True):
            response = post("/api/streaming-edge")

        assert response.status_code == 200
        assert response.content.endswith(DONE)


class TestMaxTokensPerPath:
    @pytest.mark.parametrize(
        "path,expected",
        [("/api/streaming", 40000), ("/api/streaming-edge", 8192)],
    )
    def test_ceiling(self, env, path, expected):
        stub = StubUpstream()
        use_upstream(stub)

        post(path, max_tokens=999999)

        assert stub.requests[0].max_tokens == expected
        assert stub.requests[0].stream is True

    def test_zero_becomes_one(self, env):
        stub = StubUpstream()
        use_upstream(stub)

        post("/api/streaming-edge", max_tokens=0, stream=False)

        assert stub.requests[0].max_tokens == 1
        assert stub.requests[0].stream is True


class TestPreStreamFailures:
    def test_upstream_status_is_passed_through(self, env):
        use_upstream(StubUpstream(status_code=429, error_body="slow down"))

        response = post("/api/streaming-edge")

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "API Error: Stub Error"
        assert body["details"] == "slow down"

    def test_missing_api_key(self):
        with patch.dict(os.environ, {}, clear=True):
            response = post("/api/streaming")

        assert response.status_code == 500
        assert response.json()["error"] == "API key not configured"

    def test_malformed_json(self, env):
        use_upstream(StubUpstream())

        response = client.post(
            "/api/streaming-edge",
            content=b'{"model": ',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert "Invalid JSON" in response.json()["message"]

    def test_missing_model(self, env):
        stub = StubUpstream()
        use_upstream(stub)

        response = client.post("/api/streaming", json={"messages": MESSAGES})

        assert response.status_code == 400
        assert stub.requests == []

    def test_upstream_never_answers(self):
        use_upstream(HangingUpstream())
        env = {"FIREWORKS_API_KEY": "test-key", "EDGE_BUDGET_S": "0.05"}

        with patch.dict(os.environ, env, clear=True):
            response = post("/api/streaming-edge")

        assert response.status_code == 504
        assert "took too long" in response.json()["message"]


class TestMidStreamFailures:
    def test_error_frame_then_done(self, env):
        chunks = [b'data: {"a":1}\n\n', b'data: {"b":2}\n\n']
        use_upstream(StubUpstream(chunks=chunks, fail_after=1))

        response = post("/api/streaming-edge")

        assert response.status_code == 200
        frames = parse_frames(response.content)
        assert [frame.kind for frame in frames] == ["data", "error", "done"]
        error = json.loads(frames[1].payload)
        assert error["error"] is True
        assert "connection reset" in error["message"]

    def test_upstream_released_after_stream(self, env):
        stub = StubUpstream()
        use_upstream(stub)

        post("/api/streaming")

        assert stub.streams[0].closed


class TestClientDisconnect:
    """Client hangs up mid-stream: the relay stops, releases the upstream, sends no [DONE]."""

    @pytest.mark.asyncio
    async def test_disconnect_fires_token_and_releases_upstream(self, env):
        stub = StubUpstream(stall_after=1)
        use_upstream(stub)
        body = json.dumps({"model": "m", "messages": MESSAGES}).encode()

        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "POST",
            "scheme": "http",
            "path": "/api/streaming-edge",
            "raw_path": b"/api/streaming-edge",
            "root_path": "",
            "query_string": b"",
            "headers": [
                (b"host", b"testserver"),
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode()),
            ],
            "client": ("testclient", 50000),
            "server": ("testserver", 80),
        }
        first_chunk_sent = asyncio.Event()
        request_sent = False
        sent = []

        async def receive():
            nonlocal request_sent
            if not request_sent:
                request_sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            await first_chunk_sent.wait()
            return {"type": "http.disconnect"}

        async def send(message):
            sent.append(message)
            if message["type"] == "http.response.body" and message.get("body"):
                first_chunk_sent.set()

        await asyncio.wait_for(app(scope, receive, send), timeout=5.0)

        bootstrap = RelayBootstrap.get_instance()
        for _ in range(100):
            if bootstrap.active_sessions == 0:
                break
            await asyncio.sleep(0.01)

        start = next(m for m in sent if m["type"] == "http.response.start")
        streamed = b"".join(m.get("body", b"") for m in sent if m["type"] == "http.response.body")
        assert start["status"] == 200
        assert streamed.startswith(b"data: ")
        assert b"[DONE]" not in streamed
        assert stub.chunks_served == 1
        assert stub.streams[0].closed
        assert bootstrap.active_sessions == 0


class TestMethods:
    @pytest.mark.parametrize("path", ["/api/streaming", "/api/streaming-edge"])
    def test_preflight(self, path):
        response = client.options(path)

        assert response.status_code == 204
        assert response.content == b""
        assert "POST" in response.headers["access-control-allow-methods"]

    @pytest.mark.parametrize("path", ["/api/streaming", "/api/streaming-edge"])
    def test_get_not_allowed(self, path):
        response = client.get(path)

        assert response.status_code == 405
        assert response.headers["allow"] == "POST"
        assert response.json() == {"error": "Method Not Allowed"}


class TestServiceEndpoints:
    def test_health_live(self):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_health_ready(self, env):
        assert client.get("/health/ready").status_code == 200

    def test_health_not_ready_without_key(self):
        with patch.dict(os.environ, {}, clear=True):
            assert client.get("/health/ready").status_code == 503

    def test_config_info_hides_secrets(self, env):
        response = client.get("/config/info")

        body = response.json()
        assert body["api_key_configured"] is True
        assert "test-key" not in response.text
        assert body["profiles"]["edge"]["max_tokens"] == 8192
        assert body["profiles"]["proxy"]["mode"] == "raw"
        assert body["active_sessions"] == 0
