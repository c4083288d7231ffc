"""
pytest configuration and shared fixtures.
"""
import json
from contextlib import asynccontextmanager
from typing import Callable, List, Optional

import httpx
import pytest

from nim_proxy.config import Settings
from nim_proxy.services import NetworkManager, UpstreamInvoker


NIM_BASE = "http://nim.test/v1"
NIM_URL = f"{NIM_BASE}/chat/completions"


class UpstreamDouble:
    """Fake NIM endpoint backed by ``httpx.MockTransport``; records every request."""

    def __init__(self, handler: Optional[Callable[[httpx.Request], httpx.Response]] = None) -> None:
        self.handler = handler or (lambda request: httpx.Response(200, json=completion_body()))
        self.requests: List[httpx.Request] = []

    def _dispatch(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._dispatch)

    @property
    def payloads(self) -> List[dict]:
        return [json.loads(request.content) for request in self.requests]

    @property
    def probe_payloads(self) -> List[dict]:
        return [p for p in self.payloads if is_probe(p)]

    @property
    def completion_payloads(self) -> List[dict]:
        return [p for p in self.payloads if not is_probe(p)]


def is_probe(payload: dict) -> bool:
    return payload.get("max_tokens") == 1 and payload.get("messages") == [{"role": "user", "content": "test"}]


def completion_body(content: str = "Hello!", usage: Optional[dict] = None) -> dict:
    body = {
        "id": "nim-123",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "meta/llama-3.1-8b-instruct",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }
    if usage is not None:
        body["usage"] = usage
    return body


@pytest.fixture
def settings() -> Settings:
    return Settings(
        NIM_API_BASE=NIM_BASE,
        NIM_API_KEY="test-key",
        LOG_LEVEL="false",
        OUTBOUND_PROXY=None,
        PROBE_ENABLED=True,
        STRICT_DEFAULTS=False,
        ENABLE_THINKING=True,
    )


@pytest.fixture
def make_invoker(settings):
    def _make(upstream: UpstreamDouble, **overrides) -> UpstreamInvoker:
        active = settings.model_copy(update=overrides) if overrides else settings
        return UpstreamInvoker(active, NetworkManager(active, transport=upstream.transport))
    return _make


@asynccontextmanager
async def app_client(settings: Settings, upstream: UpstreamDouble):
    from main import create_app

    app = create_app(settings, transport=upstream.transport)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://proxy.test") as client:
        yield client
    await app.state.service.close()
