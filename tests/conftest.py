"""Shared fixtures for all tests."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from modelhub.core.blobs import BlobStore
from modelhub.core.database import ChatStore
from modelhub.main import create_app


class FakeUpstream:
    """Records outgoing requests and answers them with a test-provided handler."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.handler = lambda request: httpx.Response(500)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def json_body(self, index: int = 0) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def store() -> ChatStore:
    """Fresh in-memory store with the built-in platforms."""
    store = ChatStore("sqlite:///:memory:")
    store.seed_platforms()
    return store


@pytest.fixture
def blobs(tmp_path) -> BlobStore:
    return BlobStore(tmp_path / "uploads")


@pytest.fixture
def make_endpoint(store):
    """Factory: create an API key + endpoint and return the endpoint id."""
    def _make(
        platform_id: str = "openai",
        model: str = "gpt-4o-mini",
        model_type: str = "text",
        custom_base_url: str = "",
        system_prompt: str = "",
        temperature: float = 0.7,
        api_key: str = "sk-test",
    ) -> str:
        key = store.create_api_key(f"key-{len(store.list_api_keys())}", api_key)
        endpoint = store.create_endpoint(
            name=f"{platform_id}-{model}",
            platform_id=platform_id,
            custom_base_url=custom_base_url,
            api_key_id=key.id,
            model=model,
            model_type=model_type,
            system_prompt=system_prompt,
            temperature=temperature,
        )
        return endpoint.id
    return _make


@pytest.fixture
def chat_session(store, make_endpoint) -> str:
    endpoint_id = make_endpoint()
    return store.create_session(endpoint_id, "test session").id


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def client(store, blobs, upstream):
    """TestClient over a fresh app wired to the in-memory store and fake upstream."""
    app = create_app()
    app.state.store = store
    app.state.blobs = blobs
    app.state.upstream_transport = upstream.transport
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def sse():
    """Encode payloads as upstream SSE bytes; dicts become compact JSON."""
    return encode_sse


def encode_sse(*payloads) -> bytes:
    frames = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload, separators=(",", ":"))
        frames.append(f"data: {data}\n\n")
    return "".join(frames).encode("utf-8")


@pytest.fixture
def delta():
    """Build an OpenAI-style streaming delta event."""
    return lambda content: {"choices": [{"delta": {"content": content}}]}
