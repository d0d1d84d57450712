# Shared fixtures for tokenkeeper tests.
# Created: 2026-10-19

import json
from urllib.parse import parse_qsl

import httpx
import pytest

from tokenkeeper.config import ClientConfig
from tokenkeeper.storage import MemoryStorage

TOKEN_PATH = "/o/token/"
REVOKE_PATH = "/o/revoke-token/"
USERINFO_PATH = "/o/userinfo/"


class FakeProvider:
    """Authorization server stand-in behind httpx.MockTransport.

    ``responses`` maps a URL path to ``(status, json_body)``, a callable
    taking the request, or an exception to raise.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responses: dict = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        entry = self.responses.get(request.url.path)
        if entry is None:
            return httpx.Response(404, json={"error": "not_found"})
        if isinstance(entry, Exception):
            raise entry
        if callable(entry):
            return entry(request)
        status, body = entry
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def body_of(request: httpx.Request) -> dict:
    """Decode a JSON or form-encoded request body."""
    if request.headers.get("Content-Type", "").startswith("application/json"):
        return json.loads(request.content)
    return dict(parse_qsl(request.content.decode()))


@pytest.fixture
def config():
    return ClientConfig(
        client_id="test-client",
        redirect_uri="http://localhost:8765/callback",
        scope="openid email profile",
        state="test-state",
        authorize_url="https://id.example.com/o/authorize/",
        token_url="https://id.example.com/o/token/",
        revoke_url="https://id.example.com/o/revoke-token/",
        userinfo_url="https://id.example.com/o/userinfo/",
        poll_interval=0.01,
    )


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def provider():
    return FakeProvider()
