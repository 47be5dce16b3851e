"""Shared fixtures: isolated environment, fake HTTP routing and a fake Gemini SDK client."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Callable, Union

import httpx
import pytest

from wingman.config import Config

_ENV_VARS = [
    "GEMINI_API_KEY",
    "OPENAI_API_KEY",
    "OLLAMA_URL",
    "OLLAMA_MODEL",
    "WEAVIATE_URL",
    "WEAVIATE_API_KEY",
    "WEAVIATE_COLLECTION",
    "WEAVIATE_CONTENT_FIELD",
    "KONTEXT_API_KEY",
    "KONTEXT_API_URL",
    "KONTEXT_USER_ID",
    "WINGMAN_CONFIG_PATH",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """No test may pick up real credentials from the developer's shell."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings() -> Config:
    return Config()


Handler = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class Router:
    """Route fake HTTP replies by ``METHOD path`` and record every request."""

    def __init__(self) -> None:
        self.routes: dict[str, Handler] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, handler: Handler) -> None:
        self.routes[f"{method.upper()} {path}"] = handler

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def json_body(self, path: str, index: int = 0) -> dict:
        return json.loads(self.calls(path)[index].content)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(f"{request.method} {request.url.path}")
        if handler is None:
            return httpx.Response(404, json={"error": f"no route for {request.url.path}"})
        if callable(handler):
            return handler(request)
        return handler

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)


@pytest.fixture
def router() -> Router:
    return Router()


def sse_body(*contents: str, done: bool = True) -> bytes:
    """Chat-completion SSE body carrying the given deltas."""
    lines = [
        "data: " + json.dumps({"choices": [{"delta": {"content": c}}]})
        for c in contents
    ]
    if done:
        lines.append("data: [DONE]")
    return ("\n\n".join(lines) + "\n\n").encode()


class _FakeModels:
    def __init__(self, reply: str | Exception) -> None:
        self.reply = reply
        self.calls: list[dict] = []

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self.reply, Exception):
            raise self.reply
        return SimpleNamespace(text=self.reply)


class FakeGeminiClient:
    """Stands in for ``google.genai.Client``; only the async models surface is used."""

    def __init__(self, reply: str | Exception = "ok") -> None:
        self.aio = SimpleNamespace(models=_FakeModels(reply))

    @property
    def calls(self) -> list[dict]:
        return self.aio.models.calls
