"""Shared test fixtures for the chat proxy tests."""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest

from chat_proxy import app as app_module

GROQ_REPLY = '{"choices":[{"message":{"content":"¡Hola!"}}]}'.encode("utf-8")


class StubUpstream:
    """Stand-in for the Groq endpoint, recording every request it receives."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.status = 200
        self.body = GROQ_REPLY
        self.delay = 0.0
        self.error: Optional[Exception] = None
        self.cancelled = False

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        return httpx.Response(
            self.status,
            content=self.body,
            headers={"content-type": "application/json"},
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def sent_json(self, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)


@pytest.fixture()
def upstream() -> StubUpstream:
    return StubUpstream()


@pytest.fixture()
def proxy_env(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, upstream: StubUpstream
) -> StubUpstream:
    """Reset the app's global state, point it at a stub upstream and a
    temporary working directory, and return the stub."""
    monkeypatch.setenv("GROQ_API_KEY", "gsk-test-key")
    for name in (
        "GROQ_MODEL",
        "PROVIDER",
        "ALLOWED_ORIGINS",
        "UPSTREAM_TIMEOUT",
        "RATE_LIMIT_MAX",
        "RATE_LIMIT_WINDOW",
        "LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)

    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(app_module, "_config", None)
    monkeypatch.setattr(app_module, "_limiter", None)
    monkeypatch.setattr(app_module, "_origin_policy", None)
    monkeypatch.setattr(app_module, "_upstream_transport", upstream.transport)
    return upstream


def chat_body(content: str = "Hola", **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"messages": [{"role": "user", "content": content}]}
    body.update(extra)
    return body
