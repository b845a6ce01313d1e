# Shared fixtures: isolated settings and a recording mock HTTP upstream.
# No test talks to a live Splunk or SignalFx; every request is answered by
# httpx.MockTransport.

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from splunk_mcp.shared.config import Config, Settings

ENV_VARS = (
    "CONFIG_PATH",
    "SPLUNK_HOST",
    "SPLUNK_PORT",
    "SPLUNK_USERNAME",
    "SPLUNK_PASSWORD",
    "SPLUNK_TOKEN",
    "SPLUNK_SCHEME",
    "VERIFY_SSL",
    "SIGNALFX_ACCESS_TOKEN",
    "SIGNALFX_REALM",
    "SIGNALFX_BASE_URL",
    "UPSTREAM_TIMEOUT_SECONDS",
    "TOOL_TIMEOUT_SECONDS",
    "LOG_LEVEL",
)

Responder = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class MockUpstream:
    """Route table for httpx.MockTransport that records every request."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Responder] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        text: Optional[str] = None,
        status_code: int = 200,
        raises: Optional[Exception] = None,
        handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    ) -> "MockUpstream":
        if raises is not None:
            responder: Responder = raises
        elif handler is not None:
            responder = handler
        elif text is not None:
            responder = httpx.Response(status_code, text=text)
        else:
            responder = httpx.Response(status_code, json=json_body)
        self.routes[(method.upper(), path)] = responder
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes.get((request.method, request.url.path))
        if responder is None:
            return httpx.Response(404, json={"messages": [{"text": "not mocked"}]})
        if isinstance(responder, Exception):
            raise responder
        if callable(responder):
            return responder(request)
        return responder

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]

    def last_json(self) -> Any:
        return json.loads(self.requests[-1].content)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's shell environment out of every test."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_settings(monkeypatch) -> Callable[..., Settings]:
    def _make(**env: str) -> Settings:
        env.setdefault("SPLUNK_HOST", "splunk.test")
        env.setdefault("SPLUNK_TOKEN", "splunk-token")
        for name, value in env.items():
            monkeypatch.setenv(name, value)
        return Settings(_env_file=None)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def tracing_settings(make_settings) -> Settings:
    return make_settings(SIGNALFX_ACCESS_TOKEN="sfx-token")


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def splunk_upstream() -> MockUpstream:
    return MockUpstream()


@pytest.fixture
def signalfx_upstream() -> MockUpstream:
    return MockUpstream()

