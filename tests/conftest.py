"""Shared fixtures for ghdeploy tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest

from ghdeploy.config import get_settings
from ghdeploy.github.client import GitHubClient

_ENV_VARS = (
    "GITHUB_TOKEN",
    "GITHUB_API_URL",
    "GITHUB_WEB_URL",
    "GITHUB_HOST",
    "HTTP_TIMEOUT",
    "RELEASE_REPO",
    "BIN_NAME",
    "EXECUTABLE_PATH",
    "WATCH_POLL_INTERVAL",
    "WATCH_TIMEOUT",
    "ENVIRONMENT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Iterator[None]:
    """Keep the real environment and any .env file out of the tests."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


Responder = Callable[[httpx.Request], httpx.Response]


@dataclass
class FakeGitHub:
    """Route table behind an ``httpx.MockTransport``.

    Each route holds a queue of responses; the last one repeats once the
    queue is drained. Unknown routes answer 404 like the real API.
    """

    routes: dict[tuple[str, str], list[Responder]] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)

    def add(
        self,
        method: str,
        path: str,
        status: int = 200,
        json: Any = None,
        content: bytes | None = None,
        text: str | None = None,
        raises: Exception | None = None,
    ) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if raises is not None:
                raise raises
            if content is not None:
                return httpx.Response(status, content=content)
            if text is not None:
                return httpx.Response(status, text=text)
            if json is not None:
                return httpx.Response(status, json=json)
            return httpx.Response(status)

        self.routes.setdefault((method.upper(), path), []).append(respond)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"message": "Not Found"})
        responder = queue.pop(0) if len(queue) > 1 else queue[0]
        return responder(request)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def client(self) -> GitHubClient:
        return GitHubClient("test-token", transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def client(fake_github: FakeGitHub) -> Iterator[GitHubClient]:
    gh = fake_github.client()
    yield gh
    gh.close()
