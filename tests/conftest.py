"""Pytest configuration and shared fixtures."""

import base64
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from up_to_code.config.settings import UpdateSettings
from up_to_code.engine.context import RepositoryContext
from up_to_code.enums import HostType, ReviewState
from up_to_code.models.domain import RepositoryRef, ReviewRequest
from up_to_code.providers.base import HostDirectory
from up_to_code.utils.caching import RequestCache
from up_to_code.utils.connection_pool import HTTPConnectionPool

GITLAB_API = "https://gitlab.example.com/api/v4"
GITHUB_API = "https://api.github.example.com"


def raw_path(request: httpx.Request) -> str:
    """Request path with percent-escapes kept, so encoded group paths match."""
    return request.url.raw_path.split(b"?", 1)[0].decode()


class FakeHost:
    """Canned host API behind an httpx.MockTransport.

    Routes map ``(method, path)`` to a JSON body, an ``httpx.Response``, or
    a callable taking the request and returning either (see ``sequence``).
    Unknown routes answer 404. Every request is recorded.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Any] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, response: Any) -> None:
        self.routes[(method, path)] = response

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, raw_path(request)))

        if route is None:
            return httpx.Response(404, json={"message": "404 Not Found"})
        if callable(route):
            route = route(request)

        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    def calls(self, method: str, path: str | None = None) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and (path is None or raw_path(r) == path)]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def sequence(*bodies: Any) -> Callable[[httpx.Request], Any]:
    """Route serving ``bodies`` one per request, repeating the last."""
    remaining = list(bodies)

    def _next(request: httpx.Request) -> Any:
        return remaining.pop(0) if len(remaining) > 1 else remaining[0]

    return _next


def encoded_file(data: dict[str, Any]) -> dict[str, str]:
    """A contents-API blob for a JSON document."""
    return {"content": base64.b64encode(json.dumps(data).encode()).decode(), "encoding": "base64"}


def gitlab_merge_request(iid: int = 7, sha: str = "abc123", state: str = "opened", **overrides: Any) -> dict:
    data = {
        "id": 1000 + iid,
        "iid": iid,
        "title": "Bump left-pad from 1.1.0 to 1.3.0",
        "description": "body",
        "state": state,
        "source_branch": "up-to-code-left-pad",
        "target_branch": "main",
        "sha": sha,
        "web_url": f"https://gitlab.example.com/acme/web/-/merge_requests/{iid}",
    }
    data.update(overrides)
    return data


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def cache() -> RequestCache:
    return RequestCache()


@pytest.fixture
def make_pool(fake_host: FakeHost) -> Callable[[str], HTTPConnectionPool]:
    """Factory for pools wired to the fake host."""

    def _make(base_url: str = GITLAB_API) -> HTTPConnectionPool:
        return HTTPConnectionPool(base_url, transport=fake_host.transport())

    return _make


@pytest.fixture
def update_settings(tmp_path: Path) -> UpdateSettings:
    return UpdateSettings(package_name="left-pad", workspace_dir=tmp_path / "repos")


@pytest.fixture
def gitlab_repo() -> RepositoryRef:
    return RepositoryRef(
        host=HostType.GITLAB,
        organization="acme",
        name="web",
        id=1,
        push_permission=True,
        default_branch="main",
        web_url="https://gitlab.example.com/acme/web",
    )


@pytest.fixture
def review_request() -> ReviewRequest:
    return ReviewRequest(
        id=1007,
        number=7,
        title="Bump left-pad from 1.1.0 to 1.3.0",
        description="body",
        source_branch="up-to-code-left-pad",
        target_branch="main",
        state=ReviewState.OPEN,
        head_revision="abc123",
    )


@pytest.fixture
def mock_directory() -> AsyncMock:
    """HostDirectory double for engine tests."""
    directory = AsyncMock(spec=HostDirectory)
    directory.host_type = HostType.GITLAB
    directory.organization = "acme"
    directory.compare_url = MagicMock(
        side_effect=lambda repo, base, head: f"https://gitlab.example.com/{repo.full_name}/-/compare/{base}...{head}"
    )
    return directory


@pytest.fixture
def repo_context(gitlab_repo: RepositoryRef, mock_directory: AsyncMock, update_settings: UpdateSettings):
    return RepositoryContext(repository=gitlab_repo, directory=mock_directory, settings=update_settings)
