"""Tests for up_to_code/providers/base.py - pagination, memoization and errors."""

import asyncio
import math

import httpx
import pytest
from conftest import GITLAB_API

from up_to_code.exceptions import DiscoveryError, HostAPIError
from up_to_code.providers.gitlab_rest import GitLabDirectory

PROJECTS_PATH = "/api/v4/groups/acme/projects"


def project(project_id: int) -> dict:
    return {
        "id": project_id,
        "path": f"project-{project_id}",
        "namespace": {"full_path": "acme"},
        "default_branch": "main",
        "permissions": {"project_access": {"access_level": 40}, "group_access": None},
    }


def paged(items: list[dict]):
    """Serve ``items`` according to the page/per_page query."""

    def handler(request: httpx.Request) -> list[dict]:
        page = int(request.url.params["page"])
        per_page = int(request.url.params["per_page"])
        return items[(page - 1) * per_page : page * per_page]

    return handler


@pytest.fixture
def directory_factory(make_pool, cache):
    def _make(page_size: int = 100) -> GitLabDirectory:
        return GitLabDirectory(make_pool(GITLAB_API), cache, "acme", "glpat-secret", page_size=page_size)

    return _make


class TestPagination:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("total", "page_size"),
        [(0, 100), (1, 100), (99, 100), (100, 100), (101, 100), (250, 100), (7, 3), (9, 3), (10, 1)],
    )
    async def test_requests_pages_until_short_page(self, fake_host, directory_factory, total, page_size):
        fake_host.add("GET", PROJECTS_PATH, paged([project(i) for i in range(1, total + 1)]))
        directory = directory_factory(page_size)

        repos = await directory.list_org_repositories()

        assert [repo.id for repo in repos] == list(range(1, total + 1))
        expected_requests = math.ceil(total / page_size)
        if total % page_size == 0:
            # An exact multiple needs one extra, empty page to end
            expected_requests += 1
        assert len(fake_host.calls("GET", PROJECTS_PATH)) == expected_requests

    @pytest.mark.asyncio
    async def test_deduplicates_by_id_keeping_first(self, fake_host, directory_factory):
        first_page = [project(1), project(2)]
        duplicate = {**project(2), "path": "renamed"}
        pages = {1: first_page, 2: [duplicate]}
        fake_host.add("GET", PROJECTS_PATH, lambda request: pages[int(request.url.params["page"])])
        directory = directory_factory(page_size=2)

        repos = await directory.list_org_repositories()

        assert [(repo.id, repo.name) for repo in repos] == [(1, "project-1"), (2, "project-2")]

    @pytest.mark.asyncio
    async def test_sends_page_size(self, fake_host, directory_factory):
        fake_host.add("GET", PROJECTS_PATH, [])
        await directory_factory(page_size=25).list_org_repositories()

        request = fake_host.calls("GET", PROJECTS_PATH)[0]
        assert request.url.params["per_page"] == "25"
        assert request.url.params["page"] == "1"
        assert request.url.params["min_access_level"] == "30"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403, 404, 500])
    async def test_error_status_is_discovery_error(self, fake_host, directory_factory, status):
        fake_host.add("GET", PROJECTS_PATH, httpx.Response(status, json={"message": "nope"}))

        with pytest.raises(DiscoveryError) as exc_info:
            await directory_factory().list_org_repositories()

        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_error_on_later_page_discards_everything(self, fake_host, directory_factory):
        def handler(request: httpx.Request):
            if request.url.params["page"] == "1":
                return [project(1), project(2)]
            return httpx.Response(502, text="bad gateway")

        fake_host.add("GET", PROJECTS_PATH, handler)

        with pytest.raises(DiscoveryError):
            await directory_factory(page_size=2).list_org_repositories()
        assert len(fake_host.calls("GET", PROJECTS_PATH)) == 2

    @pytest.mark.asyncio
    async def test_unexpected_shape_is_discovery_error(self, fake_host, directory_factory):
        fake_host.add("GET", PROJECTS_PATH, {"message": "not a list"})

        with pytest.raises(DiscoveryError, match="Unexpected"):
            await directory_factory().list_org_repositories()


class TestMemoization:
    @pytest.mark.asyncio
    async def test_listing_is_fetched_once_per_run(self, fake_host, directory_factory):
        fake_host.add("GET", PROJECTS_PATH, [project(1)])
        directory = directory_factory()

        await directory.list_org_repositories()
        await directory.list_org_repositories()
        assert await directory.find_repository("project-1") is not None

        assert len(fake_host.calls("GET", PROJECTS_PATH)) == 1

    @pytest.mark.asyncio
    async def test_failed_listing_stays_failed(self, fake_host, directory_factory):
        responses = [httpx.Response(500), [project(1)]]
        fake_host.add("GET", PROJECTS_PATH, lambda request: responses.pop(0))
        directory = directory_factory()

        with pytest.raises(DiscoveryError) as first:
            await directory.list_org_repositories()
        with pytest.raises(DiscoveryError) as second:
            await directory.find_repository("project-1")

        assert second.value is first.value
        assert len(fake_host.calls("GET", PROJECTS_PATH)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_listing(self, fake_host, directory_factory):
        fake_host.add("GET", PROJECTS_PATH, [project(1), project(2)])
        directory = directory_factory()

        first, second = await asyncio.gather(directory.list_org_repositories(), directory.list_org_repositories())
        first.clear()

        assert [repo.id for repo in second] == [1, 2]
        assert [repo.id for repo in await directory.list_org_repositories()] == [1, 2]
        assert len(fake_host.calls("GET", PROJECTS_PATH)) == 1

    @pytest.mark.asyncio
    async def test_pipeline_reads_are_never_memoized(self, fake_host, directory_factory, gitlab_repo):
        path = "/api/v4/projects/1/pipelines/90"
        fake_host.add("GET", path, {"id": 90, "sha": "abc123", "status": "running"})
        directory = directory_factory()

        await directory.get_pipeline(gitlab_repo, 90)
        await directory.get_pipeline(gitlab_repo, 90)

        assert len(fake_host.calls("GET", path)) == 2


class TestRepositoryListings:
    @pytest.mark.asyncio
    async def test_pipeline_listing_error_is_host_api_error(self, fake_host, directory_factory, gitlab_repo):
        fake_host.add("GET", "/api/v4/projects/1/pipelines", httpx.Response(500, json={"message": "boom"}))

        with pytest.raises(HostAPIError) as exc_info:
            await directory_factory().list_pipelines(gitlab_repo, "abc123")

        assert not isinstance(exc_info.value, DiscoveryError)
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_review_request_listing_error_is_host_api_error(self, fake_host, directory_factory, gitlab_repo):
        fake_host.add("GET", "/api/v4/projects/1/merge_requests", httpx.Response(403, json={"message": "403"}))

        with pytest.raises(HostAPIError) as exc_info:
            await directory_factory().list_open_review_requests(gitlab_repo, "up-to-code-left-pad", "main")

        assert not isinstance(exc_info.value, DiscoveryError)
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_unexpected_shape_is_host_api_error(self, fake_host, directory_factory, gitlab_repo):
        fake_host.add("GET", "/api/v4/projects/1/pipelines", {"message": "not a list"})

        with pytest.raises(HostAPIError, match="Unexpected") as exc_info:
            await directory_factory().list_pipelines(gitlab_repo, "abc123")

        assert not isinstance(exc_info.value, DiscoveryError)
