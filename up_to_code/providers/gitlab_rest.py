"""GitLab host directory using direct REST API v4 calls."""

import urllib.parse
from typing import Any

import structlog

from up_to_code.enums import HostType, PipelineStatus, ReviewState
from up_to_code.models.domain import Commit, Manifest, Pipeline, RepositoryRef, ReviewRequest
from up_to_code.providers.base import HostDirectory, decode_manifest
from up_to_code.utils.caching import RequestCache
from up_to_code.utils.connection_pool import HTTPConnectionPool

log = structlog.get_logger(__name__)

GITLAB_URL = "https://gitlab.com"

# Developer access level; the lowest level allowed to push branches
DEVELOPER_ACCESS = 30

_PIPELINE_STATUSES = {
    "created": PipelineStatus.PENDING,
    "waiting_for_resource": PipelineStatus.PENDING,
    "preparing": PipelineStatus.PENDING,
    "pending": PipelineStatus.PENDING,
    "scheduled": PipelineStatus.PENDING,
    "manual": PipelineStatus.PENDING,
    "running": PipelineStatus.RUNNING,
    "success": PipelineStatus.SUCCESS,
    "failed": PipelineStatus.FAILURE,
    "canceled": PipelineStatus.CANCELED,
    "skipped": PipelineStatus.CANCELED,
}

_MR_STATES = {
    "opened": ReviewState.OPEN,
    "merged": ReviewState.MERGED,
}


def gitlab_api_url(base_url: str) -> str:
    """API root for a GitLab instance URL."""
    return f"{base_url.rstrip('/')}/api/v4"


def gitlab_headers(token: str) -> dict[str, str]:
    """Authentication headers for the GitLab REST API."""
    return {"PRIVATE-TOKEN": token, "Content-Type": "application/json"}


class GitLabDirectory(HostDirectory):
    """GitLab group directory.

    GitLab API differences from GitHub:
    - Projects are addressed by numeric id; the group path is URL-encoded
    - Uses 'iid' (internal ID) for project-scoped merge request numbers
    - Uses 'description' instead of 'body'
    - Uses 'opened' instead of 'open'
    - Push access is requested with ``min_access_level`` instead of reported
    - The merge endpoint deletes the source branch itself
    """

    host_type = HostType.GITLAB

    def __init__(
        self,
        pool: HTTPConnectionPool,
        cache: RequestCache,
        organization: str,
        token: str,
        web_url: str = GITLAB_URL,
        **kwargs: Any,
    ) -> None:
        super().__init__(pool, cache, organization, token, web_url, **kwargs)
        self.group_path = urllib.parse.quote(organization, safe="")

    def _project_path(self, repo: RepositoryRef) -> str:
        return f"/projects/{repo.id}"

    async def _list_org_repositories(self) -> list[RepositoryRef]:
        """List group projects with at least developer access."""
        data = await self._paginate(
            f"/groups/{self.group_path}/projects",
            {"min_access_level": DEVELOPER_ACCESS, "archived": "false"},
            cached=True,
        )
        repos = [self._parse_project(item) for item in data]
        pushable = [repo for repo in repos if repo.push_permission]
        log.info("repositories_listed", host="gitlab", org=self.organization, found=len(repos), pushable=len(pushable))
        return pushable

    async def fetch_manifest(self, repo: RepositoryRef) -> Manifest:
        encoded_path = urllib.parse.quote(self.manifest_path, safe="")
        data = await self._get(
            f"{self._project_path(repo)}/repository/files/{encoded_path}",
            {"ref": repo.default_branch},
            cached=True,
        )
        return decode_manifest(data)

    async def compare_revisions(self, repo: RepositoryRef, base: str, head: str) -> list[Commit]:
        data = await self._get(
            f"{self._project_path(repo)}/repository/compare",
            {"from": base, "to": head},
            cached=True,
        )
        return [self._parse_commit(repo, item) for item in data.get("commits", [])]

    async def list_open_review_requests(
        self, repo: RepositoryRef, source_branch: str, target_branch: str
    ) -> list[ReviewRequest]:
        data = await self._paginate(
            f"{self._project_path(repo)}/merge_requests",
            {"state": "opened", "source_branch": source_branch, "target_branch": target_branch},
            discovery=False,
        )
        requests = [self._parse_merge_request(item) for item in data]
        return [
            r
            for r in requests
            if r.source_branch == source_branch and r.target_branch == target_branch and r.state == ReviewState.OPEN
        ]

    async def create_review_request(
        self,
        repo: RepositoryRef,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str,
    ) -> ReviewRequest:
        data = await self._send(
            "POST",
            f"{self._project_path(repo)}/merge_requests",
            {
                "source_branch": source_branch,
                "target_branch": target_branch,
                "title": title,
                "description": description,
            },
        )
        return self._parse_merge_request(data)

    async def update_review_request(
        self, repo: RepositoryRef, number: int, title: str, description: str
    ) -> ReviewRequest:
        data = await self._send(
            "PUT",
            f"{self._project_path(repo)}/merge_requests/{number}",
            {"title": title, "description": description},
        )
        return self._parse_merge_request(data)

    async def get_review_request(self, repo: RepositoryRef, number: int) -> ReviewRequest:
        data = await self._get(f"{self._project_path(repo)}/merge_requests/{number}")
        return self._parse_merge_request(data)

    async def merge_review_request(
        self, repo: RepositoryRef, request: ReviewRequest, delete_source_branch: bool = True
    ) -> None:
        """Accept a merge request.

        GitLab refuses the merge with 409 if ``sha`` is no longer the head.
        """
        await self._send(
            "PUT",
            f"{self._project_path(repo)}/merge_requests/{request.number}/merge",
            {"sha": request.head_revision, "should_remove_source_branch": delete_source_branch},
        )
        log.info("merge_request_merged", repo=repo.full_name, iid=request.number)

    async def list_pipelines(self, repo: RepositoryRef, revision: str) -> list[Pipeline]:
        data = await self._paginate(f"{self._project_path(repo)}/pipelines", {"sha": revision}, discovery=False)
        return [self._parse_pipeline(item) for item in data]

    async def get_pipeline(self, repo: RepositoryRef, pipeline_id: int) -> Pipeline:
        data = await self._get(f"{self._project_path(repo)}/pipelines/{pipeline_id}")
        return self._parse_pipeline(data)

    def clone_url(self, repo: RepositoryRef) -> str:
        scheme, host = urllib.parse.urlsplit(self.web_url)[:2]
        return f"{scheme}://oauth2:{self._token}@{host}/{repo.organization}/{repo.name}.git"

    def compare_url(self, repo: RepositoryRef, base: str, head: str) -> str:
        return f"{self.web_url}/{repo.organization}/{repo.name}/-/compare/{base}...{head}"

    def commit_url(self, repo: RepositoryRef, revision: str) -> str:
        return f"{self.web_url}/{repo.organization}/{repo.name}/-/commit/{revision}"

    def _parse_project(self, data: dict[str, Any]) -> RepositoryRef:
        """Parse project data from a GitLab API response.

        Access is the higher of the project and inherited group levels.
        """
        permissions = data.get("permissions") or {}
        levels = [
            (permissions.get(scope) or {}).get("access_level", 0) for scope in ("project_access", "group_access")
        ]
        # Listings made without a token scope may omit permissions entirely;
        # min_access_level already filtered them in that case.
        push_permission = max(levels) >= DEVELOPER_ACCESS if permissions else True

        namespace = data.get("namespace") or {}
        return RepositoryRef(
            host=HostType.GITLAB,
            organization=namespace.get("full_path", self.organization),
            name=data["path"],
            id=data["id"],
            primary_language=None,
            push_permission=push_permission,
            default_branch=data.get("default_branch") or "main",
            web_url=data.get("web_url", ""),
        )

    def _parse_commit(self, repo: RepositoryRef, data: dict[str, Any]) -> Commit:
        return Commit(
            id=data["id"],
            title=data.get("title") or data.get("message", "").split("\n", 1)[0],
            author_name=data.get("author_name", ""),
            web_url=data.get("web_url") or self.commit_url(repo, data["id"]),
        )

    def _parse_merge_request(self, data: dict[str, Any]) -> ReviewRequest:
        """Parse merge request data from a GitLab API response.

        Maps GitLab MR fields to ReviewRequest:
        - 'iid' -> number
        - 'description' -> description (None becomes "")
        - 'sha' -> head_revision
        - 'opened'/'merged'/'closed'/'locked' -> ReviewState
        """
        return ReviewRequest(
            id=data["id"],
            number=data["iid"],
            title=data["title"],
            description=data.get("description") or "",
            source_branch=data["source_branch"],
            target_branch=data["target_branch"],
            state=_MR_STATES.get(data["state"], ReviewState.CLOSED),
            head_revision=data.get("sha") or "",
            web_url=data.get("web_url", ""),
        )

    def _parse_pipeline(self, data: dict[str, Any]) -> Pipeline:
        return Pipeline(
            id=data["id"],
            revision=data["sha"],
            status=_PIPELINE_STATUSES.get(data["status"], PipelineStatus.FAILURE),
        )
