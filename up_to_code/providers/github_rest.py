"""GitHub host directory using direct REST API v3 calls."""

from typing import Any
from urllib.parse import quote, urlsplit

import structlog

from up_to_code.enums import HostType, PipelineStatus, ReviewState
from up_to_code.exceptions import HostAPIError
from up_to_code.models.domain import Commit, Manifest, Pipeline, RepositoryRef, ReviewRequest
from up_to_code.providers.base import HostDirectory, decode_manifest
from up_to_code.utils.caching import RequestCache
from up_to_code.utils.connection_pool import HTTPConnectionPool

log = structlog.get_logger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_WEB_URL = "https://github.com"

# Workflow run "status" values that mean the run has not started yet
_QUEUED_STATUSES = {"queued", "requested", "waiting", "pending"}


def github_headers(token: str) -> dict[str, str]:
    """Authentication and media-type headers for the GitHub REST API."""
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }


class GitHubDirectory(HostDirectory):
    """GitHub organization directory.

    GitHub specifics:
    - Push access is reported per repository in ``permissions.push``
    - The compare API lists commits oldest first; they are reversed here
    - Pipelines are GitHub Actions workflow runs for a head SHA
    - The merge endpoint cannot delete the head branch, so the ref is
      deleted with a separate call
    """

    host_type = HostType.GITHUB

    def __init__(
        self,
        pool: HTTPConnectionPool,
        cache: RequestCache,
        organization: str,
        token: str,
        web_url: str = GITHUB_WEB_URL,
        **kwargs: Any,
    ) -> None:
        super().__init__(pool, cache, organization, token, web_url, **kwargs)

    def _repo_path(self, repo: RepositoryRef) -> str:
        return f"/repos/{repo.organization}/{repo.name}"

    async def _list_org_repositories(self) -> list[RepositoryRef]:
        """List organization repositories the token can push to."""
        data = await self._paginate(f"/orgs/{self.organization}/repos", {"type": "all"}, cached=True)
        repos = [self._parse_repository(item) for item in data if not item.get("archived", False)]
        pushable = [repo for repo in repos if repo.push_permission]
        log.info("repositories_listed", host="github", org=self.organization, found=len(repos), pushable=len(pushable))
        return pushable

    async def fetch_manifest(self, repo: RepositoryRef) -> Manifest:
        data = await self._get(
            f"{self._repo_path(repo)}/contents/{quote(self.manifest_path)}",
            {"ref": repo.default_branch},
            cached=True,
        )
        return decode_manifest(data)

    async def compare_revisions(self, repo: RepositoryRef, base: str, head: str) -> list[Commit]:
        """Compare two revisions.

        GitHub lists commits oldest first; the result is newest first like
        every other directory.
        """
        data = await self._get(
            f"{self._repo_path(repo)}/compare/{quote(base, safe='')}...{quote(head, safe='')}",
            cached=True,
        )
        commits = [self._parse_commit(repo, item) for item in data.get("commits", [])]
        commits.reverse()
        return commits

    async def list_open_review_requests(
        self, repo: RepositoryRef, source_branch: str, target_branch: str
    ) -> list[ReviewRequest]:
        data = await self._paginate(
            f"{self._repo_path(repo)}/pulls",
            {"state": "open", "head": f"{repo.organization}:{source_branch}", "base": target_branch},
            discovery=False,
        )
        # The head filter is advisory on forks; enforce both branches here
        requests = [self._parse_pull_request(item) for item in data]
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
            f"{self._repo_path(repo)}/pulls",
            {"title": title, "body": description, "head": source_branch, "base": target_branch},
        )
        return self._parse_pull_request(data)

    async def update_review_request(
        self, repo: RepositoryRef, number: int, title: str, description: str
    ) -> ReviewRequest:
        data = await self._send(
            "PATCH",
            f"{self._repo_path(repo)}/pulls/{number}",
            {"title": title, "body": description},
        )
        return self._parse_pull_request(data)

    async def get_review_request(self, repo: RepositoryRef, number: int) -> ReviewRequest:
        data = await self._get(f"{self._repo_path(repo)}/pulls/{number}")
        return self._parse_pull_request(data)

    async def merge_review_request(
        self, repo: RepositoryRef, request: ReviewRequest, delete_source_branch: bool = True
    ) -> None:
        """Merge a pull request, then delete its head branch.

        The ``sha`` guard makes GitHub reject the merge if the head moved
        after it was verified.
        """
        await self._send(
            "PUT",
            f"{self._repo_path(repo)}/pulls/{request.number}/merge",
            {"sha": request.head_revision, "merge_method": "merge"},
        )
        log.info("pull_request_merged", repo=repo.full_name, number=request.number)

        if not delete_source_branch:
            return

        try:
            await self._send(
                "DELETE",
                f"{self._repo_path(repo)}/git/refs/heads/{quote(request.source_branch, safe='/')}",
            )
        except HostAPIError as e:
            # The merge already happened; a leftover branch is not a failure
            log.warning(
                "source_branch_delete_failed",
                repo=repo.full_name,
                branch=request.source_branch,
                status_code=e.status_code,
            )

    async def list_pipelines(self, repo: RepositoryRef, revision: str) -> list[Pipeline]:
        data = await self._paginate(
            f"{self._repo_path(repo)}/actions/runs",
            {"head_sha": revision},
            items_key="workflow_runs",
            discovery=False,
        )
        return [self._parse_workflow_run(item) for item in data]

    async def get_pipeline(self, repo: RepositoryRef, pipeline_id: int) -> Pipeline:
        data = await self._get(f"{self._repo_path(repo)}/actions/runs/{pipeline_id}")
        return self._parse_workflow_run(data)

    def clone_url(self, repo: RepositoryRef) -> str:
        host = urlsplit(self.web_url).netloc
        return f"https://x-access-token:{self._token}@{host}/{repo.organization}/{repo.name}.git"

    def compare_url(self, repo: RepositoryRef, base: str, head: str) -> str:
        return f"{self.web_url}/{repo.organization}/{repo.name}/compare/{base}...{head}"

    def commit_url(self, repo: RepositoryRef, revision: str) -> str:
        return f"{self.web_url}/{repo.organization}/{repo.name}/commit/{revision}"

    def _parse_repository(self, data: dict[str, Any]) -> RepositoryRef:
        return RepositoryRef(
            host=HostType.GITHUB,
            organization=data.get("owner", {}).get("login", self.organization),
            name=data["name"],
            id=data["id"],
            primary_language=data.get("language"),
            push_permission=bool(data.get("permissions", {}).get("push", False)),
            default_branch=data.get("default_branch") or "main",
            web_url=data.get("html_url", ""),
        )

    def _parse_commit(self, repo: RepositoryRef, data: dict[str, Any]) -> Commit:
        commit = data.get("commit", {})
        message = commit.get("message", "")
        author = commit.get("author") or {}
        return Commit(
            id=data["sha"],
            title=message.splitlines()[0] if message else "",
            author_name=author.get("name") or (data.get("author") or {}).get("login", ""),
            web_url=data.get("html_url") or self.commit_url(repo, data["sha"]),
        )

    def _parse_pull_request(self, data: dict[str, Any]) -> ReviewRequest:
        """Parse pull request data from a GitHub API response.

        Merged pull requests are reported as "closed" with ``merged_at`` set.
        """
        if data.get("merged_at") or data.get("merged"):
            state = ReviewState.MERGED
        elif data["state"] == "open":
            state = ReviewState.OPEN
        else:
            state = ReviewState.CLOSED

        return ReviewRequest(
            id=data["id"],
            number=data["number"],
            title=data["title"],
            description=data.get("body") or "",
            source_branch=data["head"]["ref"],
            target_branch=data["base"]["ref"],
            state=state,
            head_revision=data["head"]["sha"],
            web_url=data.get("html_url", ""),
        )

    def _parse_workflow_run(self, data: dict[str, Any]) -> Pipeline:
        status = data.get("status")
        conclusion = data.get("conclusion")

        if status in _QUEUED_STATUSES:
            pipeline_status = PipelineStatus.PENDING
        elif status != "completed":
            pipeline_status = PipelineStatus.RUNNING
        elif conclusion == "success":
            pipeline_status = PipelineStatus.SUCCESS
        elif conclusion in ("cancelled", "skipped"):
            pipeline_status = PipelineStatus.CANCELED
        else:
            pipeline_status = PipelineStatus.FAILURE

        return Pipeline(id=data["id"], revision=data["head_sha"], status=pipeline_status)
