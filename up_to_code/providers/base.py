"""
Abstract base class for host directories.

A host directory is the tool's only view of a git hosting platform: it
lists an organization's repositories, reads manifest blobs, compares
revisions, and manages review requests and pipelines. The two concrete
implementations differ in paths and field names; pagination, memoization
and error mapping live here so both hosts behave identically.
"""

import asyncio
import base64
import binascii
import json
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

import httpx
import structlog

from up_to_code.enums import HostType
from up_to_code.exceptions import DiscoveryError, HostAPIError, ManifestError
from up_to_code.models.domain import Commit, Manifest, Pipeline, RepositoryRef, ReviewRequest
from up_to_code.utils.caching import RequestCache, build_request_key
from up_to_code.utils.connection_pool import HTTPConnectionPool

log = structlog.get_logger(__name__)

PAGE_SIZE = 100

MANIFEST_PATH = "package.json"


def dedupe_by_id(items: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop repeated entities, keeping the first occurrence of each ``id``."""
    seen: set[Any] = set()
    unique = []
    for item in items:
        if item["id"] in seen:
            continue
        seen.add(item["id"])
        unique.append(item)
    return unique


def decode_manifest(blob: Any) -> Manifest:
    """Decode a file object returned by a contents API into a Manifest.

    Raises:
        ManifestError: If the object carries no content, or the content is
            not base64-encoded JSON
    """
    if not isinstance(blob, dict) or not isinstance(blob.get("content"), str):
        raise ManifestError(f"{MANIFEST_PATH} response carries no file content")

    content = blob["content"]
    try:
        raw = base64.b64decode(content) if blob.get("encoding", "base64") == "base64" else content.encode()
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise ManifestError(f"{MANIFEST_PATH} is not valid JSON: {e}") from e
    return Manifest.from_package_json(data)


class HostDirectory(ABC):
    """Abstract base class for one organization on one host.

    Implementations handle host-specific quirks such as:
    - Different field names (GitLab's 'description' vs GitHub's 'body')
    - Different ID schemes (GitLab's 'iid' vs GitHub's 'number')
    - Different state names (GitLab's 'opened' vs GitHub's 'open')
    - Authentication header formats (Bearer vs PRIVATE-TOKEN)

    Reads that describe a snapshot (organization listing, manifest blobs,
    compare results) go through the run-scoped cache. Reads of state this
    tool waits on or re-verifies (open review requests, a single review
    request, pipelines) always hit the host. Mutations are never cached.

    Attributes:
        pool: HTTP client for the host API, owned by the run
        cache: Request cache shared by every directory of the run
        organization: GitHub organization or GitLab group path
        page_size: Entities per page for list calls
    """

    host_type: HostType

    def __init__(
        self,
        pool: HTTPConnectionPool,
        cache: RequestCache,
        organization: str,
        token: str,
        web_url: str,
        page_size: int = PAGE_SIZE,
        manifest_path: str = MANIFEST_PATH,
    ) -> None:
        self.pool = pool
        self.cache = cache
        self.organization = organization
        self.web_url = web_url.rstrip("/")
        self.page_size = page_size
        self.manifest_path = manifest_path
        self._token = token
        self._listing: asyncio.Future[list[RepositoryRef]] | None = None

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------

    def _check_response(self, response: httpx.Response) -> None:
        if response.status_code >= 400:
            request = response.request
            raise HostAPIError(
                f"{self.host_type} API error on {request.method} {request.url.path}",
                status_code=response.status_code,
                response_text=response.text,
            )

    async def _fetch_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self.pool.get(path, params=params)
        self._check_response(response)
        return response.json()

    async def _get(self, path: str, params: dict[str, Any] | None = None, *, cached: bool = False) -> Any:
        """GET a JSON document, memoized for the run when ``cached``."""
        if not cached:
            return await self._fetch_json(path, params)

        key = build_request_key(self.pool.base_url, path, params)
        return await self.cache.get_or_fetch(key, lambda: self._fetch_json(path, params))

    async def _send(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        """Issue a mutating call. Never cached, never retried."""
        log.info("host_api_mutation", host=str(self.host_type), method=method, path=path)
        response = await self.pool.request(method, path, json=payload)
        self._check_response(response)
        if not response.content:
            return None
        return response.json()

    async def _paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        cached: bool = False,
        items_key: str | None = None,
        discovery: bool = True,
    ) -> list[dict[str, Any]]:
        """Fetch every page of a list endpoint.

        Pages are requested while they come back full and concatenated; the
        first short page ends the sequence, so a total that is an exact
        multiple of the page size costs one extra, empty page. Entities are
        de-duplicated by ``id``.

        Raises:
            DiscoveryError: On any status >= 400 or malformed page while
                listing the organization. Pages already fetched are
                discarded with it.
            HostAPIError: The same failures on a per-repository listing
                (``discovery=False``), which only fail that repository.
        """
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            page_params = {**(params or {}), "per_page": self.page_size, "page": page}
            try:
                data = await self._get(path, page_params, cached=cached)
            except HostAPIError as e:
                if not discovery:
                    raise
                raise DiscoveryError(e.message, status_code=e.status_code, response_text=e.response_text) from e

            page_items = data.get(items_key) if items_key and isinstance(data, dict) else data
            if not isinstance(page_items, list):
                error = DiscoveryError if discovery else HostAPIError
                raise error(f"Unexpected {self.host_type} response shape for {path}")

            items.extend(page_items)
            if len(page_items) < self.page_size:
                break
            page += 1

        unique = dedupe_by_id(items)
        log.debug("pagination_complete", path=path, pages=page, items=len(unique))
        return unique

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def list_org_repositories(self) -> list[RepositoryRef]:
        """List repositories of the organization the caller can push to.

        The listing is taken once per directory. Its outcome, result or
        error, is replayed to every later caller, so a host whose listing
        failed stays failed for the rest of the run.

        Returns:
            Repositories de-duplicated by id, in host order.

        Raises:
            DiscoveryError: If any page fails; fatal to the host branch.
        """
        if self._listing is None:
            self._listing = asyncio.ensure_future(self._list_org_repositories())
        return list(await asyncio.shield(self._listing))

    @abstractmethod
    async def _list_org_repositories(self) -> list[RepositoryRef]:
        """Fetch the organization listing from the host."""

    @abstractmethod
    async def fetch_manifest(self, repo: RepositoryRef) -> Manifest:
        """Read the manifest blob at the repository's default branch.

        Raises:
            HostAPIError: If the blob cannot be read (missing, archived, ...)
            ManifestError: If the blob is not a valid manifest
        """

    @abstractmethod
    async def compare_revisions(self, repo: RepositoryRef, base: str, head: str) -> list[Commit]:
        """List commits between two revisions, newest first."""

    async def find_repository(self, name: str) -> RepositoryRef | None:
        """Look a repository up by name in the (cached) organization listing."""
        for repo in await self.list_org_repositories():
            if repo.name == name:
                return repo
        return None

    # ------------------------------------------------------------------
    # Review requests
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_open_review_requests(
        self, repo: RepositoryRef, source_branch: str, target_branch: str
    ) -> list[ReviewRequest]:
        """List open review requests from ``source_branch`` into ``target_branch``."""

    @abstractmethod
    async def create_review_request(
        self,
        repo: RepositoryRef,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str,
    ) -> ReviewRequest:
        """Open a new review request."""

    @abstractmethod
    async def update_review_request(
        self, repo: RepositoryRef, number: int, title: str, description: str
    ) -> ReviewRequest:
        """Replace the title and description of a review request."""

    @abstractmethod
    async def get_review_request(self, repo: RepositoryRef, number: int) -> ReviewRequest:
        """Read a review request as the host currently stores it."""

    @abstractmethod
    async def merge_review_request(
        self, repo: RepositoryRef, request: ReviewRequest, delete_source_branch: bool = True
    ) -> None:
        """Merge a review request at its verified head revision."""

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_pipelines(self, repo: RepositoryRef, revision: str) -> list[Pipeline]:
        """List CI pipelines that ran for ``revision``, newest first."""

    @abstractmethod
    async def get_pipeline(self, repo: RepositoryRef, pipeline_id: int) -> Pipeline:
        """Read one pipeline's current status."""

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    @abstractmethod
    def clone_url(self, repo: RepositoryRef) -> str:
        """Token-authenticated HTTPS clone URL."""

    @abstractmethod
    def compare_url(self, repo: RepositoryRef, base: str, head: str) -> str:
        """Web URL of the diff between two revisions."""

    @abstractmethod
    def commit_url(self, repo: RepositoryRef, revision: str) -> str:
        """Web URL of a single commit."""
