"""Find the repositories of an organization that declare a package."""

import asyncio

import httpx
import structlog

from up_to_code.exceptions import ExternalServiceError, ManifestError
from up_to_code.models.domain import RepositoryRef
from up_to_code.providers.base import HostDirectory

log = structlog.get_logger(__name__)


class DependencyScanner:
    """Classify an organization's repositories as dependants of a package.

    A repository is a dependant when its manifest declares the package in
    exactly one of dependencies, devDependencies or peerDependencies.
    Manifest fetches run concurrently; a repository whose manifest cannot
    be read or is inconsistent is logged and treated as a non-dependant so
    the scan always completes.

    Args:
        directory: Host directory of the organization
        languages: Primary languages worth scanning. Repositories without a
            reported language are always scanned; an empty list scans all.
    """

    def __init__(self, directory: HostDirectory, languages: list[str] | None = None) -> None:
        self.directory = directory
        self.languages = {language.lower() for language in languages or []}

    def _wants(self, repo: RepositoryRef) -> bool:
        if not self.languages or repo.primary_language is None:
            return True
        return repo.primary_language.lower() in self.languages

    async def find_dependants(self, package_name: str) -> list[RepositoryRef]:
        """Return the push-accessible repositories that declare ``package_name``.

        Raises:
            DiscoveryError: If the organization listing fails
        """
        repos = await self.directory.list_org_repositories()
        candidates = [repo for repo in repos if self._wants(repo)]

        results = await asyncio.gather(*(self._declares(repo, package_name) for repo in candidates))
        dependants = [repo for repo, declared in zip(candidates, results, strict=True) if declared]

        log.info(
            "dependants_found",
            host=str(self.directory.host_type),
            org=self.directory.organization,
            package=package_name,
            scanned=len(candidates),
            skipped=len(repos) - len(candidates),
            dependants=len(dependants),
        )
        return dependants

    async def _declares(self, repo: RepositoryRef, package_name: str) -> bool:
        try:
            manifest = await self.directory.fetch_manifest(repo)
        except (ExternalServiceError, ManifestError, httpx.HTTPError, ValueError) as e:
            log.info("manifest_unreadable", repo=repo.full_name, error=str(e))
            return False

        if manifest.declares(package_name):
            return True
        fields = [key for key, mapping in manifest.mappings().items() if package_name in mapping]
        if fields:
            log.warning("manifest_inconsistent", repo=repo.full_name, fields=fields)
        return False
