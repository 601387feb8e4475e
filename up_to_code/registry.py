"""Query the npm registry for the latest published version of a package."""

import subprocess

import structlog

from up_to_code.exceptions import ExternalServiceError, ManifestError
from up_to_code.utils.async_subprocess import run_command
from up_to_code.utils.caching import RequestCache
from up_to_code.versions import exact_version

log = structlog.get_logger(__name__)


class NpmRegistry:
    """Latest-version lookups through ``npm view``, memoized for the run.

    Every dependant asks the same question, so concurrent lookups of one
    package share a single ``npm`` process.

    Args:
        registry_url: Registry passed as ``--registry`` (npm's default when None)
        timeout: Seconds allowed for the npm command
    """

    def __init__(self, registry_url: str | None = None, timeout: float | None = None) -> None:
        self.registry_url = registry_url
        self.timeout = timeout
        self._cache = RequestCache()

    async def latest_version(self, package_name: str) -> str:
        """Return the ``latest`` dist-tag version of ``package_name``.

        Raises:
            ExternalServiceError: If npm fails or prints no usable version
        """
        return await self._cache.get_or_fetch(package_name, lambda: self._view(package_name))

    async def _view(self, package_name: str) -> str:
        args = ["npm", "view", package_name, "version"]
        if self.registry_url:
            args.extend(["--registry", self.registry_url])

        try:
            stdout, _, _ = await run_command(*args, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            raise ExternalServiceError(f"npm view {package_name} failed", response_text=e.stderr) from e
        except TimeoutError as e:
            raise ExternalServiceError(f"npm view {package_name} timed out") from e

        try:
            version = exact_version(stdout.strip())
        except ManifestError as e:
            raise ExternalServiceError(f"npm view {package_name} printed no version", response_text=stdout) from e

        log.info("latest_version_resolved", package=package_name, version=version)
        return version
