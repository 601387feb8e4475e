"""Factory for host directories and their HTTP pools."""

import httpx
import structlog

from up_to_code.config.settings import GitHubSettings, GitLabSettings, HostSettings, UpdateSettings
from up_to_code.enums import HostType
from up_to_code.providers.base import HostDirectory
from up_to_code.providers.github_rest import GitHubDirectory, github_headers
from up_to_code.providers.gitlab_rest import GitLabDirectory, gitlab_api_url, gitlab_headers
from up_to_code.utils.caching import RequestCache
from up_to_code.utils.connection_pool import HTTPConnectionPool

log = structlog.get_logger(__name__)


def create_pool(
    host_type: HostType,
    settings: HostSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HTTPConnectionPool:
    """Create the HTTP pool for one host.

    Args:
        host_type: Which host the settings describe
        settings: Host settings carrying the API location and token
        transport: Optional httpx transport (tests pass a MockTransport)

    Returns:
        An uninitialized pool; use it as an async context manager
    """
    token = settings.token.get_secret_value()

    if host_type == HostType.GITHUB:
        assert isinstance(settings, GitHubSettings)
        base_url = str(settings.api_url)
        headers = github_headers(token)
    elif host_type == HostType.GITLAB:
        assert isinstance(settings, GitLabSettings)
        base_url = gitlab_api_url(str(settings.base_url))
        headers = gitlab_headers(token)
    else:
        raise ValueError(f"Unsupported host type: {host_type}")

    return HTTPConnectionPool(
        base_url=base_url,
        max_connections=settings.max_connections,
        timeout=settings.timeout,
        headers=headers,
        transport=transport,
    )


def create_directory(
    host_type: HostType,
    settings: HostSettings,
    update: UpdateSettings,
    pool: HTTPConnectionPool,
    cache: RequestCache,
) -> HostDirectory:
    """Create the directory for one host organization.

    Example:
        >>> async with create_pool(HostType.GITLAB, settings.gitlab) as pool:
        ...     directory = create_directory(HostType.GITLAB, settings.gitlab, settings.update, pool, cache)
        ...     repos = await directory.list_org_repositories()
    """
    token = settings.token.get_secret_value()
    log.info("creating_host_directory", host=str(host_type), org=settings.organization)

    if host_type == HostType.GITHUB:
        assert isinstance(settings, GitHubSettings)
        return GitHubDirectory(
            pool,
            cache,
            settings.organization,
            token,
            web_url=str(settings.web_url),
            page_size=update.page_size,
            manifest_path=update.manifest_path,
        )
    if host_type == HostType.GITLAB:
        assert isinstance(settings, GitLabSettings)
        return GitLabDirectory(
            pool,
            cache,
            settings.organization,
            token,
            web_url=str(settings.base_url),
            page_size=update.page_size,
            manifest_path=update.manifest_path,
        )
    raise ValueError(f"Unsupported host type: {host_type}")
