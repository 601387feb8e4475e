"""Host directory implementations.

Key Components:
    - HostDirectory: Abstract base with pagination, memoization and error mapping
    - GitHubDirectory: GitHub REST API v3 implementation
    - GitLabDirectory: GitLab REST API v4 implementation
    - create_pool / create_directory: Build both from settings

Example:
    >>> from up_to_code.providers import GitLabDirectory
    >>> directory = GitLabDirectory(pool, cache, "acme", token)
    >>> repos = await directory.list_org_repositories()
"""

from up_to_code.providers.base import HostDirectory
from up_to_code.providers.factory import create_directory, create_pool
from up_to_code.providers.github_rest import GitHubDirectory
from up_to_code.providers.gitlab_rest import GitLabDirectory

__all__ = [
    "GitHubDirectory",
    "GitLabDirectory",
    "HostDirectory",
    "create_directory",
    "create_pool",
]
