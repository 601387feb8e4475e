"""Configuration for up-to-code.

Key Components:
    - UpToCodeSettings: Main configuration container with YAML loading support
    - GitHubSettings / GitLabSettings: Host organization and credentials
    - UpdateSettings: Package, branch, polling and workspace settings

Example:
    >>> from up_to_code.config import UpToCodeSettings
    >>> settings = UpToCodeSettings.from_yaml("up-to-code.yaml")
    >>> settings.update.branch_name
    'up-to-code-left-pad'
"""

from up_to_code.config.settings import (
    GitHubSettings,
    GitLabSettings,
    HostSettings,
    UpdateSettings,
    UpToCodeSettings,
)

__all__ = [
    "GitHubSettings",
    "GitLabSettings",
    "HostSettings",
    "UpdateSettings",
    "UpToCodeSettings",
]
