"""
Configuration system using Pydantic for type-safe settings management.

Settings come from a YAML file (with ``${VAR}`` interpolation) and
explicit overrides passed by the CLI, which win over the file.
``UP_TO_CODE_*`` environment variables fill in whatever both leave unset.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, HttpUrl, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from up_to_code.enums import HostType
from up_to_code.exceptions import ConfigurationError


class HostSettings(BaseModel):
    """Credentials and location of one host organization."""

    organization: str = Field(..., min_length=1, description="GitHub organization or GitLab group path")
    token: SecretStr = Field(..., description="API token with repository write scope")
    timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    max_connections: int = Field(default=10, ge=1, description="Maximum concurrent HTTP connections")

    @field_validator("token")
    @classmethod
    def token_not_blank(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("token must not be empty")
        return value


class GitHubSettings(HostSettings):
    """GitHub (or GitHub Enterprise) organization."""

    api_url: HttpUrl = Field(default="https://api.github.com", validate_default=True, description="REST API root")
    web_url: HttpUrl = Field(
        default="https://github.com", validate_default=True, description="Web root for links and clones"
    )


class GitLabSettings(HostSettings):
    """GitLab group on gitlab.com or a self-hosted instance."""

    base_url: HttpUrl = Field(default="https://gitlab.com", validate_default=True, description="Instance root")


class UpdateSettings(BaseModel):
    """What to update and how patiently."""

    package_name: str = Field(..., min_length=1, description="npm package to bump")
    branch_prefix: str = Field(default="up-to-code", description="Prefix of the update branch")
    manifest_path: str = Field(default="package.json", description="Manifest path inside each repository")
    registry_url: str | None = Field(default=None, description="npm registry to query for the latest version")
    languages: list[str] = Field(
        default_factory=lambda: ["JavaScript", "TypeScript"],
        description="Primary languages worth scanning; empty scans every repository",
    )
    bot_author: str = Field(
        default="up-to-code[bot]",
        description="Commit author rendered without attribution in change notes",
    )
    source_repository: str | None = Field(
        default=None,
        description="Repository holding the package source; defaults to the unscoped package name",
    )
    tag_prefix: str = Field(default="v", description="Prefix of release tags in the source repository")
    poll_interval: float = Field(default=30.0, gt=0, description="Seconds between pipeline status polls")
    pipeline_timeout: float = Field(default=1800.0, gt=0, description="Seconds to wait for a pipeline")
    workspace_dir: Path = Field(default=Path("repos"), description="Root of per-repository clones")
    page_size: int = Field(default=100, ge=1, le=100, description="Entities per page for list calls")
    command_timeout: float = Field(default=600.0, gt=0, description="Seconds allowed per git/npm command")

    @property
    def branch_name(self) -> str:
        """Update branch name, safe for both hosts.

        Example:
            ``@acme/ui-kit`` with the default prefix gives ``up-to-code-acme-ui-kit``.
        """
        package = self.package_name.lstrip("@").replace("/", "-")
        return f"{self.branch_prefix}-{package}"

    @property
    def source_repository_name(self) -> str:
        """Name of the repository the package is built from."""
        return self.source_repository or self.package_name.rsplit("/", 1)[-1]


class UpToCodeSettings(BaseSettings):
    """Main up-to-code settings.

    At least one host must be configured. Nested values can be set from
    the environment, e.g. ``UP_TO_CODE_GITLAB__TOKEN``.
    """

    model_config = SettingsConfigDict(
        env_prefix="UP_TO_CODE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    github: GitHubSettings | None = None
    gitlab: GitLabSettings | None = None
    update: UpdateSettings

    def hosts(self) -> dict[HostType, HostSettings]:
        """Configured hosts keyed by type."""
        configured: dict[HostType, HostSettings] = {}
        if self.github is not None:
            configured[HostType.GITHUB] = self.github
        if self.gitlab is not None:
            configured[HostType.GITLAB] = self.gitlab
        return configured

    @classmethod
    def load(cls, config_path: str | None = None, **overrides: Any) -> UpToCodeSettings:
        """Load settings from an optional YAML file plus overrides.

        Overrides are nested dicts (``{"gitlab": {"token": ...}}``) merged
        over the file content; ``None`` values are ignored so unset CLI
        options do not clobber the file.

        Raises:
            ConfigurationError: If the file is invalid, a required value is
                missing, or no host is configured
        """
        data: dict[str, Any] = cls._read_yaml(config_path) if config_path else {}
        data = _deep_merge(data, _drop_none(overrides))

        try:
            settings = cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        if not settings.hosts():
            raise ConfigurationError("At least one of github or gitlab must be configured")
        return settings

    @classmethod
    def from_yaml(cls, config_path: str) -> UpToCodeSettings:
        """Load settings from a YAML file with environment variable interpolation."""
        return cls.load(config_path)

    @classmethod
    def _read_yaml(cls, config_path: str) -> dict[str, Any]:
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            yaml_content = config_file.read_text()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")
        return config_dict

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines are left untouched.
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, dict):
            value = _drop_none(value)
            if not value:
                continue
        elif value is None:
            continue
        cleaned[key] = value
    return cleaned


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged
