"""CLI entry point for up-to-code."""

import asyncio
import sys
from pathlib import Path
from typing import Any

import click
import structlog

from up_to_code import __version__
from up_to_code.config.settings import UpToCodeSettings
from up_to_code.engine.orchestrator import UpdateOrchestrator
from up_to_code.exceptions import ConfigurationError, UpToCodeError
from up_to_code.models.domain import RunReport
from up_to_code.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)


@click.group()
@click.version_option(__version__, prog_name="up-to-code")
@click.option("--config", type=click.Path(dir_okay=False), default=None, help="Path to a YAML configuration file")
@click.option("--log-level", default="INFO", help="Logging level")
@click.option("--json-logs", is_flag=True, default=False, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str, json_logs: bool) -> None:
    """up-to-code: bump one npm dependency across GitHub and GitLab organizations."""
    configure_logging(log_level, json_output=json_logs)
    ctx.obj = {"config": config}


@cli.command()
@click.option("--package-name", help="npm package to bump")
@click.option("--github-org", help="GitHub organization to scan")
@click.option("--github-token", envvar="GITHUB_TOKEN", help="GitHub token, used with --github-org")
@click.option("--gitlab-org", help="GitLab group to scan")
@click.option("--gitlab-token", envvar="GITLAB_TOKEN", help="GitLab token, used with --gitlab-org")
@click.option("--gitlab-host", help="GitLab instance URL (default: https://gitlab.com)")
@click.option("--workspace", type=click.Path(file_okay=False, path_type=Path), help="Directory for clones")
@click.option("--poll-interval", type=float, help="Seconds between pipeline polls")
@click.option("--pipeline-timeout", type=float, help="Seconds to wait for a pipeline")
@click.pass_context
def run(
    ctx: click.Context,
    package_name: str | None,
    github_org: str | None,
    github_token: str | None,
    gitlab_org: str | None,
    gitlab_token: str | None,
    gitlab_host: str | None,
    workspace: Path | None,
    poll_interval: float | None,
    pipeline_timeout: float | None,
) -> None:
    """Update every repository that depends on the package."""
    overrides: dict[str, Any] = {
        "update": {
            "package_name": package_name,
            "workspace_dir": workspace,
            "poll_interval": poll_interval,
            "pipeline_timeout": pipeline_timeout,
        },
    }
    if github_org:
        overrides["github"] = {"organization": github_org, "token": github_token}
    if gitlab_org:
        overrides["gitlab"] = {"organization": gitlab_org, "token": gitlab_token, "base_url": gitlab_host}

    try:
        settings = UpToCodeSettings.load(ctx.obj["config"], **overrides)
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    try:
        report = asyncio.run(UpdateOrchestrator(settings).run())
    except UpToCodeError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("run_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error("run_unexpected", exc_info=True)
        sys.exit(1)

    _print_summary(report)


def _print_summary(report: RunReport) -> None:
    click.echo(f"\n{report.package_name}: {len(report.outcomes)} repositories attempted")
    for outcome in report.outcomes:
        repo = outcome.repository
        if outcome.succeeded:
            merge_state = outcome.merge_state or "-"
            url = outcome.review_request.web_url if outcome.review_request else ""
            click.echo(f"  ok      {repo.host}:{repo.full_name} [{merge_state}] {url}".rstrip())
        else:
            click.echo(f"  failed  {repo.host}:{repo.full_name} at {outcome.step}: {outcome.error}")
    for host, error in report.failed_hosts.items():
        click.echo(f"  host {host} skipped: {error}")


if __name__ == "__main__":
    cli()
