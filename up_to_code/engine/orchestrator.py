"""
Drive one package update across every configured host.

The run opens one HTTP pool per host and one request cache for the whole
run, then starts both host branches at once. Each branch scans its
organization for dependants and fires every repository pipeline without
waiting for the others; all of them are awaited with settle semantics, so
one repository failing never stops its siblings.

Per repository the steps are strictly sequential::

    clone -> checkout -> bump -> commit -> push -> change note -> reconcile -> merge

A host branch whose discovery fails contributes no outcomes; the other
host carries on. The run itself succeeds once every repository was
attempted, whatever the individual outcomes.
"""

import asyncio
import functools
from collections.abc import Awaitable, Callable, Iterable, Mapping
from contextlib import AsyncExitStack
from typing import Any

import httpx
import structlog

from up_to_code.config.settings import UpToCodeSettings
from up_to_code.engine.change_notes import ChangeNotePublisher, PackageSource
from up_to_code.engine.context import RepositoryContext
from up_to_code.engine.merge_gate import MergeGate
from up_to_code.engine.reconciler import ReviewRequestReconciler
from up_to_code.engine.scanner import DependencyScanner
from up_to_code.enums import HostType
from up_to_code.exceptions import DiscoveryError
from up_to_code.manifest import ManifestEditor
from up_to_code.models.domain import RepositoryOutcome, RunReport, UpdatePlan
from up_to_code.providers.base import HostDirectory
from up_to_code.providers.factory import create_directory, create_pool
from up_to_code.registry import NpmRegistry
from up_to_code.utils.caching import RequestCache
from up_to_code.workspace import GitWorkspace

log = structlog.get_logger(__name__)

RepositoryStep = Callable[..., Awaitable[RepositoryOutcome]]


def repository_boundary(func: RepositoryStep) -> RepositoryStep:
    """Turn any failure of a repository pipeline into a failed outcome.

    The only place repository-scoped errors are caught. The error is
    logged through the context's bound logger, so host, repository and
    the failing step are attached.
    """

    @functools.wraps(func)
    async def wrapper(self: Any, ctx: RepositoryContext, *args: Any, **kwargs: Any) -> RepositoryOutcome:
        try:
            return await func(self, ctx, *args, **kwargs)
        except Exception as e:
            ctx.log.error(
                "repository_update_failed",
                step=ctx.step,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return ctx.outcome(succeeded=False, error=str(e))

    return wrapper


class UpdateOrchestrator:
    """Run one package update end to end.

    Collaborators default to the real implementations; tests inject
    fakes and httpx transports.

    Args:
        settings: Validated settings of the run
        registry: Latest-version lookup
        publisher: Change note and review body rendering
        reconciler: Review request reconciliation
        merge_gate: CI-gated merge
        workspace_factory: Builds a workspace from ``(path, timeout=...)``
        transports: Optional httpx transport per host
    """

    def __init__(
        self,
        settings: UpToCodeSettings,
        registry: NpmRegistry | None = None,
        publisher: ChangeNotePublisher | None = None,
        reconciler: ReviewRequestReconciler | None = None,
        merge_gate: MergeGate | None = None,
        workspace_factory: Callable[..., GitWorkspace] = GitWorkspace,
        transports: Mapping[HostType, httpx.AsyncBaseTransport] | None = None,
    ) -> None:
        update = settings.update
        self.settings = settings
        self.registry = registry or NpmRegistry(update.registry_url, timeout=update.command_timeout)
        self.publisher = publisher or ChangeNotePublisher(bot_author=update.bot_author, tag_prefix=update.tag_prefix)
        self.reconciler = reconciler or ReviewRequestReconciler()
        self.merge_gate = merge_gate or MergeGate(update.poll_interval, update.pipeline_timeout)
        self.workspace_factory = workspace_factory
        self.transports = dict(transports or {})

    async def run(self) -> RunReport:
        """Update every dependant repository of every configured host."""
        update = self.settings.update
        report = RunReport(package_name=update.package_name)
        cache = RequestCache()

        log.info(
            "run_started",
            package=update.package_name,
            branch=update.branch_name,
            hosts=[str(host) for host in self.settings.hosts()],
        )

        async with AsyncExitStack() as stack:
            directories: dict[HostType, HostDirectory] = {}
            for host_type, host_settings in self.settings.hosts().items():
                pool = create_pool(host_type, host_settings, transport=self.transports.get(host_type))
                await stack.enter_async_context(pool)
                directories[host_type] = create_directory(host_type, host_settings, update, pool, cache)

            source = await self._resolve_source(directories.values())
            results = await asyncio.gather(
                *(self._run_host(directory, source) for directory in directories.values()),
                return_exceptions=True,
            )

        for host_type, result in zip(directories, results, strict=True):
            if isinstance(result, BaseException):
                log.error("host_branch_failed", host=str(host_type), error=str(result), error_type=type(result).__name__)
                report.failed_hosts[str(host_type)] = str(result)
            else:
                report.outcomes.extend(result)

        log.info(
            "run_complete",
            package=update.package_name,
            attempted=len(report.outcomes),
            succeeded=len(report.succeeded),
            failed=len(report.failed),
            merged=len(report.merged),
            failed_hosts=sorted(report.failed_hosts),
            cache=cache.get_stats(),
        )
        return report

    async def _resolve_source(self, directories: Iterable[HostDirectory]) -> PackageSource | None:
        """Find the repository the package is built from, on any host."""
        name = self.settings.update.source_repository_name
        for directory in directories:
            try:
                repo = await directory.find_repository(name)
            except DiscoveryError as e:
                log.warning("source_lookup_failed", host=str(directory.host_type), error=str(e))
                continue
            if repo is not None:
                log.info("package_source_found", host=str(directory.host_type), repo=repo.full_name)
                return PackageSource(directory, repo)

        log.warning("package_source_not_found", name=name)
        return None

    async def _run_host(self, directory: HostDirectory, source: PackageSource | None) -> list[RepositoryOutcome]:
        """Scan one organization and update all its dependants concurrently.

        Raises:
            DiscoveryError: If the organization cannot be listed
        """
        update = self.settings.update
        scanner = DependencyScanner(directory, update.languages)
        dependants = await scanner.find_dependants(update.package_name)

        contexts = [RepositoryContext(repository=repo, directory=directory, settings=update) for repo in dependants]
        results = await asyncio.gather(
            *(self._update_repository(ctx, source) for ctx in contexts),
            return_exceptions=True,
        )

        outcomes = []
        for ctx, result in zip(contexts, results, strict=True):
            if isinstance(result, BaseException):
                # Cancellation and other BaseExceptions bypass the boundary
                ctx.log.error("repository_update_interrupted", step=ctx.step, error=repr(result))
                outcomes.append(ctx.outcome(succeeded=False, error=repr(result)))
            else:
                outcomes.append(result)
        return outcomes

    @repository_boundary
    async def _update_repository(self, ctx: RepositoryContext, source: PackageSource | None) -> RepositoryOutcome:
        update = ctx.settings
        directory = ctx.directory
        repo = ctx.repository
        workspace = self.workspace_factory(ctx.workspace_path, timeout=update.command_timeout)

        ctx.enter("clone")
        await workspace.clone(directory.clone_url(repo))

        ctx.enter("checkout")
        await workspace.checkout_branch(update.branch_name)

        ctx.enter("bump")
        latest = await self.registry.latest_version(update.package_name)
        editor = ManifestEditor(ctx.workspace_path / update.manifest_path)
        before, after = editor.bump(update.package_name, latest)
        ctx.plan = plan = UpdatePlan.create(
            package_name=update.package_name,
            repository=repo,
            before_version=before,
            after_version=after,
            branch_name=update.branch_name,
        )
        ctx.log.info("update_planned", before=before, after=after, breaking=plan.breaking)

        ctx.enter("commit")
        await workspace.commit_all(plan.title)

        ctx.enter("push")
        await workspace.push(force=True)

        ctx.enter("change_note")
        change_note = await self.publisher.release_notes(source, before, after)
        description = self.publisher.build_review_body(plan, change_note)

        ctx.enter("reconcile")
        ctx.review_request = await self.reconciler.reconcile(ctx, plan.branch_name, plan.title, description)

        ctx.enter("merge")
        await self.merge_gate.attempt_merge(ctx, ctx.review_request, safe=not plan.breaking)

        ctx.enter("done")
        ctx.log.info("repository_updated", merge_state=str(ctx.merge_state))
        return ctx.outcome(succeeded=True)
