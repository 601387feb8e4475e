"""
CI-gated merge of non-breaking updates.

State machine:
    DISCOVERED -> PIPELINE_FOUND -> PIPELINE_TERMINAL -> REVISION_CONFIRMED -> MERGED

ABORTED is reachable from every state; the error that caused it is
re-raised and the review request stays open. Nothing is retried: a
failed merge is reported and the repository waits for the next run.
"""

import asyncio

from up_to_code.engine.context import RepositoryContext
from up_to_code.enums import MergeState, PipelineStatus, ReviewState
from up_to_code.exceptions import PipelineError, PipelineTimeoutError
from up_to_code.models.domain import Pipeline, ReviewRequest


class MergeGate:
    """Merge a review request once every pipeline for the tested revision succeeded.

    Args:
        poll_interval: Seconds between pipeline status reads
        timeout: Seconds to wait for the pipelines to finish
    """

    def __init__(self, poll_interval: float = 30.0, timeout: float = 1800.0) -> None:
        self.poll_interval = poll_interval
        self.timeout = timeout

    async def attempt_merge(self, ctx: RepositoryContext, request: ReviewRequest, safe: bool) -> MergeState:
        """Run the gate for ``request``.

        Args:
            ctx: Repository context
            request: The reconciled review request
            safe: False for breaking updates, which are left for a human

        Returns:
            MergeState.MERGED, or MergeState.SKIPPED when not ``safe``

        Raises:
            PipelineError: If no pipeline ran for the head revision, any of
                them did not succeed, or the head moved after they succeeded
            PipelineTimeoutError: If a pipeline did not finish in time
            HostAPIError: If a host call (including the merge) fails
        """
        if not safe:
            self._transition(ctx, MergeState.SKIPPED, number=request.number)
            return MergeState.SKIPPED

        self._transition(ctx, MergeState.DISCOVERED, number=request.number, revision=request.head_revision)
        try:
            pipelines = await self._find_pipelines(ctx, request)
            self._transition(ctx, MergeState.PIPELINE_FOUND, pipelines=[p.id for p in pipelines])

            pipelines = await self._wait_for_pipelines(ctx, pipelines)
            self._transition(
                ctx,
                MergeState.PIPELINE_TERMINAL,
                pipelines=[p.id for p in pipelines],
                statuses=[str(p.status) for p in pipelines],
            )
            for pipeline in pipelines:
                if pipeline.status != PipelineStatus.SUCCESS:
                    raise PipelineError(
                        f"Pipeline {pipeline.id} did not succeed",
                        revision=pipeline.revision,
                        status=str(pipeline.status),
                    )

            current = await self._confirm_revision(ctx, request)
            self._transition(ctx, MergeState.REVISION_CONFIRMED, revision=current.head_revision)

            await ctx.directory.merge_review_request(ctx.repository, current, delete_source_branch=True)
        except Exception as e:
            ctx.log.warning("merge_aborted", from_state=str(ctx.merge_state), error=str(e))
            ctx.merge_state = MergeState.ABORTED
            raise

        self._transition(ctx, MergeState.MERGED, number=current.number)
        return MergeState.MERGED

    async def _find_pipelines(self, ctx: RepositoryContext, request: ReviewRequest) -> list[Pipeline]:
        """Every pipeline that ran for the head revision; GitHub starts one per workflow."""
        pipelines = await ctx.directory.list_pipelines(ctx.repository, request.head_revision)
        matching = [pipeline for pipeline in pipelines if pipeline.revision == request.head_revision]
        if not matching:
            raise PipelineError("No pipeline found for review request head", revision=request.head_revision)
        return matching

    async def _wait_for_pipelines(self, ctx: RepositoryContext, pipelines: list[Pipeline]) -> list[Pipeline]:
        """Poll until every pipeline leaves pending/running or the timeout elapses.

        Sleeps never overshoot the deadline, and the last read happens at
        the deadline itself.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while True:
            pending = [pipeline for pipeline in pipelines if not pipeline.status.is_terminal]
            if not pending:
                return pipelines

            remaining = deadline - loop.time()
            if remaining <= 0:
                first = pending[0]
                raise PipelineTimeoutError(
                    f"Pipeline {first.id} still {first.status}",
                    timeout_seconds=self.timeout,
                    revision=first.revision,
                    status=str(first.status),
                )

            await asyncio.sleep(min(self.poll_interval, remaining))
            polled = await asyncio.gather(
                *(ctx.directory.get_pipeline(ctx.repository, pipeline.id) for pipeline in pending)
            )
            for pipeline in polled:
                ctx.log.debug("pipeline_polled", pipeline=pipeline.id, status=str(pipeline.status))

            # Terminal pipelines keep their last read; pending ones take the new one, in order
            fresh = iter(polled)
            pipelines = [pipeline if pipeline.status.is_terminal else next(fresh) for pipeline in pipelines]

    async def _confirm_revision(self, ctx: RepositoryContext, request: ReviewRequest) -> ReviewRequest:
        """Re-read the request; the tested revision must still be its open head."""
        current = await ctx.directory.get_review_request(ctx.repository, request.number)
        if current.head_revision != request.head_revision:
            raise PipelineError(
                f"Head of review request {request.number} moved to {current.head_revision}",
                revision=request.head_revision,
            )
        if current.state != ReviewState.OPEN:
            raise PipelineError(f"Review request {request.number} is {current.state}", revision=request.head_revision)
        return current

    def _transition(self, ctx: RepositoryContext, state: MergeState, **details: object) -> None:
        ctx.log.info("merge_state_changed", from_state=str(ctx.merge_state), to_state=str(state), **details)
        ctx.merge_state = state
