"""Per-repository context carried through the update pipeline.

The context replaces logger-wrapping: every engine call receives it and
logs through ``ctx.log``, which is already bound to host, organization,
repository and package. ``step`` names the pipeline step in progress so a
failure can be reported against it.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from up_to_code.config.settings import UpdateSettings
from up_to_code.enums import MergeState
from up_to_code.models.domain import RepositoryOutcome, RepositoryRef, ReviewRequest, UpdatePlan
from up_to_code.providers.base import HostDirectory


@dataclass
class RepositoryContext:
    """Context passed through one repository's update steps.

    Attributes:
        repository: The repository being updated
        directory: Host directory of the repository's organization
        settings: Update settings of the run
        log: Logger bound with host/org/repo/package
        step: Name of the step currently running
        plan: The update plan, once the manifest was bumped
        review_request: The reconciled review request
        merge_state: Last merge gate state, once the gate has run
    """

    repository: RepositoryRef
    directory: HostDirectory
    settings: UpdateSettings
    log: Any = field(default=None, repr=False)
    step: str = "pending"
    plan: UpdatePlan | None = None
    review_request: ReviewRequest | None = None
    merge_state: MergeState | None = None

    def __post_init__(self) -> None:
        if self.log is None:
            self.log = structlog.get_logger("up_to_code.engine").bind(
                host=str(self.repository.host),
                org=self.repository.organization,
                repo=self.repository.name,
                package=self.settings.package_name,
            )

    @property
    def workspace_path(self) -> Path:
        """Clone location: ``{workspace_dir}/{host}/{repo name}``."""
        return self.settings.workspace_dir / str(self.repository.host) / self.repository.name

    def enter(self, step: str) -> None:
        """Record the step about to run."""
        self.step = step
        self.log.debug("step_started", step=step)

    def outcome(self, succeeded: bool, error: str | None = None) -> RepositoryOutcome:
        """Snapshot what this repository got through."""
        return RepositoryOutcome(
            repository=self.repository,
            succeeded=succeeded,
            step=self.step,
            error=error,
            plan=self.plan,
            review_request=self.review_request,
            merge_state=self.merge_state,
        )
