"""Enumerations for up-to-code hosts, pipelines and merge states."""

from enum import Enum


class HostType(str, Enum):
    """Git hosting platforms supported by up-to-code."""

    GITHUB = "github"
    GITLAB = "gitlab"

    def __str__(self) -> str:
        return self.value


class PipelineStatus(str, Enum):
    """Normalized CI pipeline status.

    Both hosts report richer vocabularies; providers map them onto these
    five values. PENDING and RUNNING are the only non-terminal states.
    """

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELED = "canceled"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """Check if the pipeline has finished."""
        return self not in (PipelineStatus.PENDING, PipelineStatus.RUNNING)


class ReviewState(str, Enum):
    """Normalized review request state.

    GitLab's "opened" becomes OPEN; GitHub reports merged pull requests as
    "closed" with a merge timestamp, which providers turn into MERGED.
    """

    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"

    def __str__(self) -> str:
        return self.value


class MergeState(str, Enum):
    """States of the merge gate.

    Happy path:
    DISCOVERED -> PIPELINE_FOUND -> PIPELINE_TERMINAL -> REVISION_CONFIRMED -> MERGED

    ABORTED is reachable from any step on failure. SKIPPED means the update
    is breaking and the request was left open for a human.
    """

    DISCOVERED = "discovered"
    PIPELINE_FOUND = "pipeline-found"
    PIPELINE_TERMINAL = "pipeline-terminal"
    REVISION_CONFIRMED = "revision-confirmed"
    MERGED = "merged"
    ABORTED = "aborted"
    SKIPPED = "skipped"

    def __str__(self) -> str:
        return self.value
