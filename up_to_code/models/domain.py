"""
Domain models for up-to-code.

These models are the normalized internal representation of what the two
hosts return. Providers convert GitHub and GitLab payloads into them;
the engine never sees a raw API response.

All models are frozen: repository and manifest snapshots are taken once
per run, and an UpdatePlan flows through a repository pipeline by value.

Example:
    Building an update plan after a manifest bump::

        plan = UpdatePlan.create(
            package_name="@acme/ui-kit",
            repository=repo,
            before_version="1.4.2",
            after_version="2.0.0",
            branch_name="up-to-code-acme-ui-kit",
        )
        assert plan.breaking
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from up_to_code.enums import HostType, MergeState, PipelineStatus, ReviewState
from up_to_code.exceptions import ManifestError
from up_to_code.versions import is_breaking

DEPENDENCY_FIELDS = ("dependencies", "devDependencies", "peerDependencies")


@dataclass(frozen=True)
class RepositoryRef:
    """A repository (GitHub) or project (GitLab) of an organization.

    Identity is `id`, not `name`: hosts can return the same name on
    adjacent pages while the listing is being mutated.
    """

    host: HostType
    """Host family the repository lives on."""

    organization: str
    """GitHub organization or GitLab group path."""

    name: str
    """Repository name (GitLab: project path within the group)."""

    id: int
    """Host database identifier."""

    primary_language: str | None = None
    """Primary language reported by the host (GitLab listings omit it)."""

    push_permission: bool = False
    """Whether the authenticated user may push to the repository."""

    default_branch: str = "main"
    """Branch review requests target."""

    web_url: str = ""
    """Web URL of the repository."""

    @property
    def full_name(self) -> str:
        """Organization-qualified name, e.g. ``acme/web``."""
        return f"{self.organization}/{self.name}"


@dataclass(frozen=True)
class Manifest:
    """Dependency declarations of a ``package.json``.

    A package must be declared in exactly one of the three mappings.
    Zero means the repository is not a dependant; more than one is an
    inconsistency that must not be guessed around.
    """

    dependencies: Mapping[str, str] = field(default_factory=dict)
    dev_dependencies: Mapping[str, str] = field(default_factory=dict)
    peer_dependencies: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_package_json(cls, data: Any) -> "Manifest":
        """Build a manifest from parsed ``package.json`` content.

        Raises:
            ManifestError: If the document or a dependency mapping is not an object
        """
        if not isinstance(data, dict):
            raise ManifestError("package.json must be a JSON object")

        mappings = []
        for key in DEPENDENCY_FIELDS:
            value = data.get(key) or {}
            if not isinstance(value, dict):
                raise ManifestError(f"{key} must be a JSON object")
            mappings.append(dict(value))

        return cls(
            dependencies=mappings[0],
            dev_dependencies=mappings[1],
            peer_dependencies=mappings[2],
        )

    def mappings(self) -> dict[str, Mapping[str, str]]:
        """Return the three mappings keyed by their ``package.json`` field name."""
        return {
            "dependencies": self.dependencies,
            "devDependencies": self.dev_dependencies,
            "peerDependencies": self.peer_dependencies,
        }

    def locate(self, package_name: str) -> str:
        """Return the ``package.json`` field that declares the package.

        Raises:
            ManifestError: If the package is declared in zero or several mappings
        """
        found = [key for key, mapping in self.mappings().items() if package_name in mapping]
        if not found:
            raise ManifestError(f"{package_name} not found", package_name=package_name)
        if len(found) > 1:
            raise ManifestError(
                f"{package_name} found in both {' and '.join(found)}",
                package_name=package_name,
            )
        return found[0]

    def declares(self, package_name: str) -> bool:
        """Check if the package is declared in exactly one mapping."""
        try:
            self.locate(package_name)
        except ManifestError:
            return False
        return True

    def version_range(self, package_name: str) -> str:
        """Return the declared range of the package."""
        return self.mappings()[self.locate(package_name)][package_name]


@dataclass(frozen=True)
class UpdatePlan:
    """What will change in one repository during this run."""

    package_name: str
    repository: RepositoryRef
    before_version: str
    after_version: str
    branch_name: str
    breaking: bool

    @classmethod
    def create(
        cls,
        package_name: str,
        repository: RepositoryRef,
        before_version: str,
        after_version: str,
        branch_name: str,
    ) -> "UpdatePlan":
        """Create a plan, deriving ``breaking`` from the major versions."""
        return cls(
            package_name=package_name,
            repository=repository,
            before_version=before_version,
            after_version=after_version,
            branch_name=branch_name,
            breaking=is_breaking(before_version, after_version),
        )

    @property
    def title(self) -> str:
        """Review request title."""
        return f"Bump {self.package_name} from {self.before_version} to {self.after_version}"


@dataclass(frozen=True)
class ReviewRequest:
    """A pull request (GitHub) or merge request (GitLab)."""

    id: int
    """Host database identifier."""

    number: int
    """Project-scoped number used in API paths (GitHub number, GitLab iid)."""

    title: str
    description: str
    source_branch: str
    target_branch: str
    state: ReviewState
    head_revision: str
    """Commit SHA at the tip of the source branch."""

    web_url: str = ""


@dataclass(frozen=True)
class Pipeline:
    """A CI run for one revision. Read-only; never created by this tool."""

    id: int
    revision: str
    status: PipelineStatus


@dataclass(frozen=True)
class Commit:
    """One entry of a compare API response."""

    id: str
    title: str
    author_name: str
    web_url: str


@dataclass
class RepositoryOutcome:
    """Result of one repository pipeline, success or failure."""

    repository: RepositoryRef
    succeeded: bool
    step: str
    error: str | None = None
    plan: UpdatePlan | None = None
    review_request: ReviewRequest | None = None
    merge_state: MergeState | None = None


@dataclass
class RunReport:
    """Everything attempted during one run."""

    package_name: str
    outcomes: list[RepositoryOutcome] = field(default_factory=list)
    failed_hosts: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> list[RepositoryOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> list[RepositoryOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def merged(self) -> list[RepositoryOutcome]:
        return [o for o in self.outcomes if o.merge_state == MergeState.MERGED]
