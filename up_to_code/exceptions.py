"""Custom exception hierarchy for up-to-code.

This module defines a structured exception hierarchy that lets the
orchestrator tell setup failures apart from failures scoped to a single
host or a single repository.

Exception Hierarchy:
    UpToCodeError (base)
    ├── ConfigurationError
    ├── GitOperationError
    ├── ExternalServiceError
    │   ├── HostAPIError
    │   └── DiscoveryError
    ├── ManifestError
    ├── RegistryLagError
    ├── ReviewConflictError
    │   └── ReviewUpdateError
    └── PipelineError
        └── PipelineTimeoutError

Scope:
    - ConfigurationError aborts the process before any work starts.
    - DiscoveryError aborts the whole host branch.
    - Everything else aborts one repository and is caught at the
      orchestrator boundary.

Example Usage:
    >>> from up_to_code.exceptions import ManifestError
    >>> try:
    ...     manifest.locate("left-pad")
    ... except ManifestError as e:
    ...     log.warning("not_a_dependant", error=e.message)
"""


class UpToCodeError(Exception):
    """Base exception for all up-to-code errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(UpToCodeError):
    """Configuration-related errors.

    Raised when settings are invalid or incomplete, e.g. no package name,
    no host configured, or an organization without a credential.
    """

    pass


class GitOperationError(UpToCodeError):
    """A git command in a repository workspace failed.

    Attributes:
        command: The git subcommand that failed (e.g. "clone", "push")
        stderr: Captured standard error of the failed command
    """

    def __init__(self, message: str, command: str | None = None, stderr: str | None = None) -> None:
        self.command = command
        self.stderr = stderr

        full_message = message
        if stderr:
            full_message = f"{message}: {stderr.strip()}"

        super().__init__(full_message)
        self.message = message


class ExternalServiceError(UpToCodeError):
    """External service communication errors.

    Raised when a host API or the package registry returns an error.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            status_code: HTTP status code (if applicable)
            response_text: Response body text (if applicable)
        """
        self.message = message
        self.status_code = status_code
        self.response_text = response_text

        full_message = message
        if status_code:
            full_message = f"{message} (HTTP {status_code})"

        Exception.__init__(self, full_message)


class HostAPIError(ExternalServiceError):
    """A single (non-paginated) host API call returned status >= 400."""

    pass


class DiscoveryError(ExternalServiceError):
    """Pagination or authentication failure while listing entities.

    Fatal to the whole host branch and never retried: once a page fails,
    the pages already fetched cannot be trusted to be consistent.
    """

    pass


class ManifestError(UpToCodeError):
    """The manifest does not declare the package in exactly one mapping.

    Also raised when the declared version range holds no usable version.
    """

    def __init__(self, message: str, package_name: str | None = None) -> None:
        self.package_name = package_name
        super().__init__(message)


class RegistryLagError(UpToCodeError):
    """The latest published version equals the version already pinned.

    Prevents opening a review request that would change nothing.
    """

    def __init__(self, package_name: str, version: str) -> None:
        self.package_name = package_name
        self.version = version
        super().__init__(f"{package_name} latest published version {version} is already pinned")


class ReviewConflictError(UpToCodeError):
    """More than one open review request matches the update branch.

    Requires human resolution; the reconciler never picks one.
    """

    def __init__(self, message: str, branch: str | None = None, count: int | None = None) -> None:
        self.branch = branch
        self.count = count
        super().__init__(message)


class ReviewUpdateError(ReviewConflictError):
    """The host did not persist an update to an existing review request."""

    pass


class PipelineError(UpToCodeError):
    """The merge gate refused to merge.

    Covers a missing pipeline, a non-success terminal status, and head
    revision drift after the pipeline succeeded. The review request stays
    open.

    Attributes:
        revision: Revision the gate was verifying
        status: Last observed pipeline status, if any
    """

    def __init__(self, message: str, revision: str | None = None, status: str | None = None) -> None:
        self.revision = revision
        self.status = status

        parts = [message]
        if revision:
            parts.append(f"revision: {revision}")
        if status:
            parts.append(f"status: {status}")

        full_message = message if len(parts) == 1 else f"{message} ({', '.join(parts[1:])})"
        super().__init__(full_message)
        self.message = message


class PipelineTimeoutError(PipelineError):
    """The pipeline did not reach a terminal status in time."""

    def __init__(
        self,
        message: str,
        timeout_seconds: float,
        revision: str | None = None,
        status: str | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        if "timeout" not in message.lower():
            message = f"{message} (timeout: {timeout_seconds}s)"
        super().__init__(message, revision=revision, status=status)
