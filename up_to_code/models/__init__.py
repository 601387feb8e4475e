"""Core domain models for up-to-code.

Key Models:
    - RepositoryRef: Repository snapshot from an organization listing
    - Manifest: The three dependency mappings of a package.json
    - UpdatePlan: Before/after versions for one repository
    - ReviewRequest: Pull request or merge request
    - Pipeline: CI run for one revision
    - Commit: Compare API entry
    - RepositoryOutcome / RunReport: What a run attempted

Example:
    >>> from up_to_code.models import Manifest
    >>> Manifest(dependencies={"left-pad": "^1.0.0"}).declares("left-pad")
    True
"""

from up_to_code.models.domain import (
    Commit,
    Manifest,
    Pipeline,
    RepositoryOutcome,
    RepositoryRef,
    ReviewRequest,
    RunReport,
    UpdatePlan,
)

__all__ = [
    "Commit",
    "Manifest",
    "Pipeline",
    "RepositoryOutcome",
    "RepositoryRef",
    "ReviewRequest",
    "RunReport",
    "UpdatePlan",
]
