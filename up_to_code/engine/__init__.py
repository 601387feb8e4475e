"""Update engine: scanning, change notes, reconciliation, merge gate and orchestration."""

from up_to_code.engine.change_notes import ChangeNotePublisher, PackageSource
from up_to_code.engine.context import RepositoryContext
from up_to_code.engine.merge_gate import MergeGate
from up_to_code.engine.orchestrator import UpdateOrchestrator, repository_boundary
from up_to_code.engine.reconciler import ReviewRequestReconciler
from up_to_code.engine.scanner import DependencyScanner

__all__ = [
    "ChangeNotePublisher",
    "DependencyScanner",
    "MergeGate",
    "PackageSource",
    "RepositoryContext",
    "ReviewRequestReconciler",
    "UpdateOrchestrator",
    "repository_boundary",
]
