"""ClassTest - Services initialization."""
from classtest.services.errors import (
    AttemptsExhausted,
    NotAssigned,
    NotFoundError,
    RetestError,
    StoreError,
    ValidationError,
    WindowClosed,
)
from classtest.services.attempt_store import AttemptStore
from classtest.services.best_value import BestValueProjector
from classtest.services.attempt_reconciler import AttemptReconciler, ReconcileRequest
from classtest.services.retest_registry import RetestAssignmentRegistry
from classtest.services.results import ResultsViewService
from classtest.services.submissions import SubmissionService

__all__ = [
    "AttemptStore",
    "BestValueProjector",
    "AttemptReconciler",
    "ReconcileRequest",
    "RetestAssignmentRegistry",
    "SubmissionService",
    "ResultsViewService",
    "RetestError",
    "ValidationError",
    "NotFoundError",
    "NotAssigned",
    "WindowClosed",
    "AttemptsExhausted",
    "StoreError",
]
