"""ClassTest - Models initialization."""
from classtest.models.test import Test, TestType
from classtest.models.academic import AcademicPeriod
from classtest.models.result import TestResult
from classtest.models.retest import (
    RetestAssignment,
    RetestTarget,
    ScoringPolicy,
    TargetStatus,
)
from classtest.models.attempt import TestAttempt


__all__ = [
    # Catalog
    "Test",
    "TestType",
    "AcademicPeriod",
    # Original results
    "TestResult",
    # Retests
    "RetestAssignment",
    "RetestTarget",
    "ScoringPolicy",
    "TargetStatus",
    # Attempt ledger
    "TestAttempt",
]
