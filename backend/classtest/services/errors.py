"""
ClassTest - Retest Service Errors
Failure taxonomy shared by the registry, reconciler and submission adapters
"""


class RetestError(Exception):
    """Base retest error."""
    error_kind = "retest_error"
    status_code = 400


class ValidationError(RetestError):
    """Malformed or missing request fields."""
    error_kind = "validation_error"
    status_code = 400


class NotFoundError(RetestError):
    """Unknown assignment or test."""
    error_kind = "not_found"
    status_code = 404


class NotAssigned(RetestError):
    """No retest target exists for this student."""
    error_kind = "not_assigned"
    status_code = 400


class WindowClosed(RetestError):
    """Submission falls outside the retest window."""
    error_kind = "window_closed"
    status_code = 400


class AttemptsExhausted(RetestError):
    """The student has used every attempt (or is pass-locked)."""
    error_kind = "attempts_exhausted"
    status_code = 400


class StoreError(RetestError):
    """Transaction or connection failure."""
    error_kind = "store_error"
    status_code = 500
