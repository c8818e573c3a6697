"""
Error classes for the Supervision Visit Wizard.

Provides structured exception handling for:
- Admission errors (step 1 check-in gate)
- Validation errors (local step-gating predicates and field rules)
- Transient I/O errors (backend calls, uploads, position fixes)
- State errors (sealed visits, frozen fields, unknown sessions)
"""

from typing import Any, Dict, List, Optional


class SupervisionError(Exception):
    """
    Base exception for all wizard errors.

    Every failure surfaced to the operator inherits from this class so the
    API layer can render it uniformly.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize wizard error.

        Args:
            message: Short human-readable message
            details: Optional additional context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Admission Errors
# =============================================================================

class AdmissionError(SupervisionError):
    """
    Check-in refused locally.

    Raised before any network call when the coordinate is missing, no
    installation is selected, or the operator is outside the geofence without
    an override reason.
    """

    def __init__(self, issues: List[str]):
        self.issues = issues
        message = f"Check-in not allowed: {'; '.join(issues)}"
        super().__init__(message, {"issues": issues})


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(SupervisionError):
    """Local validation failure. Never sent to the server."""
    pass


class StepValidationError(ValidationError):
    """A step's admission predicate does not hold."""

    def __init__(self, step: int, issues: List[str]):
        self.step = step
        self.issues = issues
        message = f"Cannot leave step {step}: {'; '.join(issues)}"
        super().__init__(message, {"step": step, "issues": issues})


class StepNotReachableError(ValidationError):
    """Navigation beyond the highest step ever reached."""

    def __init__(self, requested_step: int, max_reached_step: int):
        self.requested_step = requested_step
        self.max_reached_step = max_reached_step
        message = f"Step {requested_step} not reachable (highest reached: {max_reached_step})"
        super().__init__(message, {
            "requested_step": requested_step,
            "max_reached_step": max_reached_step,
        })


class InvalidScoreError(ValidationError):
    """Score outside its allowed range."""

    def __init__(self, field_name: str, value: Any, minimum: int, maximum: int):
        self.field_name = field_name
        self.value = value
        message = f"{field_name} must be between {minimum} and {maximum}, got {value!r}"
        super().__init__(message, {
            "field": field_name,
            "value": value,
            "min": minimum,
            "max": maximum,
        })


class InvalidFindingError(ValidationError):
    """Finding payload rejected before submission."""
    pass


class InvalidFindingTransitionError(ValidationError):
    """Attempt to move a finding's status backward."""

    def __init__(self, finding_id: str, current_status: str, requested_status: str):
        self.finding_id = finding_id
        self.current_status = current_status
        self.requested_status = requested_status
        message = f"Finding {finding_id} cannot move from {current_status} to {requested_status}"
        super().__init__(message, {
            "finding_id": finding_id,
            "current_status": current_status,
            "requested_status": requested_status,
        })


class FindingLinkageError(ValidationError):
    """Finding status change without the resolving visit id."""

    def __init__(self, finding_id: str, reason: str):
        self.finding_id = finding_id
        message = f"Finding {finding_id} cannot be updated: {reason}"
        super().__init__(message, {"finding_id": finding_id, "reason": reason})


# =============================================================================
# Transient I/O Errors
# =============================================================================

class BackendError(SupervisionError):
    """
    Backend call failed.

    Non-2xx responses, `success: false` envelopes and transport failures are
    all reported through this class. The step is never advanced.
    """

    def __init__(
        self,
        operation: str,
        reason: str,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        self.operation = operation
        self.reason = reason
        self.status_code = status_code
        self.original_error = original_error

        message = f"{operation} failed: {reason}"
        details = {
            "operation": operation,
            "reason": reason,
            "status_code": status_code,
        }
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(message, details)


class EvidenceUploadError(SupervisionError):
    """
    Evidence queue stopped on a failed upload.

    Items uploaded before the failure stay uploaded; the failed item and
    everything after it remain pending for a retry.
    """

    def __init__(
        self,
        uploaded_count: int,
        pending_count: int,
        failed_capture_id: str,
        reason: str,
    ):
        self.uploaded_count = uploaded_count
        self.pending_count = pending_count
        self.failed_capture_id = failed_capture_id
        self.reason = reason

        message = f"Evidence upload stopped: {pending_count} pending ({reason})"
        super().__init__(message, {
            "uploaded_count": uploaded_count,
            "pending_count": pending_count,
            "failed_capture_id": failed_capture_id,
            "reason": reason,
        })


class LocationUnavailable(SupervisionError):
    """No fresh position fix (timeout, permission denied or hardware error)."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Location unavailable: {reason}", {"reason": reason})


# =============================================================================
# State Errors
# =============================================================================

class VisitStateError(SupervisionError):
    """Base class for visit lifecycle errors."""
    pass


class VisitSealedError(VisitStateError):
    """Mutation attempted after checkout."""

    def __init__(self, visit_id: str):
        self.visit_id = visit_id
        super().__init__(f"Visit {visit_id} is closed and cannot change", {"visit_id": visit_id})


class VisitInvariantError(VisitStateError):
    """Operation would break a visit invariant."""

    def __init__(self, visit_id: Optional[str], reason: str):
        self.visit_id = visit_id
        self.reason = reason
        super().__init__(f"Visit {visit_id}: {reason}", {"visit_id": visit_id, "reason": reason})


class SessionNotFoundError(VisitStateError):
    """Wizard session not found."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Wizard session not found: {session_id}", {"session_id": session_id})
