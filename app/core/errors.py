"""
Onboarding error hierarchy.

Every failure a caller can act on is an OnboardingError carrying a
machine-readable code, an HTTP status for the API layer, and optional details.
Business outcomes (approve/flag/block) are returned as data by the decision
tables; only the state machine turns a block into BlockedTransitionError.
"""
from typing import Any, Dict, Optional


class OnboardingError(Exception):
    code = "ONBOARDING_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            out["details"] = self.details
        return out


class ValidationError(OnboardingError):
    """Malformed or inconsistent input. Not a business judgment."""
    code = "VALIDATION_ERROR"
    status_code = 400


class StepOrderError(ValidationError):
    code = "STEP_OUT_OF_ORDER"


class IncompleteStepError(ValidationError):
    """Requirements for completing a step are not met yet."""
    code = "STEP_INCOMPLETE"


class NotFoundError(OnboardingError):
    code = "NOT_FOUND"
    status_code = 404


class BlockedTransitionError(OnboardingError):
    code = "VERIFICATION_BLOCKED"
    status_code = 422


class ImmutableAfterProgressError(OnboardingError):
    code = "IMMUTABLE_AFTER_PROGRESS"
    status_code = 409


class AlreadyCompletedError(OnboardingError):
    code = "ALREADY_COMPLETED"
    status_code = 409


class TerminalStateError(OnboardingError):
    code = "TERMINAL_STATE"
    status_code = 409


class ConcurrentModificationError(OnboardingError):
    code = "CONCURRENT_MODIFICATION"
    status_code = 409


class MissingUpstreamFactError(OnboardingError):
    """A provider response lacked a field a decision table needs."""
    code = "MISSING_UPSTREAM_FACT"
    status_code = 502


class ExternalServiceError(OnboardingError):
    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, retryable: bool = False):
        super().__init__(message, details)
        self.retryable = retryable
        if retryable:
            self.status_code = 503

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["retryable"] = self.retryable
        return out


class ConfigError(OnboardingError):
    code = "CONFIG_ERROR"
    status_code = 500
