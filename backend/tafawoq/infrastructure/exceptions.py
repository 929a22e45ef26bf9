"""
Custom Exceptions for Tafawoq

Hierarchical exception classes for proper error handling across layers.
Every error that can reach the HTTP boundary carries a category, a
retryable flag and an HTTP status, so handlers never have to guess.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any


class TafawoqError(Exception):
    """Base exception for all Tafawoq errors."""

    category: str = "server_error"
    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        if retryable is not None:
            self.retryable = retryable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "category": self.category,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


# ============================================================================
# Validation / Quota
# ============================================================================


class ValidationError(TafawoqError):
    """Raised when input validation fails."""

    category = "validation"
    status_code = 400


class CriteriaExceedsLimitError(ValidationError):
    """Raised when requested criteria exceed what the user's tier allows."""

    def __init__(
        self,
        allowed: int,
        requested: int,
        tier: Optional[str] = None,
        message: Optional[str] = None,
    ):
        details: Dict[str, Any] = {"allowed": allowed, "requested": requested}
        if tier:
            details["tier"] = tier
        super().__init__(
            message or f"Requested {requested} questions, tier allows at most {allowed}",
            details,
        )
        self.allowed = allowed
        self.requested = requested


class QuotaExceededError(TafawoqError):
    """Raised when a quota window is exhausted."""

    category = "quota"
    status_code = 403

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        next_available_at: Optional[datetime] = None,
    ):
        details: Dict[str, Any] = {}
        if kind:
            details["kind"] = kind
        if next_available_at:
            details["next_available_at"] = next_available_at.isoformat()
        super().__init__(message, details)
        self.next_available_at = next_available_at


# ============================================================================
# Authentication
# ============================================================================


class AuthenticationError(TafawoqError):
    """Raised when a bearer token is missing, expired or cannot be verified."""

    category = "authentication"
    status_code = 401


# ============================================================================
# Lookup / State
# ============================================================================


class NotFoundError(TafawoqError):
    """Raised when a requested resource is not found."""

    category = "not_found"
    status_code = 404

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        details = {"resource": resource}
        if resource_id:
            details["id"] = resource_id
        super().__init__(f"{resource} not found", details)


class SessionStateError(TafawoqError):
    """Raised when a session is not in a state that allows the operation."""

    category = "conflict"
    status_code = 409

    def __init__(self, message: str, session_id: Optional[str] = None, status: Optional[str] = None):
        details = {}
        if session_id:
            details["session_id"] = session_id
        if status:
            details["status"] = status
        super().__init__(message, details)


class IntegrityError(TafawoqError):
    """
    Raised when persisted state contradicts an incoming fact.

    These are never silently dropped; callers log them on the ops channel
    for manual reconciliation.
    """

    category = "integrity"
    status_code = 409


class UnknownSubscriptionError(IntegrityError):
    """Raised when a lifecycle event matches no local subscription record."""

    def __init__(
        self,
        customer_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        event_id: Optional[str] = None,
    ):
        details = {
            "customer_id": customer_id,
            "subscription_id": subscription_id,
            "event_id": event_id,
        }
        super().__init__(
            "No subscription record matches the lifecycle event",
            {k: v for k, v in details.items() if v},
        )


class SubmissionMismatchError(IntegrityError):
    """Raised when a completed session is resubmitted with different answers."""

    def __init__(self, session_id: str):
        super().__init__(
            "Session was already submitted with a different answer set",
            {"session_id": session_id},
        )


# ============================================================================
# Subscriptions / Payments
# ============================================================================


class NoActiveSubscriptionError(TafawoqError):
    """Raised when cancel/reactivate is requested without a premium subscription."""

    category = "subscription"
    status_code = 409


class AlreadyPremiumError(TafawoqError):
    """Raised when checkout is started by a user who already has premium access."""

    category = "subscription"
    status_code = 409


class PaymentServiceError(TafawoqError):
    """Raised when the payment processor fails or times out."""

    category = "payment"
    status_code = 502
    retryable = True


class CheckoutInitError(PaymentServiceError):
    """Raised when a checkout context cannot be created or is incomplete."""

    def __init__(
        self,
        message: str,
        missing_fields: Optional[list] = None,
        original_error: Optional[Exception] = None,
        retryable: Optional[bool] = None,
    ):
        details = {}
        if missing_fields:
            details["missing_fields"] = missing_fields
        super().__init__(message, details, original_error, retryable)


# ============================================================================
# Content Generation
# ============================================================================


class GenerationFailureKind(str, Enum):
    """Failure classes of the external content generator."""

    QUOTA = "quota"
    TIMEOUT = "timeout"
    INVALID_INPUT = "invalid_input"
    CONTENT_FILTERED = "content_filtered"
    TRANSIENT = "transient"


_RETRYABLE_KINDS = {
    GenerationFailureKind.QUOTA,
    GenerationFailureKind.TIMEOUT,
    GenerationFailureKind.TRANSIENT,
}

_STATUS_BY_KIND = {
    GenerationFailureKind.QUOTA: 503,
    GenerationFailureKind.TIMEOUT: 504,
    GenerationFailureKind.INVALID_INPUT: 502,
    GenerationFailureKind.CONTENT_FILTERED: 502,
    GenerationFailureKind.TRANSIENT: 503,
}


class GenerationError(TafawoqError):
    """Raised when content generation fails; nothing is persisted."""

    category = "upstream"

    def __init__(
        self,
        kind: GenerationFailureKind,
        message: str,
        retry_after_seconds: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {"kind": kind.value}
        if retry_after_seconds is not None:
            details["retry_after_seconds"] = retry_after_seconds
        super().__init__(
            message,
            details,
            original_error,
            retryable=kind in _RETRYABLE_KINDS,
        )
        self.kind = kind
        self.retry_after_seconds = retry_after_seconds
        self.status_code = _STATUS_BY_KIND[kind]


# ============================================================================
# Infrastructure
# ============================================================================


class RateLimitError(TafawoqError):
    """Raised when API rate limits are exceeded."""

    category = "rate_limit"
    status_code = 429
    retryable = True

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if retry_after:
            details["retry_after_seconds"] = retry_after
        super().__init__(message, details, original_error)


class DatabaseError(TafawoqError):
    """Raised when database operations fail."""

    retryable = True

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class ConfigurationError(TafawoqError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
