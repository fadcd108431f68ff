"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. Consistent error handling across the ledger and its HTTP surface
2. HTTP status code mapping for FastAPI
3. Structured error responses with contextual data
4. A specific error kind for every rejection the ledger can produce

IMPORTANT: NEVER raise the base Exception class from ledger code. Always use
one of the exceptions below so callers can tell rejections apart.
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    WHY: Centralizing exception handling in a base class ensures consistent
    error responses, HTTP status code mapping, and prevents sensitive data
    leaks in error messages.

    All custom exceptions should inherit from this class.
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        sensitive_fields = {"password", "token", "secret", "key", "api_key"}
        filtered_context = {
            k: v for k, v in self.context.items() if k.lower() not in sensitive_fields
        }

        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


# ============================================================================
# Validation Exceptions
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    WHY: Validation errors are rejected before any mutation applies, so the
    invoice is left exactly as it was.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"


class LineItemValidationError(ValidationError):
    """
    Raised when a line item is malformed.

    WHY: Negative quantities/rates and blank descriptions are rejected,
    never silently clamped.

    HTTP Status: 400 Bad Request
    """

    default_message = "Invalid line item"


class PaymentRejectedError(ValidationError):
    """
    Raised when a payment cannot be recorded.

    WHY: Non-positive amounts and payments against cancelled invoices are
    validation failures of the payment itself.

    HTTP Status: 400 Bad Request
    """

    default_message = "Payment rejected"


# ============================================================================
# Authentication Exceptions
# ============================================================================


class AuthenticationError(AppException):
    """
    Raised when the caller's owner identity is missing or malformed.

    WHY: Every invoice is owner-scoped; a request without an owner cannot
    be routed to any invoice.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    default_message = "Owner identity required"


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    WHY: 404 Not Found is the standard HTTP status for missing resources.
    Including resource type and ID in context helps debugging.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class InvoiceNotFoundError(ResourceNotFoundError):
    """Raised when an invoice doesn't exist (or belongs to another owner)."""

    default_message = "Invoice not found"


# ============================================================================
# Business Logic Exceptions
# ============================================================================


class BusinessRuleViolation(AppException):
    """
    Raised when a business rule is violated.

    WHY: Business rules (e.g., "can't edit line items after a payment")
    are different from validation errors. 422 Unprocessable Entity indicates
    the request was well-formed but semantically incorrect.

    HTTP Status: 422 Unprocessable Entity
    """

    status_code = 422
    default_message = "Business rule violation"


class InvalidStateTransitionError(BusinessRuleViolation):
    """
    Raised when an invalid lifecycle transition is attempted.

    WHY: The invoice lifecycle only moves forward (or into cancelled).
    Attempting anything else (e.g., cancelling a paid invoice) fails with
    the current and requested state in context.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Invalid state transition"


class InvoiceNotMutableError(InvalidStateTransitionError):
    """
    Raised when editing an invoice that is no longer editable.

    WHY: Once an invoice has been viewed, paid into, or cancelled, its
    line items and amounts are a financial record and cannot change.

    HTTP Status: 400 Bad Request
    """

    default_message = "Invoice can no longer be edited"


# ============================================================================
# Concurrency Exceptions
# ============================================================================


class ConcurrentModificationError(AppException):
    """
    Raised when a write is based on a stale version of an invoice.

    WHY: 409 Conflict tells the caller to reload the invoice and retry
    against the latest state instead of overwriting someone else's change.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Invoice was modified concurrently, reload and retry"
