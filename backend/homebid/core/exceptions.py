"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. Consistent error handling across the API
2. HTTP status code mapping for FastAPI
3. Structured error responses with contextual data
4. No sensitive data leaks in error messages (OWASP A04)

Every proposal-lifecycle failure is a typed exception with a stable
``error`` name in the JSON body, so callers can branch on it instead of
parsing messages.

IMPORTANT: NEVER use base Exception class. Always use custom exceptions.
"""

from typing import Any, Dict, List, Optional


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
        # WHY: Filter out sensitive fields to prevent data leaks
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
# Authentication & Authorization Exceptions (OWASP A07)
# ============================================================================


class AuthenticationError(AppException):
    """
    Raised when the bearer token cannot be trusted.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    default_message = "Authentication failed"


class AuthorizationError(AppException):
    """
    Raised when the principal lacks the role or ownership for an action.

    WHY: This is the "Forbidden" outcome of every proposal operation:
    a contractor editing someone else's proposal, a homeowner accepting a
    proposal on a project they did not create, and so on. No mutation
    happens before it is raised.

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    default_message = "You do not have permission to perform this action"


class TokenExpiredError(AuthenticationError):
    """
    Raised when JWT token has expired.

    HTTP Status: 401 Unauthorized
    """

    default_message = "Token has expired"


class TokenInvalidError(AuthenticationError):
    """
    Raised when JWT token is malformed, has an invalid signature, or
    lacks the claims we need (user_id, role).

    HTTP Status: 401 Unauthorized
    """

    default_message = "Token is invalid"


# ============================================================================
# Validation & Input Exceptions
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    WHY: Temporal and financial rule violations are collected and returned
    together under ``details.violations`` so the caller can show each one
    against the offending field. Nothing is persisted when this is raised.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        violations: Optional[List[Dict[str, Any]]] = None,
        **context: Any,
    ):
        if violations is not None:
            context["violations"] = violations
        super().__init__(message, **context)
        self.violations = violations or []


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class ResourceAlreadyExistsError(AppException):
    """
    Raised when attempting to create a resource that already exists.

    WHY: A contractor may hold only one active proposal per project;
    a second submission is a conflict, not a validation problem.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Resource already exists"


class ProjectNotFoundError(ResourceNotFoundError):
    """Raised when a project doesn't exist."""

    default_message = "Project not found"


class ProposalNotFoundError(ResourceNotFoundError):
    """Raised when a proposal doesn't exist or has been soft-deleted."""

    default_message = "Proposal not found"


class AcceptanceOperationNotFoundError(ResourceNotFoundError):
    """Raised when an acceptance operation id is unknown."""

    default_message = "Acceptance operation not found"


# ============================================================================
# Business Logic Exceptions
# ============================================================================


class BusinessRuleViolation(AppException):
    """
    Raised when a business rule is violated.

    HTTP Status: 422 Unprocessable Entity
    """

    status_code = 422
    default_message = "Business rule violation"


class InvalidStateTransitionError(BusinessRuleViolation):
    """
    Raised when an invalid state transition is attempted.

    WHY: Proposal and project statuses follow fixed transition tables.
    Leaving a terminal state, using a role that may not trigger an edge,
    or accepting a second proposal on an awarded project all end here,
    with ``current_state`` and ``requested_state`` in the details.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Invalid state transition"


class ProposalNotEditableError(BusinessRuleViolation):
    """
    Raised when proposal content is edited outside draft/submitted.

    WHY: Once the homeowner has viewed a proposal (or it reached a
    terminal state) its terms are frozen; changing them would alter an
    offer the homeowner already evaluated.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Proposal can no longer be edited"


class ConcurrentModificationError(AppException):
    """
    Raised when an optimistic version check fails.

    WHY: A project row is written both by its homeowner and by the
    acceptance cascade. A stale write must fail instead of clobbering the
    other writer's change.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Resource was modified concurrently, reload and retry"


class PartialAcceptanceFailure(AppException):
    """
    Raised when an acceptance cascade applied some steps but not all.

    WHY: The target proposal is committed as accepted before siblings are
    rejected, so a failure later in the cascade leaves the project
    transiently inconsistent. This error names the operation id, the
    failed step and exactly which proposals were and were not updated,
    so the caller can resume the operation or escalate. It must never be
    rendered as a success.

    HTTP Status: 500 Internal Server Error
    """

    status_code = 500
    default_message = "Proposal acceptance partially applied"


# ============================================================================
# External Service Exceptions (OWASP A08: Software Integrity)
# ============================================================================


class ExternalServiceError(AppException):
    """
    Base exception for external service failures.

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "External service error"


class FileStorageError(ExternalServiceError):
    """
    Raised when S3/object storage operations fail.

    HTTP Status: 502 Bad Gateway
    """

    default_message = "File storage error"


class AttachmentTooLargeError(ValidationError):
    """Raised when an uploaded attachment exceeds the configured size limit."""

    default_message = "Attachment exceeds maximum allowed size"


# ============================================================================
# Audit Log Exceptions (OWASP A09: Security Logging)
# ============================================================================


class AuditLogImmutableError(AppException):
    """
    Raised when attempting to update or delete an audit log.

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    default_message = "Audit logs are immutable and cannot be modified"
