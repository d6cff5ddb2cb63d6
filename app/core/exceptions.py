"""
Base exception classes for application-wide error handling.

This module provides a standardized exception hierarchy that enables:
- Consistent error responses across the REST API and the WebSocket gateway
- Machine-readable error codes for client handling
- Detailed error information for debugging

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input validation failures
    ├── NotFoundError - Resource not found
    ├── PermissionDeniedError - Authorization failures
    ├── AuthenticationError - Missing or invalid credentials
    ├── ConflictError - State conflicts (duplicates, concurrent modifications)
    ├── RateLimitError - Rate limit exceeded
    └── ExternalServiceError - Third-party service failures

Usage:
    from core.exceptions import ValidationError, NotFoundError

    # Raise with message only
    raise ValidationError("Invalid email format")

    # Raise with error code for client handling
    raise ValidationError("Email already exists", error_code="EMAIL_DUPLICATE")

    # Raise with additional details
    raise ValidationError(
        "Validation failed",
        error_code="VALIDATION_ERROR",
        details={"email": ["Invalid format"], "password": ["Too short"]}
    )

REST views do not catch these: api_exception_handler (configured as DRF's
EXCEPTION_HANDLER) renders them with the status from get_status_code().
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Provides a consistent interface for error handling across the REST API
    and the realtime gateway. All custom exceptions should inherit from this
    class.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, metadata, etc.)
        status_code: HTTP status used when rendered by the REST API

    Example:
        try:
            conversation = ConversationService.get(conversation_id)
        except NotFoundError as e:
            logger.warning(f"Conversation not found: {e.error_code}")
    """

    default_error_code: str = "APPLICATION_ERROR"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Returns:
            Dict with error, error_code, and details keys

        Example:
            {
                "error": "Conversation not found",
                "error_code": "CONVERSATION_NOT_FOUND",
                "details": {"conversation_id": "6f1c..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for:
    - Malformed identifiers
    - Over-length or empty message content
    - Unknown enum values (message type, conversation kind)
    - Business rule violations (talking to yourself)

    Example:
        raise ValidationError(
            "Message content cannot exceed 1000 characters",
            error_code="CONTENT_TOO_LONG",
            details={"max_length": 1000, "length": len(content)}
        )

    Note:
        For request-shape validation, use DRF serializers.
        Use this for service-layer validation logic.
    """

    default_error_code: str = "VALIDATION_ERROR"
    status_code: int = status.HTTP_400_BAD_REQUEST


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Example:
        conversation = Conversation.objects.filter(id=conversation_id).first()
        if not conversation:
            raise NotFoundError(
                "Conversation not found",
                error_code="CONVERSATION_NOT_FOUND",
                details={"conversation_id": str(conversation_id)}
            )
    """

    default_error_code: str = "NOT_FOUND"
    status_code: int = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller is authenticated but not allowed to act.

    Use for:
    - Access to a conversation the caller does not participate in
    - Sending into a conversation blocked by the other participant
    - Deleting someone else's message

    Note:
        For missing or invalid credentials use AuthenticationError.
    """

    default_error_code: str = "PERMISSION_DENIED"
    status_code: int = status.HTTP_403_FORBIDDEN


class AuthenticationError(BaseApplicationError):
    """
    Raised when a credential is missing, malformed, expired or revoked.

    The WebSocket handshake raises this from token verification; REST
    requests normally fail earlier inside DRF's JWTAuthentication.

    Example:
        raise AuthenticationError("Token is expired", error_code="TOKEN_EXPIRED")
    """

    default_error_code: str = "AUTHENTICATION_FAILED"
    status_code: int = status.HTTP_401_UNAUTHORIZED


class ConflictError(BaseApplicationError):
    """
    Raised when operation conflicts with current resource state.

    Use for:
    - Unique constraint violations
    - Concurrent modification conflicts
    - Invalid state transitions

    Note:
        HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"
    status_code: int = status.HTTP_409_CONFLICT


class RateLimitError(BaseApplicationError):
    """
    Raised when rate limit is exceeded.

    Note:
        Include retry_after in details when possible to help clients.
    """

    default_error_code: str = "RATE_LIMIT_EXCEEDED"
    status_code: int = status.HTTP_429_TOO_MANY_REQUESTS


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails (Redis, broker).

    Note:
        Log the original error for debugging but don't expose
        internal details to clients.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    status_code: int = status.HTTP_502_BAD_GATEWAY


INTERNAL_ERROR_BODY: dict[str, str] = {
    "error": "Internal server error",
    "error_code": "INTERNAL_ERROR",
}


def api_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    """
    DRF exception handler rendering application errors as typed responses.

    Resolution order:
        1. BaseApplicationError subclasses with a 4xx status render to_dict()
        2. DRF's own exceptions (serializer validation, auth, throttling)
           keep DRF's default rendering
        3. Anything else, including application errors mapped to 5xx, is
           logged with traceback and rendered without internal detail

    Configured in settings:
        REST_FRAMEWORK = {
            "EXCEPTION_HANDLER": "core.exceptions.api_exception_handler",
        }
    """
    if isinstance(exc, BaseApplicationError) and exc.status_code < 500:
        return Response(exc.to_dict(), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is not None:
        return response

    view = context.get("view")
    logger.exception(
        "Unhandled error in %s: %r",
        view.__class__.__name__ if view is not None else "unknown view",
        exc,
    )
    return Response(
        dict(INTERNAL_ERROR_BODY),
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
