"""
Core Application - Infrastructure & Base Classes

Generic, reusable building blocks shared by the authentication and chat
apps. Nothing in here knows about conversations or messages.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - SoftDeleteMixin: Soft delete support (is_deleted, deleted_at)

Services (import from core.services):
    - BaseService: Logger, transaction and id-parsing helpers for services

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes and HTTP status
    - ValidationError, NotFoundError, PermissionDeniedError,
      AuthenticationError, ConflictError, RateLimitError,
      ExternalServiceError
    - api_exception_handler: DRF EXCEPTION_HANDLER rendering the above

Views (import from core.views):
    - health_check: Liveness/readiness endpoint
"""
