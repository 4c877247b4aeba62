"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps. No escrow or
campaign logic lives here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - VersionedMixin: Optimistic locking version counter

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError, NotFoundError, PermissionDeniedError,
      ConflictError, ExternalServiceError

Views (import from core.views):
    - health_check: Database connectivity probe
"""
