"""
Application error hierarchy.

Every domain failure carries a stable error_code that API clients switch
on, plus an optional details dict for context (ids, amounts, statuses).
Service boundaries convert these into ServiceResult failures; nothing in
this hierarchy is HTTP-aware.

Hierarchy:
    BaseApplicationError
    ├── ValidationError        VALIDATION_ERROR
    ├── NotFoundError          NOT_FOUND
    ├── PermissionDeniedError  PERMISSION_DENIED
    ├── ConflictError          CONFLICT
    └── ExternalServiceError   EXTERNAL_SERVICE_ERROR

Subclasses narrow the code by overriding default_error_code, or a raise
site passes error_code explicitly:

    raise NotFoundError(
        f"Campaign {campaign_id} not found",
        error_code="CAMPAIGN_NOT_FOUND",
        details={"campaign_id": str(campaign_id)},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Root of the application's error types.

    Attributes:
        message: Human-readable description, safe to show to API clients
        error_code: Stable machine-readable code
        details: Structured context for the failure
    """

    default_error_code: str = "APPLICATION_ERROR"

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
        payload: dict[str, Any] = {"error": self.message, "error_code": self.error_code}
        if self.details:
            payload["details"] = self.details
        return payload

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ValidationError(BaseApplicationError):
    """Bad input detected before any side effect (amounts, currencies, enum values)."""

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    default_error_code: str = "NOT_FOUND"


class PermissionDeniedError(BaseApplicationError):
    """
    Caller is authenticated but does not own the resource or lacks the role.

    Missing or invalid credentials are DRF's concern (NotAuthenticated).
    """

    default_error_code: str = "PERMISSION_DENIED"


class ConflictError(BaseApplicationError):
    """The resource is not in a state that allows the operation, or changed underneath it."""

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """A third-party dependency (payment provider, broker) failed or gave no answer."""

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
