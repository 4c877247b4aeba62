"""
Service layer primitives.

Business operations live in service classes, not in views or models.
A service returns a ServiceResult for outcomes the caller is expected to
handle (bad input, wrong state, declined card) and lets genuinely
unexpected exceptions propagate to its own boundary handler.

Usage:
    from core.services import BaseService, ServiceResult

    class PayoutService(BaseService):
        def __init__(self, gateway):
            self.gateway = gateway

        def pay(self, escrow_id: str) -> ServiceResult[dict]:
            try:
                with self.atomic():
                    ...
            except BaseApplicationError as e:
                return self.handle_exception(e, context="Payout failed")
            return ServiceResult.success({"escrow_id": escrow_id})

    # In a view
    result = PayoutService(gateway).pay(escrow_id)
    return Response(result.to_response(), status=200 if result.success else 409)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call.

    Exactly one of data (on success) or error/error_code (on failure) is
    meaningful. errors holds per-field messages from input validation;
    details holds structured context such as the hold's current status.
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)
    details: dict[str, Any] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
        details: dict[str, Any] | None = None,
    ) -> ServiceResult[T]:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
            details=details,
        )

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Build a failure from a caught exception.

        BaseApplicationError keeps its error_code and details. Other
        exceptions are named after their class unless error_code is given.
        """
        if isinstance(exc, BaseApplicationError):
            return cls.failure(
                exc.message,
                error_code=error_code or exc.error_code,
                details=exc.details or None,
            )
        return cls.failure(str(exc), error_code=error_code or type(exc).__name__.upper())

    def to_response(self) -> dict[str, Any]:
        """Serialize to the API envelope: {"success", "data"} or {"success", "error", ...}."""
        if self.success:
            return {"success": True, "data": self.data}

        body: dict[str, Any] = {"success": False, "error": self.error}
        for key in ("error_code", "errors", "details"):
            value = getattr(self, key)
            if value:
                body[key] = value
        return body

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Shared plumbing for service classes.

    Collaborators such as payment gateways are passed to __init__ so tests
    can hand in fakes. Loggers are named module.ClassName.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """Open a database transaction; marks the boundary explicitly in service code."""
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        log_level: int = logging.ERROR,
        extra: dict[str, Any] | None = None,
    ) -> ServiceResult:
        """
        Log exc and turn it into a failed ServiceResult.

        A traceback is attached only at ERROR and above; expected domain
        failures are logged at WARNING by the caller.
        """
        cls.get_logger().log(
            log_level,
            f"{context}: {exc}" if context else str(exc),
            extra=extra or {},
            exc_info=log_level >= logging.ERROR,
        )
        return ServiceResult.from_exception(exc)
