"""
Permission classes built on the marketplace role.

- IsPlatformAdmin: operator-only endpoints (reconciliation)

Ownership checks (campaign brand, applying influencer) are object-level
business rules and live in the escrow services, not here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsPlatformAdmin(permissions.BasePermission):
    """Allows access only to users with the admin role (or superusers)."""

    message = "Platform admin access required."

    def has_permission(self, request: Request, view: APIView) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and user.is_platform_admin)
