"""
Authentication models.

This module defines the marketplace account model:
- User: Custom user model with email-based authentication and a
  marketplace role (brand, influencer, admin)

Related files:
    - managers.py: Custom user manager for email-based creation
    - permissions.py: DRF permission classes built on the role

Note:
    Session and token issuance are handled by djangorestframework-simplejwt;
    the escrow core only reads request.user and its role.
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager


class UserRole(models.TextChoices):
    """
    Marketplace role attached to every account.

    BRAND: Creates campaigns and funds escrow holds
    INFLUENCER: Applies to campaigns and receives released funds
    ADMIN: Platform operator (dispute resolution, reconciliation)
    """

    BRAND = "brand", "Brand"
    INFLUENCER = "influencer", "Influencer"
    ADMIN = "admin", "Admin"


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        role: Marketplace role (brand, influencer, admin)
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created
        updated_at: When the user record was last modified

    Usage:
        brand = User.objects.create_user(
            email="brand@example.com",
            password="securepassword",
            role=UserRole.BRAND,
        )
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.INFLUENCER,
        db_index=True,
        help_text="Marketplace role used for ownership and access checks",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    @property
    def is_brand(self) -> bool:
        return self.role == UserRole.BRAND

    @property
    def is_influencer(self) -> bool:
        return self.role == UserRole.INFLUENCER

    @property
    def is_platform_admin(self) -> bool:
        """Admins by role, plus Django superusers operating through the admin site."""
        return self.role == UserRole.ADMIN or self.is_superuser
