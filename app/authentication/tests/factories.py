"""
Factory Boy factories for authentication models.

Provides marketplace accounts for every role:
- UserFactory: Influencer by default
- BrandFactory: Campaign owners who fund escrow
- InfluencerFactory: Applicants who receive released funds
- AdminFactory: Platform operators

Usage:
    from authentication.tests.factories import BrandFactory, InfluencerFactory

    brand = BrandFactory()
    influencer = InfluencerFactory(email="creator@example.com")
"""

import factory

from authentication.models import User, UserRole


class UserFactory(factory.django.DjangoModelFactory):
    """
    Factory for User model.

    Examples:
        user = UserFactory()
        staff = UserFactory(is_staff=True)
        inactive = UserFactory(is_active=False)
    """

    class Meta:
        model = User
        skip_postgeneration_save = True

    email = factory.Sequence(lambda n: f"user{n}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")
    role = UserRole.INFLUENCER
    is_active = True


class BrandFactory(UserFactory):
    email = factory.Sequence(lambda n: f"brand{n}@example.com")
    role = UserRole.BRAND


class InfluencerFactory(UserFactory):
    email = factory.Sequence(lambda n: f"influencer{n}@example.com")
    role = UserRole.INFLUENCER


class AdminFactory(UserFactory):
    """Platform operator; not a Django superuser unless asked."""

    email = factory.Sequence(lambda n: f"ops{n}@example.com")
    role = UserRole.ADMIN
    is_staff = True
