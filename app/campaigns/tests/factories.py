"""
Factory Boy factories for campaign test data.

Usage:
    from campaigns.tests.factories import ApplicationFactory, CampaignFactory

    campaign = CampaignFactory(brand=brand)
    application = ApplicationFactory(campaign=campaign, influencer=influencer)
"""

from decimal import Decimal

import factory

from authentication.tests.factories import BrandFactory, InfluencerFactory
from campaigns.models import Application, ApplicationStatus, Campaign, CampaignStatus


class CampaignFactory(factory.django.DjangoModelFactory):
    """
    Factory for Campaign instances.

    Default creates a DRAFT campaign with no escrow attached.
    """

    class Meta:
        model = Campaign

    brand = factory.SubFactory(BrandFactory)
    title = factory.Sequence(lambda n: f"Campaign {n}")
    budget = Decimal("1000.00")
    currency = "usd"
    status = CampaignStatus.DRAFT


class ApplicationFactory(factory.django.DjangoModelFactory):
    """
    Factory for Application instances.

    Default creates an APPROVED application, which is payable.
    """

    class Meta:
        model = Application

    campaign = factory.SubFactory(CampaignFactory)
    influencer = factory.SubFactory(InfluencerFactory)
    status = ApplicationStatus.APPROVED
