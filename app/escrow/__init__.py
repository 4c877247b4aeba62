"""
Escrow app for campaign funding.

This app handles:
- Authorizing a brand's payment hold for a campaign
- Confirming funding and releasing the net amount to an influencer
- Refunding the brand and diverting a hold into dispute
- Reconciling local holds with the payment provider
- Stripe webhook intake

Related apps:
    - campaigns: Campaign and Application records mirrored by entity sync
    - authentication: User model with brand/influencer/admin roles

Usage:
    from escrow.adapters import StripeEscrowGateway
    from escrow.services import EscrowService

    service = EscrowService(gateway=StripeEscrowGateway())
    result = service.create_escrow_account(campaign_id, caller=user, amount="1000.00")
"""
