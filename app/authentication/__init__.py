"""
Authentication application.

Email-based user accounts with a marketplace role (brand, influencer or
admin). Token issuance is handled by simplejwt; escrow ownership checks
read the role from request.user.

Usage:
    from authentication.models import User, UserRole
    from authentication.permissions import IsPlatformAdmin
"""
