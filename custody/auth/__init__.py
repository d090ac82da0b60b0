"""
Authentication Module
=====================

JWT bearer tokens as the identity/session provider.

Usage:
    from custody.auth import create_access_token, get_current_principal

    token = create_access_token({"sub": "0xabc...", "role": "investigator"})

    @router.get("/evidence")
    async def list_evidence(principal: Principal = Depends(get_current_principal)):
        ...
"""

from custody.auth.dependencies import get_current_principal, oauth2_scheme, require_roles
from custody.auth.jwt import TokenData, create_access_token, decode_token

__all__ = [
    # JWT
    "create_access_token",
    "decode_token",
    "TokenData",
    # Dependencies
    "get_current_principal",
    "require_roles",
    "oauth2_scheme",
]
