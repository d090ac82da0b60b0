"""
JWT Token Management
====================

Session tokens carrying the caller's identity and role.

The ``sub`` claim is the wallet address / account id; ``role`` is one
of the handler roles. Issuance is the identity provider's job; this
service only decodes and trusts the binding.

Version: 0.1.0
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt
from pydantic import BaseModel, Field

from custody.config import settings
from custody.logging import get_logger


logger = get_logger(__name__)


class TokenData(BaseModel):
    """Decoded JWT token payload."""

    sub: str = Field(..., description="Subject (wallet address)")
    role: str = Field(..., description="Handler role")
    exp: datetime = Field(..., description="Expiration time")
    iat: datetime = Field(default_factory=lambda: datetime.now(UTC), description="Issued at")
    token_type: str = Field(default="access", description="Token type")

    display_name: str | None = None


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Payload data (must include 'sub' and 'role')
        expires_delta: Custom expiration time (default from settings)

    Returns:
        str: Encoded JWT token
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(UTC) + expires_delta
    else:
        expire = datetime.now(UTC) + timedelta(minutes=settings.jwt.access_token_expire_minutes)

    to_encode.update(
        {
            "exp": expire,
            "iat": datetime.now(UTC),
            "token_type": "access",
        }
    )

    encoded_jwt = jwt.encode(
        to_encode,
        settings.jwt.secret_key.get_secret_value(),
        algorithm=settings.jwt.algorithm,
    )

    logger.debug(
        "access_token_created",
        sub=data.get("sub"),
        role=data.get("role"),
        expires_at=expire.isoformat(),
    )

    return encoded_jwt


def decode_token(token: str) -> TokenData | None:
    """
    Decode and validate an access token.

    Returns:
        TokenData, or None if the token is invalid, expired or not an
        access token
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt.secret_key.get_secret_value(),
            algorithms=[settings.jwt.algorithm],
        )
    except JWTError as e:
        logger.warning("token_decode_failed", error=str(e))
        return None

    if payload.get("token_type") != "access":
        logger.warning("token_type_mismatch", actual=payload.get("token_type"))
        return None

    if not payload.get("sub") or not payload.get("role"):
        logger.warning("token_claims_missing", claims=sorted(payload))
        return None

    return TokenData(
        sub=payload["sub"],
        role=payload["role"],
        exp=datetime.fromtimestamp(payload["exp"], tz=UTC),
        iat=datetime.fromtimestamp(payload.get("iat", 0), tz=UTC),
        token_type=payload["token_type"],
        display_name=payload.get("display_name"),
    )
