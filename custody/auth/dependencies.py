"""
FastAPI Authentication Dependencies
===================================

Resolves the calling ``Principal`` from a bearer token.

Version: 0.1.0
"""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from custody.auth.jwt import decode_token
from custody.errors import CustodyError
from custody.logging import get_logger
from custody.models.identity import Principal, Role


logger = get_logger(__name__)

# OAuth2 scheme for token extraction from Authorization header
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/auth/token",
    auto_error=False,
)


async def get_current_principal(
    token: Annotated[str | None, Depends(oauth2_scheme)],
) -> Principal:
    """
    Extract and validate the caller from a JWT token.

    Raises:
        HTTPException: 401 if the token is missing, invalid or names an
            unknown role
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if token is None:
        logger.warning("auth_token_missing")
        raise credentials_exception

    token_data = decode_token(token)
    if token_data is None:
        logger.warning("auth_token_invalid")
        raise credentials_exception

    try:
        principal = Principal(
            identity=token_data.sub,
            role=token_data.role,
            display_name=token_data.display_name,
        )
    except (CustodyError, ValueError) as e:
        logger.warning("auth_token_claims_rejected", sub=token_data.sub, error=str(e))
        raise credentials_exception from e

    logger.debug("principal_authenticated", identity=principal.identity, role=principal.role.value)
    return principal


def require_roles(*roles: Role) -> Callable[..., Awaitable[Principal]]:
    """
    Create a dependency that admits only the given roles.

    Usage:
        @router.post("/grants")
        async def grant(principal: Principal = Depends(require_roles(Role.SUPERADMIN))):
            ...
    """
    allowed = frozenset(roles)

    async def role_checker(
        principal: Annotated[Principal, Depends(get_current_principal)],
    ) -> Principal:
        if principal.role not in allowed:
            logger.warning(
                "insufficient_role",
                identity=principal.identity,
                role=principal.role.value,
                required_roles=[r.value for r in roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return role_checker
