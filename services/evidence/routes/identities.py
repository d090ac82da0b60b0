"""
Identity Routes
===============

Role registry administration.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from custody.auth import get_current_principal, require_roles
from custody.logging import get_logger
from custody.models import BaseResponse, Identity, Principal, Role
from services.evidence.deps import ServiceContainer, get_container


logger = get_logger(__name__)
router = APIRouter()

PrincipalDep = Annotated[Principal, Depends(get_current_principal)]
AdministratorDep = Annotated[Principal, Depends(require_roles(Role.SUPERADMIN, Role.JUDGE))]
ContainerDep = Annotated[ServiceContainer, Depends(get_container)]


class AssignRoleRequest(BaseModel):
    """Request to register an identity or change its role."""

    role: str = Field(..., description="superadmin, judge, investigator or viewer")
    display_name: str | None = None


@router.get("/", response_model=BaseResponse[list[Identity]])
async def list_identities(principal: AdministratorDep, container: ContainerDep) -> BaseResponse[list[Identity]]:
    identities = await container.engine.identities.list()
    return BaseResponse(data=identities)


@router.get("/me", response_model=BaseResponse[Identity])
async def get_own_identity(principal: PrincipalDep, container: ContainerDep) -> BaseResponse[Identity]:
    """The caller's registry entry, or the token's binding if unregistered."""
    identity = await container.engine.identities.find(principal.identity)
    if identity is None:
        identity = Identity(
            wallet_address=principal.identity,
            role=principal.role,
            display_name=principal.display_name,
        )
    return BaseResponse(data=identity)


@router.get("/{wallet_address}", response_model=BaseResponse[Identity])
async def get_identity(
    wallet_address: str,
    principal: AdministratorDep,
    container: ContainerDep,
) -> BaseResponse[Identity]:
    identity = await container.engine.identities.get(wallet_address)
    return BaseResponse(data=identity)


@router.put("/{wallet_address}", response_model=BaseResponse[Identity])
async def assign_role(
    wallet_address: str,
    request: AssignRoleRequest,
    principal: PrincipalDep,
    container: ContainerDep,
) -> BaseResponse[Identity]:
    identity = await container.engine.identities.assign_role(
        principal,
        wallet_address,
        request.role,
        display_name=request.display_name,
    )
    return BaseResponse(data=identity, message=f"Role set to {identity.role.value}")


@router.delete("/{wallet_address}", response_model=BaseResponse[None])
async def remove_identity(
    wallet_address: str,
    principal: PrincipalDep,
    container: ContainerDep,
) -> BaseResponse[None]:
    await container.engine.identities.remove(principal, wallet_address)
    return BaseResponse(message="Identity removed")
