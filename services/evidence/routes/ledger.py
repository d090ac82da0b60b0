"""
Ledger Routes
=============

Ledger role grants and holder lookups.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from custody.auth import get_current_principal
from custody.config import settings
from custody.ledger import JournalLedgerClient, LedgerReceipt, LedgerRole
from custody.ledger.guard import guarded
from custody.logging import get_logger
from custody.models import BaseResponse, EvidenceRecord, Principal
from services.evidence.deps import ServiceContainer, get_container


logger = get_logger(__name__)
router = APIRouter()

PrincipalDep = Annotated[Principal, Depends(get_current_principal)]
ContainerDep = Annotated[ServiceContainer, Depends(get_container)]


class RoleGrantRequest(BaseModel):
    """Grant or revoke a ledger role."""

    account: str
    role: LedgerRole


class HolderResponse(BaseModel):
    """Evidence held by one identity, as seen locally and on the ledger."""

    holder: str
    ledger_evidence_ids: list[str]
    records: list[EvidenceRecord]


@router.post("/grants", response_model=BaseResponse[LedgerReceipt])
async def grant_role(
    request: RoleGrantRequest,
    principal: PrincipalDep,
    container: ContainerDep,
) -> BaseResponse[LedgerReceipt]:
    container.engine.authorization.require_ledger_admin(principal)
    receipt = await guarded(
        container.ledger.grant_role(request.account, request.role),
        "grant_role",
        settings.ledger.timeout_seconds,
    )
    logger.info("ledger_role_granted", account=request.account, role=request.role.value, actor=principal.identity)
    return BaseResponse(data=receipt, message=f"{request.role.value} granted")


@router.post("/grants/revoke", response_model=BaseResponse[LedgerReceipt])
async def revoke_role(
    request: RoleGrantRequest,
    principal: PrincipalDep,
    container: ContainerDep,
) -> BaseResponse[LedgerReceipt]:
    container.engine.authorization.require_ledger_admin(principal)
    receipt = await guarded(
        container.ledger.revoke_role(request.account, request.role),
        "revoke_role",
        settings.ledger.timeout_seconds,
    )
    logger.info("ledger_role_revoked", account=request.account, role=request.role.value, actor=principal.identity)
    return BaseResponse(data=receipt, message=f"{request.role.value} revoked")


@router.get("/grants/{account}", response_model=BaseResponse[list[LedgerRole]])
async def get_grants(
    account: str,
    principal: PrincipalDep,
    container: ContainerDep,
) -> BaseResponse[list[LedgerRole]]:
    roles = [
        role
        for role in LedgerRole
        if await guarded(container.ledger.has_role(account, role), "has_role", settings.ledger.timeout_seconds)
    ]
    return BaseResponse(data=roles)


@router.get("/holders/{holder}", response_model=BaseResponse[HolderResponse])
async def get_evidence_by_holder(
    holder: str,
    principal: PrincipalDep,
    container: ContainerDep,
) -> BaseResponse[HolderResponse]:
    ledger_ids = await guarded(
        container.ledger.get_evidence_by_holder(holder),
        "get_evidence_by_holder",
        settings.ledger.timeout_seconds,
    )
    records = [
        r
        for r in await container.engine.held_by(holder)
        if container.engine.authorization.can_view(principal, r)
    ]
    return BaseResponse(
        data=HolderResponse(holder=holder.lower(), ledger_evidence_ids=ledger_ids, records=records)
    )


@router.get("/journal/verify", response_model=BaseResponse[dict[str, Any]])
async def verify_journal(principal: PrincipalDep, container: ContainerDep) -> BaseResponse[dict[str, Any]]:
    """Re-check the hash chain of a journal-backed ledger."""
    container.engine.authorization.require_ledger_admin(principal)
    if not isinstance(container.ledger, JournalLedgerClient):
        return BaseResponse(
            data={"mode": container.ledger.mode.value},
            message="Ledger is not journal-backed",
        )
    ok, broken_at = await container.ledger.verify_chain()
    return BaseResponse(
        data={"intact": ok, "broken_at": broken_at, "head_hash": container.ledger.head_hash},
    )
