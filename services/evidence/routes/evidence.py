"""
Evidence Routes
===============

Intake, custody, viewing and integrity endpoints.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status
from pydantic import BaseModel, Field

from custody.auth import get_current_principal
from custody.engine import MutationResult
from custody.integrity import IntegrityReport
from custody.ledger import LedgerEvent
from custody.logging import get_logger
from custody.models import (
    BaseResponse,
    CustodyAction,
    CustodyLogEntry,
    EvidenceRecord,
    EvidenceState,
    Principal,
    TransferType,
)
from services.evidence.deps import ServiceContainer, get_container


logger = get_logger(__name__)
router = APIRouter()

PrincipalDep = Annotated[Principal, Depends(get_current_principal)]
ContainerDep = Annotated[ServiceContainer, Depends(get_container)]


# ============================================================================
# Request Models
# ============================================================================


class TransferRequest(BaseModel):
    """Request to hand custody to another identity."""

    new_holder: str = Field(..., description="Wallet address of the new holder")
    role: str | None = Field(None, description="Role to assign to the new holder")
    transfer_type: TransferType = TransferType.FULL_CUSTODY
    display_name: str | None = None


class StateChangeRequest(BaseModel):
    """Request to move evidence along its lifecycle."""

    state: EvidenceState


class CustomActionRequest(BaseModel):
    """Request to record a free-form custody action."""

    label: str = Field(..., min_length=1, description="Action name, e.g. 'lab-analysis'")
    details: dict[str, Any] | None = None


def _mutation_response(result: MutationResult, message: str) -> BaseResponse[MutationResult]:
    return BaseResponse(data=result, message=message, warnings=result.warnings)


# ============================================================================
# Intake
# ============================================================================


@router.post(
    "/",
    response_model=BaseResponse[EvidenceRecord],
    status_code=status.HTTP_201_CREATED,
)
async def upload_evidence(
    principal: PrincipalDep,
    container: ContainerDep,
    file: Annotated[UploadFile, File(description="Evidence file")],
    evidence_id: Annotated[str, Form(description="Unique evidence identifier")],
    evidence_type: Annotated[str, Form()] = "other",
) -> BaseResponse[EvidenceRecord]:
    """
    Register a new piece of evidence.

    The file is hashed, stored, anchored on the ledger and then recorded
    with the caller as uploader and first holder.
    """
    payload = await file.read()
    logger.info(
        "evidence_upload_received",
        evidence_id=evidence_id,
        uploader=principal.identity,
        size=len(payload),
    )

    record = await container.engine.submit(
        payload,
        evidence_id,
        principal,
        evidence_type=evidence_type,
        file_name=file.filename,
        mime_type=file.content_type,
    )
    return BaseResponse(data=record, message="Evidence uploaded and registered on the ledger")


# ============================================================================
# Reads
# ============================================================================


@router.get("/", response_model=BaseResponse[list[EvidenceRecord]])
async def list_evidence(principal: PrincipalDep, container: ContainerDep) -> BaseResponse[list[EvidenceRecord]]:
    """List every evidence record the caller may view, newest first."""
    records = await container.engine.list_visible(principal)
    return BaseResponse(data=records)


@router.get("/{evidence_id}", response_model=BaseResponse[EvidenceRecord])
async def get_evidence(
    evidence_id: str,
    principal: PrincipalDep,
    container: ContainerDep,
) -> BaseResponse[EvidenceRecord]:
    record = await container.engine.describe(evidence_id, principal)
    return BaseResponse(data=record)


@router.get("/{evidence_id}/file")
async def view_evidence_file(
    evidence_id: str,
    principal: PrincipalDep,
    container: ContainerDep,
) -> Response:
    """Stream the evidence bytes. Every successful read is logged as 'viewed'."""
    record, data = await container.engine.open_payload(evidence_id, principal)
    headers = {}
    if record.file_name:
        headers["Content-Disposition"] = f'inline; filename="{record.file_name}"'
    return Response(
        content=data,
        media_type=record.mime_type or "application/octet-stream",
        headers=headers,
    )


@router.get("/{evidence_id}/logs", response_model=BaseResponse[list[CustodyLogEntry]])
async def get_custody_log(
    evidence_id: str,
    principal: PrincipalDep,
    container: ContainerDep,
) -> BaseResponse[list[CustodyLogEntry]]:
    entries = await container.engine.custody_log(evidence_id, principal)
    return BaseResponse(data=entries)


@router.get("/{evidence_id}/history", response_model=BaseResponse[list[LedgerEvent]])
async def get_ledger_history(
    evidence_id: str,
    principal: PrincipalDep,
    container: ContainerDep,
) -> BaseResponse[list[LedgerEvent]]:
    """On-ledger custody history, oldest first."""
    events = await container.engine.ledger_history(evidence_id, principal)
    return BaseResponse(data=events)


# ============================================================================
# Custody
# ============================================================================


@router.post("/{evidence_id}/transfer", response_model=BaseResponse[MutationResult])
async def transfer_custody(
    evidence_id: str,
    request: TransferRequest,
    principal: PrincipalDep,
    container: ContainerDep,
) -> BaseResponse[MutationResult]:
    result = await container.engine.transfer(
        evidence_id,
        request.new_holder,
        principal,
        new_role=request.role,
        transfer_type=request.transfer_type,
        display_name=request.display_name,
    )
    return _mutation_response(result, "Custody transferred")


@router.post("/{evidence_id}/state", response_model=BaseResponse[MutationResult])
async def change_state(
    evidence_id: str,
    request: StateChangeRequest,
    principal: PrincipalDep,
    container: ContainerDep,
) -> BaseResponse[MutationResult]:
    result = await container.engine.change_state(evidence_id, request.state, principal)
    return _mutation_response(result, f"Evidence state changed to {request.state.value}")


@router.post("/{evidence_id}/actions", response_model=BaseResponse[MutationResult])
async def log_custom_action(
    evidence_id: str,
    request: CustomActionRequest,
    principal: PrincipalDep,
    container: ContainerDep,
) -> BaseResponse[MutationResult]:
    result = await container.engine.log_custom_action(evidence_id, principal, request.label, request.details)
    return _mutation_response(result, "Action recorded")


@router.delete("/{evidence_id}", response_model=BaseResponse[MutationResult])
async def delete_evidence(
    evidence_id: str,
    principal: PrincipalDep,
    container: ContainerDep,
) -> BaseResponse[MutationResult]:
    result = await container.engine.delete(evidence_id, principal)
    return _mutation_response(result, "Evidence deleted")


# ============================================================================
# Integrity
# ============================================================================


@router.get("/{evidence_id}/integrity", response_model=BaseResponse[IntegrityReport])
async def verify_integrity(
    evidence_id: str,
    principal: PrincipalDep,
    container: ContainerDep,
) -> BaseResponse[IntegrityReport]:
    """Recompute the stored file's hash and compare it with the registered one."""
    await container.engine.describe(evidence_id, principal)
    report = await container.verifier.verify(evidence_id)
    await container.engine.record_access(
        evidence_id,
        principal,
        CustodyAction.VIEWED,
        {"purpose": "integrity_verification", "status": report.status.value},
    )
    return BaseResponse(data=report)


@router.post("/{evidence_id}/verify-copy", response_model=BaseResponse[IntegrityReport])
async def verify_copy(
    evidence_id: str,
    principal: PrincipalDep,
    container: ContainerDep,
    file: Annotated[UploadFile, File(description="Copy of the evidence to check")],
) -> BaseResponse[IntegrityReport]:
    """Check a caller-supplied copy against the registered hash."""
    await container.engine.describe(evidence_id, principal)
    report = await container.verifier.verify_payload(evidence_id, await file.read())
    return BaseResponse(data=report)
