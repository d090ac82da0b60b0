"""
Custody Models
==============

Pydantic models shared by the engine, the storage layer and the service.
"""

from custody.models.common import BaseResponse, ErrorResponse, HealthResponse
from custody.models.evidence import (
    ContentKind,
    CustodyAction,
    CustodyLogEntry,
    EvidenceRecord,
    EvidenceState,
    EvidenceType,
    TransferType,
)
from custody.models.identity import (
    RESERVED_TRANSFER_ROLES,
    Identity,
    Principal,
    Role,
    default_display_name,
    normalize_identity,
)

__all__ = [
    # Common
    "BaseResponse",
    "ErrorResponse",
    "HealthResponse",
    # Evidence
    "ContentKind",
    "CustodyAction",
    "CustodyLogEntry",
    "EvidenceRecord",
    "EvidenceState",
    "EvidenceType",
    "TransferType",
    # Identity
    "RESERVED_TRANSFER_ROLES",
    "Identity",
    "Principal",
    "Role",
    "default_display_name",
    "normalize_identity",
]
