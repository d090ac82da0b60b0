"""
Evidence Models
===============

Evidence records, lifecycle states and the append-only custody log.

Version: 0.1.0
"""

import re
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


_HEX_DIGEST = re.compile(r"^[0-9a-f]{64}$")


class EvidenceState(str, Enum):
    """Evidence lifecycle states."""

    ACTIVE = "Active"
    SEALED = "Sealed"
    ARCHIVED = "Archived"
    UNDER_REVIEW = "UnderReview"

    @property
    def is_terminal(self) -> bool:
        return self is EvidenceState.ARCHIVED

    def can_transition_to(self, target: "EvidenceState") -> bool:
        """
        Check a lifecycle edge.

        Archiving is allowed from every non-terminal state; the caller is
        responsible for restricting it to privileged roles.
        """
        if self.is_terminal:
            return False
        if target is EvidenceState.ARCHIVED:
            return True
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[EvidenceState, frozenset[EvidenceState]] = {
    EvidenceState.ACTIVE: frozenset({EvidenceState.SEALED, EvidenceState.UNDER_REVIEW}),
    EvidenceState.SEALED: frozenset({EvidenceState.ARCHIVED}),
    EvidenceState.UNDER_REVIEW: frozenset({EvidenceState.ACTIVE}),
    EvidenceState.ARCHIVED: frozenset(),
}


class ContentKind(str, Enum):
    """How payload bytes are canonicalized before hashing."""

    TEXT = "text"
    BINARY = "binary"


class EvidenceType(str, Enum):
    """Evidence categories; also selects the payload storage folder."""

    IMAGE = "image"
    PDF = "pdf"
    TEXT = "text"
    FINGERPRINT = "fingerprint"
    OTHER = "other"


class CustodyAction(str, Enum):
    """Custody log actions."""

    UPLOADED = "uploaded"
    VIEWED = "viewed"
    TRANSFERRED = "transferred"
    STATE_CHANGED = "state-changed"
    CUSTOM = "custom"


class TransferType(str, Enum):
    """What the new holder is expected to do with the evidence."""

    FULL_CUSTODY = "full_custody"
    VIEW_ONLY = "view_only"


class EvidenceRecord(BaseModel):
    """Mutable custody metadata for one registered evidence item."""

    evidence_id: str
    content_hash: str = Field(..., description="SHA-256, 64 lowercase hex chars")
    content_kind: ContentKind = ContentKind.BINARY
    evidence_type: EvidenceType = EvidenceType.OTHER
    file_name: str | None = None
    mime_type: str | None = None
    payload_locator: str | None = None

    uploaded_by: str
    current_holder: str
    previous_holders: list[str] = Field(default_factory=list)
    state: EvidenceState = EvidenceState.ACTIVE

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    blockchain_tx_hash: str | None = None

    @field_validator("content_hash")
    @classmethod
    def _check_digest(cls, v: str) -> str:
        if not _HEX_DIGEST.match(v):
            raise ValueError("content_hash must be 64 lowercase hex characters")
        return v

    def has_held(self, identity: str) -> bool:
        """True if ``identity`` holds or has ever held custody."""
        return identity == self.current_holder or identity in self.previous_holders


class CustodyLogEntry(BaseModel):
    """One append-only custody log row."""

    id: str = Field(default_factory=lambda: f"log:{uuid.uuid4()}")
    evidence_id: str
    actor: str
    action: CustodyAction
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] | None = None
