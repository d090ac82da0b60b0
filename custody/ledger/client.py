"""
Ledger Client Interface
=======================

Abstract base class and models for the append-only evidence ledger.

The engine only needs a write-once hash register, an append-only event
log and a readable current state per evidence id. Any store offering
that contract (an in-memory mock, a hash-chained journal, a smart
contract) can be plugged in.

Version: 0.1.0
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from custody.config import LedgerMode, settings
from custody.logging import get_logger
from custody.models.evidence import EvidenceState

logger = get_logger(__name__)


class LedgerRole(str, Enum):
    """On-ledger role grants that permission evidence registration."""

    INVESTIGATOR_ROLE = "INVESTIGATOR_ROLE"
    JUDGE_ROLE = "JUDGE_ROLE"


class LedgerAction(str, Enum):
    """Event kinds recorded in a ledger history."""

    REGISTERED = "REGISTERED"
    TRANSFERRED = "TRANSFERRED"
    STATE_CHANGED = "STATE_CHANGED"
    CUSTOM = "CUSTOM"
    DELETED = "DELETED"


class LedgerReceipt(BaseModel):
    """Confirmation of a ledger write."""

    tx_hash: str = Field(..., description="Ledger transaction reference")
    block_number: int
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class LedgerEvidence(BaseModel):
    """Current on-ledger view of one evidence id."""

    evidence_id: str
    content_hash: str
    registrant: str
    current_holder: str
    state: EvidenceState = EvidenceState.ACTIVE
    created_at: datetime


class LedgerEvent(BaseModel):
    """One entry of an evidence id's ledger history."""

    evidence_id: str
    actor: str
    action: LedgerAction
    detail: str | None = None
    timestamp: datetime
    tx_hash: str
    block_number: int


class LedgerClient(ABC):
    """
    Abstract base class for ledger clients.

    Implementations raise ``DuplicateId`` when an id is registered twice,
    ``NotFound`` for events on unregistered ids and ``LedgerUnavailable``
    when the backing store cannot be reached.
    """

    @property
    @abstractmethod
    def mode(self) -> LedgerMode:
        """Get the ledger mode."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Connect to (or load) the ledger."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Release ledger resources."""
        ...

    @abstractmethod
    async def health_check(self) -> dict[str, Any]:
        """Check ledger health."""
        ...

    # =========================================================================
    # Evidence register
    # =========================================================================

    @abstractmethod
    async def register_evidence(
        self,
        evidence_id: str,
        content_hash: str,
        registrant: str,
    ) -> LedgerReceipt:
        """
        Write the evidence hash once.

        Args:
            evidence_id: Evidence identifier
            content_hash: Normalized SHA-256 hex digest
            registrant: Identity registering the evidence (first holder)

        Returns:
            LedgerReceipt once the write is confirmed
        """
        ...

    @abstractmethod
    async def get_evidence(self, evidence_id: str) -> LedgerEvidence | None:
        """
        Read the current on-ledger state of an evidence id.

        Returns:
            LedgerEvidence or None if never registered
        """
        ...

    # =========================================================================
    # Custody events
    # =========================================================================

    @abstractmethod
    async def transfer_custody(
        self,
        evidence_id: str,
        new_holder: str,
        actor: str,
    ) -> LedgerReceipt:
        """Record a custody transfer and move the on-ledger holder."""
        ...

    @abstractmethod
    async def update_state(
        self,
        evidence_id: str,
        state: EvidenceState,
        actor: str,
    ) -> LedgerReceipt:
        """Record a lifecycle state change."""
        ...

    @abstractmethod
    async def append_event(
        self,
        evidence_id: str,
        actor: str,
        action: LedgerAction,
        detail: str | None = None,
    ) -> LedgerReceipt:
        """Append a free-form event to an evidence history."""
        ...

    @abstractmethod
    async def get_history(self, evidence_id: str) -> list[LedgerEvent]:
        """
        Get the event history of an evidence id.

        Returns:
            Events, oldest first; empty if the id is unknown
        """
        ...

    @abstractmethod
    async def get_evidence_by_holder(self, holder: str) -> list[str]:
        """Evidence ids whose on-ledger holder is ``holder``."""
        ...

    # =========================================================================
    # Role grants
    # =========================================================================

    @abstractmethod
    async def grant_role(self, account: str, role: LedgerRole) -> LedgerReceipt:
        """Grant an on-ledger role to an account."""
        ...

    @abstractmethod
    async def revoke_role(self, account: str, role: LedgerRole) -> LedgerReceipt:
        """Revoke an on-ledger role from an account."""
        ...

    @abstractmethod
    async def has_role(self, account: str, role: LedgerRole) -> bool:
        """Check an on-ledger role grant."""
        ...

    async def is_permissioned(self, account: str) -> bool:
        """True if the account holds any registration-permitting grant."""
        for role in LedgerRole:
            if await self.has_role(account, role):
                return True
        return False


# Global client instance
_client: LedgerClient | None = None


def get_ledger_client() -> LedgerClient:
    """
    Get the configured ledger client instance.

    Returns:
        LedgerClient instance based on settings
    """
    global _client

    if _client is None:
        mode = settings.ledger.mode

        if mode == LedgerMode.MOCK:
            from custody.ledger.mock import MockLedgerClient

            _client = MockLedgerClient()
        elif mode == LedgerMode.JOURNAL:
            from custody.ledger.journal import JournalLedgerClient

            _client = JournalLedgerClient(settings.ledger.journal_path)
        else:
            raise ValueError(f"Unknown ledger mode: {mode}")

        logger.info(
            "ledger_client_initialized",
            mode=mode.value,
        )

    return _client


def set_ledger_client(client: LedgerClient) -> None:
    """
    Set a custom ledger client.

    Args:
        client: LedgerClient instance
    """
    global _client
    _client = client
    logger.info(
        "ledger_client_set",
        mode=client.mode.value,
    )


def reset_ledger_client() -> None:
    """Reset the client to be re-initialized."""
    global _client
    _client = None
