"""
Mock Ledger Client
==================

In-memory mock implementation for development and testing.

Version: 0.1.0
"""

import hashlib
import uuid
from datetime import UTC, datetime
from typing import Any

from custody.config import LedgerMode
from custody.errors import DuplicateId, LedgerUnavailable, NotFound
from custody.ledger.client import (
    LedgerAction,
    LedgerClient,
    LedgerEvent,
    LedgerEvidence,
    LedgerReceipt,
    LedgerRole,
)
from custody.logging import get_logger
from custody.models.evidence import EvidenceState

logger = get_logger(__name__)


class MockLedgerClient(LedgerClient):
    """
    In-memory mock ledger client.

    Simulates the evidence contract without any ledger infrastructure.
    Data is stored in memory and lost on restart.

    Outages can be simulated with ``set_available(False)`` or
    ``inject_failures(n)`` (the next ``n`` calls fail).
    """

    def __init__(self) -> None:
        """Initialize mock client with in-memory storage."""
        self._connected = False
        self._available = True
        self._pending_failures = 0
        self._block_number = 1000

        # In-memory storage
        self._evidence: dict[str, LedgerEvidence] = {}
        self._events: dict[str, list[LedgerEvent]] = {}
        self._grants: dict[str, set[LedgerRole]] = {}

        logger.debug("mock_ledger_initialized")

    @property
    def mode(self) -> LedgerMode:
        return LedgerMode.MOCK

    async def connect(self) -> None:
        """Simulate connection."""
        self._connected = True
        logger.info("mock_ledger_connected")

    async def disconnect(self) -> None:
        """Simulate disconnection."""
        self._connected = False
        logger.info("mock_ledger_disconnected")

    async def health_check(self) -> dict[str, Any]:
        """Check mock ledger health."""
        return {
            "status": "healthy" if self._available else "unhealthy",
            "mode": self.mode.value,
            "connected": self._connected,
            "block_number": self._block_number,
            "evidence": len(self._evidence),
        }

    def _check_available(self, operation: str) -> None:
        if self._pending_failures > 0:
            self._pending_failures -= 1
            raise LedgerUnavailable(f"Mock ledger failure during {operation}")
        if not self._available:
            raise LedgerUnavailable(f"Mock ledger unavailable during {operation}")

    def _generate_tx_hash(self) -> str:
        """Generate a mock transaction hash."""
        return "0x" + hashlib.sha256(uuid.uuid4().bytes).hexdigest()

    def _next_block(self) -> int:
        """Get next block number."""
        self._block_number += 1
        return self._block_number

    def _record(
        self,
        evidence_id: str,
        actor: str,
        action: LedgerAction,
        detail: str | None = None,
    ) -> LedgerReceipt:
        receipt = LedgerReceipt(
            tx_hash=self._generate_tx_hash(),
            block_number=self._next_block(),
        )
        self._events.setdefault(evidence_id, []).append(
            LedgerEvent(
                evidence_id=evidence_id,
                actor=actor,
                action=action,
                detail=detail,
                timestamp=receipt.timestamp,
                tx_hash=receipt.tx_hash,
                block_number=receipt.block_number,
            )
        )
        return receipt

    def _require(self, evidence_id: str) -> LedgerEvidence:
        if evidence_id not in self._evidence:
            raise NotFound(
                f"Evidence '{evidence_id}' is not registered on the ledger",
                details={"evidence_id": evidence_id},
            )
        return self._evidence[evidence_id]

    # =========================================================================
    # Evidence register
    # =========================================================================

    async def register_evidence(
        self,
        evidence_id: str,
        content_hash: str,
        registrant: str,
    ) -> LedgerReceipt:
        """Register an evidence hash."""
        self._check_available("register_evidence")

        if evidence_id in self._evidence:
            raise DuplicateId(evidence_id)

        registrant = registrant.lower()
        self._evidence[evidence_id] = LedgerEvidence(
            evidence_id=evidence_id,
            content_hash=content_hash,
            registrant=registrant,
            current_holder=registrant,
            created_at=datetime.now(UTC),
        )
        receipt = self._record(evidence_id, registrant, LedgerAction.REGISTERED)

        logger.debug(
            "mock_evidence_registered",
            evidence_id=evidence_id,
            tx_hash=receipt.tx_hash,
        )
        return receipt

    async def get_evidence(self, evidence_id: str) -> LedgerEvidence | None:
        """Read current evidence state."""
        self._check_available("get_evidence")
        evidence = self._evidence.get(evidence_id)
        return evidence.model_copy() if evidence else None

    # =========================================================================
    # Custody events
    # =========================================================================

    async def transfer_custody(
        self,
        evidence_id: str,
        new_holder: str,
        actor: str,
    ) -> LedgerReceipt:
        """Move the on-ledger holder."""
        self._check_available("transfer_custody")
        evidence = self._require(evidence_id)

        new_holder = new_holder.lower()
        evidence.current_holder = new_holder
        receipt = self._record(evidence_id, actor.lower(), LedgerAction.TRANSFERRED, new_holder)

        logger.debug(
            "mock_custody_transferred",
            evidence_id=evidence_id,
            new_holder=new_holder,
            tx_hash=receipt.tx_hash,
        )
        return receipt

    async def update_state(
        self,
        evidence_id: str,
        state: EvidenceState,
        actor: str,
    ) -> LedgerReceipt:
        """Record a state change."""
        self._check_available("update_state")
        evidence = self._require(evidence_id)

        evidence.state = state
        return self._record(evidence_id, actor.lower(), LedgerAction.STATE_CHANGED, state.value)

    async def append_event(
        self,
        evidence_id: str,
        actor: str,
        action: LedgerAction,
        detail: str | None = None,
    ) -> LedgerReceipt:
        """Append a free-form event."""
        self._check_available("append_event")
        self._require(evidence_id)
        return self._record(evidence_id, actor.lower(), action, detail)

    async def get_history(self, evidence_id: str) -> list[LedgerEvent]:
        """Get history, oldest first."""
        self._check_available("get_history")
        return list(self._events.get(evidence_id, []))

    async def get_evidence_by_holder(self, holder: str) -> list[str]:
        """Evidence ids held by ``holder``."""
        self._check_available("get_evidence_by_holder")
        holder = holder.lower()
        return [eid for eid, ev in self._evidence.items() if ev.current_holder == holder]

    # =========================================================================
    # Role grants
    # =========================================================================

    async def grant_role(self, account: str, role: LedgerRole) -> LedgerReceipt:
        """Grant a role."""
        self._check_available("grant_role")
        self._grants.setdefault(account.lower(), set()).add(role)
        logger.info("mock_ledger_role_granted", account=account.lower(), role=role.value)
        return LedgerReceipt(tx_hash=self._generate_tx_hash(), block_number=self._next_block())

    async def revoke_role(self, account: str, role: LedgerRole) -> LedgerReceipt:
        """Revoke a role."""
        self._check_available("revoke_role")
        self._grants.get(account.lower(), set()).discard(role)
        logger.info("mock_ledger_role_revoked", account=account.lower(), role=role.value)
        return LedgerReceipt(tx_hash=self._generate_tx_hash(), block_number=self._next_block())

    async def has_role(self, account: str, role: LedgerRole) -> bool:
        """Check a role grant."""
        self._check_available("has_role")
        return role in self._grants.get(account.lower(), set())

    # =========================================================================
    # Test Utilities
    # =========================================================================

    def set_available(self, available: bool) -> None:
        """Simulate an outage (False) or recovery (True)."""
        self._available = available

    def inject_failures(self, count: int) -> None:
        """Make the next ``count`` calls raise ``LedgerUnavailable``."""
        self._pending_failures = count

    def tamper_hash(self, evidence_id: str, content_hash: str) -> None:
        """Overwrite a registered hash, bypassing write-once rules."""
        self._require(evidence_id).content_hash = content_hash

    def clear_all(self) -> None:
        """Clear all mock data (for testing)."""
        self._evidence.clear()
        self._events.clear()
        self._grants.clear()
        self._block_number = 1000
        self._available = True
        self._pending_failures = 0
        logger.debug("mock_ledger_cleared")

    def get_stats(self) -> dict[str, int]:
        """Get storage statistics."""
        return {
            "evidence": len(self._evidence),
            "events": sum(len(e) for e in self._events.values()),
            "grants": sum(len(g) for g in self._grants.values()),
            "block_number": self._block_number,
        }
