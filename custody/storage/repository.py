"""
Evidence Repository
===================

Storage-agnostic persistence contract for evidence records, the custody
log and the identity registry, plus the in-memory implementation.

Version: 0.1.0
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from custody.errors import DuplicateId, NotFound
from custody.logging import get_logger
from custody.models.evidence import CustodyLogEntry, EvidenceRecord, EvidenceState
from custody.models.identity import Identity

logger = get_logger(__name__)


class EvidenceRepository(ABC):
    """
    Persistence contract used by the custody engine.

    ``insert_evidence`` must be atomic: of any number of concurrent inserts
    for one id, exactly one succeeds and the rest raise ``DuplicateId``.
    """

    # =========================================================================
    # Evidence
    # =========================================================================

    @abstractmethod
    async def insert_evidence(self, record: EvidenceRecord) -> EvidenceRecord:
        ...

    @abstractmethod
    async def get_evidence(self, evidence_id: str) -> EvidenceRecord | None:
        ...

    @abstractmethod
    async def list_evidence(self) -> list[EvidenceRecord]:
        """All records, newest first."""
        ...

    @abstractmethod
    async def update_holder(self, evidence_id: str, new_holder: str) -> EvidenceRecord:
        """Move custody, pushing the outgoing holder onto ``previous_holders``."""
        ...

    @abstractmethod
    async def update_state(self, evidence_id: str, state: EvidenceState) -> EvidenceRecord:
        ...

    @abstractmethod
    async def delete_evidence(self, evidence_id: str) -> bool:
        ...

    # =========================================================================
    # Custody log
    # =========================================================================

    @abstractmethod
    async def append_log(self, entry: CustodyLogEntry) -> CustodyLogEntry:
        ...

    @abstractmethod
    async def list_logs(self, evidence_id: str | None = None) -> list[CustodyLogEntry]:
        """Log rows in insertion order, optionally for one evidence id."""
        ...

    @abstractmethod
    async def purge_logs(self, evidence_id: str) -> int:
        """Delete every log row of an evidence id; returns the count removed."""
        ...

    # =========================================================================
    # Identities
    # =========================================================================

    @abstractmethod
    async def get_identity(self, wallet_address: str) -> Identity | None:
        ...

    @abstractmethod
    async def list_identities(self) -> list[Identity]:
        ...

    @abstractmethod
    async def upsert_identity(self, identity: Identity) -> Identity:
        ...

    @abstractmethod
    async def delete_identity(self, wallet_address: str) -> bool:
        ...

    async def health_check(self) -> dict[str, Any]:
        return {"status": "healthy", "backend": type(self).__name__}


def _missing(evidence_id: str) -> NotFound:
    return NotFound(
        f'Evidence "{evidence_id}" not found',
        details={"evidence_id": evidence_id},
    )


class InMemoryEvidenceRepository(EvidenceRepository):
    """
    Dictionary-backed repository.

    Methods never await between reading and writing shared state, so each
    call is atomic on the event loop. Records are copied on the way in and
    out; callers cannot mutate stored state by accident.
    """

    def __init__(self) -> None:
        self._evidence: dict[str, EvidenceRecord] = {}
        self._logs: list[CustodyLogEntry] = []
        self._identities: dict[str, Identity] = {}

    async def insert_evidence(self, record: EvidenceRecord) -> EvidenceRecord:
        if record.evidence_id in self._evidence:
            raise DuplicateId(record.evidence_id)
        self._evidence[record.evidence_id] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    async def get_evidence(self, evidence_id: str) -> EvidenceRecord | None:
        record = self._evidence.get(evidence_id)
        return record.model_copy(deep=True) if record else None

    async def list_evidence(self) -> list[EvidenceRecord]:
        records = sorted(self._evidence.values(), key=lambda r: r.created_at, reverse=True)
        return [r.model_copy(deep=True) for r in records]

    async def update_holder(self, evidence_id: str, new_holder: str) -> EvidenceRecord:
        record = self._evidence.get(evidence_id)
        if record is None:
            raise _missing(evidence_id)
        if record.current_holder != new_holder and record.current_holder not in record.previous_holders:
            record.previous_holders.append(record.current_holder)
        record.current_holder = new_holder
        return record.model_copy(deep=True)

    async def update_state(self, evidence_id: str, state: EvidenceState) -> EvidenceRecord:
        record = self._evidence.get(evidence_id)
        if record is None:
            raise _missing(evidence_id)
        record.state = state
        return record.model_copy(deep=True)

    async def delete_evidence(self, evidence_id: str) -> bool:
        return self._evidence.pop(evidence_id, None) is not None

    async def append_log(self, entry: CustodyLogEntry) -> CustodyLogEntry:
        self._logs.append(entry.model_copy(deep=True))
        return entry

    async def list_logs(self, evidence_id: str | None = None) -> list[CustodyLogEntry]:
        return [
            e.model_copy(deep=True)
            for e in self._logs
            if evidence_id is None or e.evidence_id == evidence_id
        ]

    async def purge_logs(self, evidence_id: str) -> int:
        before = len(self._logs)
        self._logs = [e for e in self._logs if e.evidence_id != evidence_id]
        return before - len(self._logs)

    async def get_identity(self, wallet_address: str) -> Identity | None:
        identity = self._identities.get(wallet_address)
        return identity.model_copy() if identity else None

    async def list_identities(self) -> list[Identity]:
        identities = sorted(self._identities.values(), key=lambda i: i.created_at, reverse=True)
        return [i.model_copy() for i in identities]

    async def upsert_identity(self, identity: Identity) -> Identity:
        existing = self._identities.get(identity.wallet_address)
        stored = identity.model_copy(update={"updated_at": datetime.now(UTC)})
        if existing is not None:
            stored.created_at = existing.created_at
        self._identities[identity.wallet_address] = stored
        return stored.model_copy()

    async def delete_identity(self, wallet_address: str) -> bool:
        return self._identities.pop(wallet_address, None) is not None

    async def health_check(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "backend": "memory",
            "evidence": len(self._evidence),
            "log_entries": len(self._logs),
            "identities": len(self._identities),
        }
