"""
Integrity Verifier
==================

Recomputes evidence digests from stored bytes and compares them with
the registered hash. A mismatch is a result, not an error.

The local record's hash is ground truth for ``intact``; the ledger's
registered hash is cross-checked on top and an unreadable ledger is
never reported as plainly intact.

Version: 0.1.0
"""

import hashlib
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

from custody.config import Settings, settings as default_settings
from custody.errors import InvalidInput, LedgerUnavailable, NotFound, PayloadMissing
from custody.hashing import hashes_match, hex_digest, is_utf8, normalize_hash
from custody.ledger.client import LedgerClient
from custody.ledger.guard import read_with_retry
from custody.logging import get_logger
from custody.models.evidence import ContentKind, EvidenceRecord
from custody.storage.payloads import PayloadStore
from custody.storage.repository import EvidenceRepository

logger = get_logger(__name__)

# Digest reported for a stored payload that has been truncated to nothing
EMPTY_DIGEST = hashlib.sha256(b"").hexdigest()


def _current_digest(data: bytes, content_kind: ContentKind) -> tuple[str, bool]:
    """Digest of ``data`` as registered, and whether it still decodes as that kind."""
    if not data:
        return EMPTY_DIGEST, True
    if content_kind == ContentKind.TEXT and not is_utf8(data):
        return hashlib.sha256(data).hexdigest(), False
    return hex_digest(data, content_kind), True


class IntegrityStatus(str, Enum):
    """Classification of a verification."""

    INTACT = "intact"
    TAMPERED = "tampered"
    LEDGER_MISMATCH = "ledger_mismatch"
    LEDGER_UNVERIFIED = "ledger_unverified"


class IntegrityReport(BaseModel):
    """Result of one integrity verification."""

    evidence_id: str
    intact: bool = Field(..., description="Stored bytes match the registered hash")
    stored_hash: str
    current_hash: str
    status: IntegrityStatus
    ledger_hash: str | None = None
    ledger_consistent: bool | None = Field(
        default=None,
        description="Registered hash matches the ledger; None if the ledger was not read",
    )
    checked_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class IntegrityVerifier:
    """Tamper detection over the repository, payload store and ledger."""

    def __init__(
        self,
        repository: EvidenceRepository,
        payloads: PayloadStore,
        ledger: LedgerClient | None = None,
        config: Settings | None = None,
    ) -> None:
        self._repository = repository
        self._payloads = payloads
        self._ledger = ledger
        self._settings = config or default_settings

    async def _record(self, evidence_id: str) -> EvidenceRecord:
        record = await self._repository.get_evidence(evidence_id)
        if record is None:
            raise NotFound(
                f'Evidence "{evidence_id}" not found',
                details={"evidence_id": evidence_id},
            )
        return record

    async def _ledger_hash(self, evidence_id: str) -> tuple[str | None, bool | None]:
        """Registered ledger hash and whether the ledger could be read at all."""
        if self._ledger is None:
            return None, None
        ledger = self._ledger
        try:
            anchored = await read_with_retry(
                lambda: ledger.get_evidence(evidence_id),
                "get_evidence",
                timeout=self._settings.ledger.timeout_seconds,
                attempts=self._settings.ledger.read_retries,
                backoff_seconds=self._settings.ledger.retry_backoff_seconds,
            )
        except LedgerUnavailable as e:
            logger.warning("integrity_ledger_unreadable", evidence_id=evidence_id, error=e.message)
            return None, False
        return (normalize_hash(anchored.content_hash) if anchored else None), True

    async def _report(self, record: EvidenceRecord, current_hash: str, decodable: bool = True) -> IntegrityReport:
        intact = decodable and hashes_match(record.content_hash, current_hash)
        ledger_hash, ledger_read = await self._ledger_hash(record.evidence_id)

        ledger_consistent: bool | None = None
        if ledger_read:
            ledger_consistent = hashes_match(record.content_hash, ledger_hash)

        if not intact:
            status = IntegrityStatus.TAMPERED
        elif ledger_read is False:
            status = IntegrityStatus.LEDGER_UNVERIFIED
        elif ledger_consistent is False:
            status = IntegrityStatus.LEDGER_MISMATCH
        else:
            status = IntegrityStatus.INTACT

        report = IntegrityReport(
            evidence_id=record.evidence_id,
            intact=intact,
            stored_hash=record.content_hash,
            current_hash=current_hash,
            status=status,
            ledger_hash=ledger_hash,
            ledger_consistent=ledger_consistent,
        )
        if status == IntegrityStatus.INTACT:
            logger.info("integrity_verified", evidence_id=record.evidence_id)
        else:
            logger.warning(
                "integrity_check_failed",
                evidence_id=record.evidence_id,
                status=status.value,
                stored_hash=record.content_hash,
                current_hash=current_hash,
                ledger_hash=ledger_hash,
                decodable=decodable,
            )
        return report

    async def verify(self, evidence_id: str) -> IntegrityReport:
        """
        Recompute the digest of the stored payload.

        Raises:
            NotFound: no such evidence
            PayloadMissing: the stored bytes cannot be read
        """
        record = await self._record(evidence_id)
        if not record.payload_locator:
            raise PayloadMissing(
                "Evidence has no stored payload",
                details={"evidence_id": evidence_id},
            )
        data = await self._payloads.get(record.payload_locator)
        current_hash, decodable = _current_digest(data, record.content_kind)
        return await self._report(record, current_hash, decodable)

    async def verify_payload(self, evidence_id: str, payload: bytes) -> IntegrityReport:
        """
        Compare a caller-supplied copy against the registered hash.

        Raises:
            NotFound: no such evidence
            InvalidInput: the copy is empty
        """
        record = await self._record(evidence_id)
        if not payload:
            raise InvalidInput("Evidence payload is empty", details={"evidence_id": evidence_id})
        current_hash, decodable = _current_digest(payload, record.content_kind)
        return await self._report(record, current_hash, decodable)
