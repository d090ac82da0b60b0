"""
Journal Ledger Client
=====================

Append-only, hash-chained JSON Lines journal.

Every line commits to the previous one through ``prev_hash``, so an
edited, reordered or deleted line breaks the chain and is detected on
load or by ``verify_chain()``. Anchoring the head hash externally makes
the journal externally verifiable.

Version: 0.1.0
"""

import asyncio
import hashlib
import json
import os
from datetime import UTC, datetime
from pathlib import Path
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

GENESIS_HASH = "0" * 64


def _entry_hash(entry: dict[str, Any], prev_hash: str) -> str:
    body = json.dumps(entry, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(prev_hash.encode("utf-8") + body).hexdigest()


class JournalLedgerClient(LedgerClient):
    """
    File-backed ledger client.

    The in-memory view is rebuilt by replaying the journal on ``connect()``.
    Writes are serialized by a single lock and fsynced before the receipt
    is returned.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()
        self._loaded = False
        self._inflight: asyncio.Task[None] | None = None

        self._head = GENESIS_HASH
        self._seq = 0
        self._evidence: dict[str, LedgerEvidence] = {}
        self._events: dict[str, list[LedgerEvent]] = {}
        self._grants: dict[str, set[LedgerRole]] = {}

    @property
    def mode(self) -> LedgerMode:
        return LedgerMode.JOURNAL

    @property
    def head_hash(self) -> str:
        """Hash of the latest journal entry; anchor this externally."""
        return self._head

    async def connect(self) -> None:
        """Load and verify the journal."""
        async with self._lock:
            await self._load()

    async def disconnect(self) -> None:
        self._loaded = False
        logger.info("journal_ledger_closed", path=str(self._path))

    async def health_check(self) -> dict[str, Any]:
        ok, broken_at = await asyncio.to_thread(self._scan_chain)
        return {
            "status": "healthy" if ok else "unhealthy",
            "mode": self.mode.value,
            "path": str(self._path),
            "entries": self._seq,
            "head_hash": self._head,
            "broken_at": broken_at,
        }

    # =========================================================================
    # Journal I/O
    # =========================================================================

    def _read_lines(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        entries = []
        with self._path.open("r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if line:
                    entries.append(json.loads(line))
        return entries

    def _scan_chain(self) -> tuple[bool, int | None]:
        prev = GENESIS_HASH
        try:
            entries = self._read_lines()
        except (OSError, json.JSONDecodeError):
            return False, 0
        for index, entry in enumerate(entries, start=1):
            stored = entry.pop("entry_hash", None)
            if entry.get("prev_hash") != prev or _entry_hash(entry, prev) != stored:
                return False, index
            prev = stored
        return True, None

    async def verify_chain(self) -> tuple[bool, int | None]:
        """
        Re-read the journal and check every link.

        Returns:
            (True, None) if intact, else (False, 1-based line of first break)
        """
        return await asyncio.to_thread(self._scan_chain)

    async def _load(self) -> None:
        await self._settle()
        if self._loaded:
            return
        try:
            entries = await asyncio.to_thread(self._read_lines)
        except (OSError, json.JSONDecodeError) as e:
            raise LedgerUnavailable(f"Cannot read ledger journal: {e}") from e

        self._head = GENESIS_HASH
        self._seq = 0
        self._evidence.clear()
        self._events.clear()
        self._grants.clear()

        for index, entry in enumerate(entries, start=1):
            stored = entry.pop("entry_hash", None)
            if entry.get("prev_hash") != self._head or _entry_hash(entry, self._head) != stored:
                logger.error("journal_chain_broken", path=str(self._path), line=index)
                raise LedgerUnavailable(
                    f"Ledger journal chain broken at line {index}",
                    details={"line": index},
                )
            self._apply(entry, stored)

        self._loaded = True
        logger.info(
            "journal_ledger_loaded",
            path=str(self._path),
            entries=self._seq,
            evidence=len(self._evidence),
        )

    def _append_line(self, line: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")
            fh.flush()
            os.fsync(fh.fileno())

    async def _persist(self, entry: dict[str, Any], digest: str, line: str) -> None:
        try:
            await asyncio.to_thread(self._append_line, line)
        except OSError as e:
            logger.error("journal_write_failed", path=str(self._path), error=str(e))
            raise LedgerUnavailable(f"Ledger journal write failed: {e}") from e
        self._apply(entry, digest)

    async def _settle(self) -> None:
        """Wait for a write whose caller was cancelled. Caller holds the lock."""
        pending = self._inflight
        if pending is None:
            return
        await asyncio.wait({pending})
        self._inflight = None
        if pending.cancelled() or pending.exception() is not None:
            return
        logger.warning(
            "journal_write_landed_after_timeout",
            path=str(self._path),
            seq=self._seq,
            head_hash=self._head,
        )

    async def _commit(self, entry: dict[str, Any]) -> LedgerReceipt:
        """
        Hash, persist and apply one entry. Caller holds the lock.

        The append and the in-memory apply run as one shielded task, so a
        cancelled caller cannot leave the head behind the file.
        """
        entry["seq"] = self._seq + 1
        entry["timestamp"] = datetime.now(UTC).isoformat()
        entry["prev_hash"] = self._head
        digest = _entry_hash(entry, self._head)

        line = json.dumps({**entry, "entry_hash": digest}, sort_keys=True, ensure_ascii=False)
        task = asyncio.ensure_future(self._persist(entry, digest, line))
        self._inflight = task
        await asyncio.shield(task)
        self._inflight = None

        return LedgerReceipt(
            tx_hash="0x" + digest,
            block_number=entry["seq"],
            timestamp=datetime.fromisoformat(entry["timestamp"]),
        )

    def _apply(self, entry: dict[str, Any], digest: str) -> None:
        self._seq = entry["seq"]
        self._head = digest
        kind = entry["kind"]
        timestamp = datetime.fromisoformat(entry["timestamp"])

        if kind in ("grant", "revoke"):
            grants = self._grants.setdefault(entry["account"], set())
            role = LedgerRole(entry["role"])
            if kind == "grant":
                grants.add(role)
            else:
                grants.discard(role)
            return

        evidence_id = entry["evidence_id"]
        action = LedgerAction(entry["action"])
        if action == LedgerAction.REGISTERED:
            self._evidence[evidence_id] = LedgerEvidence(
                evidence_id=evidence_id,
                content_hash=entry["content_hash"],
                registrant=entry["actor"],
                current_holder=entry["actor"],
                created_at=timestamp,
            )
        elif action == LedgerAction.TRANSFERRED:
            self._evidence[evidence_id].current_holder = entry["detail"]
        elif action == LedgerAction.STATE_CHANGED:
            self._evidence[evidence_id].state = EvidenceState(entry["detail"])

        self._events.setdefault(evidence_id, []).append(
            LedgerEvent(
                evidence_id=evidence_id,
                actor=entry["actor"],
                action=action,
                detail=entry.get("detail"),
                timestamp=timestamp,
                tx_hash="0x" + digest,
                block_number=entry["seq"],
            )
        )

    async def _event(
        self,
        evidence_id: str,
        actor: str,
        action: LedgerAction,
        detail: str | None = None,
    ) -> LedgerReceipt:
        async with self._lock:
            await self._load()
            if evidence_id not in self._evidence:
                raise NotFound(
                    f"Evidence '{evidence_id}' is not registered on the ledger",
                    details={"evidence_id": evidence_id},
                )
            return await self._commit(
                {
                    "kind": "event",
                    "evidence_id": evidence_id,
                    "actor": actor.lower(),
                    "action": action.value,
                    "detail": detail,
                }
            )

    # =========================================================================
    # Evidence register
    # =========================================================================

    async def register_evidence(
        self,
        evidence_id: str,
        content_hash: str,
        registrant: str,
    ) -> LedgerReceipt:
        async with self._lock:
            await self._load()
            if evidence_id in self._evidence:
                raise DuplicateId(evidence_id)
            receipt = await self._commit(
                {
                    "kind": "event",
                    "evidence_id": evidence_id,
                    "actor": registrant.lower(),
                    "action": LedgerAction.REGISTERED.value,
                    "content_hash": content_hash,
                    "detail": None,
                }
            )
        logger.info("journal_evidence_registered", evidence_id=evidence_id, tx_hash=receipt.tx_hash)
        return receipt

    async def get_evidence(self, evidence_id: str) -> LedgerEvidence | None:
        async with self._lock:
            await self._load()
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
        return await self._event(evidence_id, actor, LedgerAction.TRANSFERRED, new_holder.lower())

    async def update_state(
        self,
        evidence_id: str,
        state: EvidenceState,
        actor: str,
    ) -> LedgerReceipt:
        return await self._event(evidence_id, actor, LedgerAction.STATE_CHANGED, state.value)

    async def append_event(
        self,
        evidence_id: str,
        actor: str,
        action: LedgerAction,
        detail: str | None = None,
    ) -> LedgerReceipt:
        return await self._event(evidence_id, actor, action, detail)

    async def get_history(self, evidence_id: str) -> list[LedgerEvent]:
        async with self._lock:
            await self._load()
        return list(self._events.get(evidence_id, []))

    async def get_evidence_by_holder(self, holder: str) -> list[str]:
        async with self._lock:
            await self._load()
        holder = holder.lower()
        return [eid for eid, ev in self._evidence.items() if ev.current_holder == holder]

    # =========================================================================
    # Role grants
    # =========================================================================

    async def _grant_entry(self, kind: str, account: str, role: LedgerRole) -> LedgerReceipt:
        async with self._lock:
            await self._load()
            receipt = await self._commit({"kind": kind, "account": account.lower(), "role": role.value})
        logger.info(f"journal_role_{kind}", account=account.lower(), role=role.value)
        return receipt

    async def grant_role(self, account: str, role: LedgerRole) -> LedgerReceipt:
        return await self._grant_entry("grant", account, role)

    async def revoke_role(self, account: str, role: LedgerRole) -> LedgerReceipt:
        return await self._grant_entry("revoke", account, role)

    async def has_role(self, account: str, role: LedgerRole) -> bool:
        async with self._lock:
            await self._load()
        return role in self._grants.get(account.lower(), set())
