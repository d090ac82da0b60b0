"""
Custody Ledger
==============

Evidence lifecycle state machine: registration, custody transfer, state
changes, access logging and deletion.

Ordering rules:
- mutating operations on one evidence id are serialized by a keyed lock
- the ledger is written before local metadata, so a failed ledger write
  leaves nothing behind locally
- custody log failures never undo the operation; they come back as
  warnings and are published on the audit error channel

Version: 0.1.0
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel, Field

from custody.audit import AuditTrail
from custody.authorization import AuthorizationModel
from custody.config import Settings, settings as default_settings
from custody.errors import CustodyError, DuplicateId, InvalidInput, InvalidTransition, NotFound, PayloadMissing
from custody.hashing import content_kind_for, hex_digest, normalize_hash
from custody.identities import IdentityService
from custody.ledger.client import LedgerAction, LedgerClient, LedgerEvent
from custody.ledger.guard import guarded, read_with_retry
from custody.locks import KeyedLock
from custody.logging import get_logger
from custody.models.evidence import (
    ContentKind,
    CustodyAction,
    CustodyLogEntry,
    EvidenceRecord,
    EvidenceState,
    EvidenceType,
    TransferType,
)
from custody.models.identity import Principal, Role, normalize_identity
from custody.storage.payloads import PayloadStore
from custody.storage.repository import EvidenceRepository

logger = get_logger(__name__)

T = TypeVar("T")


class MutationResult(BaseModel):
    """Outcome of a transfer, state change, custom action or deletion."""

    evidence_id: str
    action: str
    ledger_tx: str | None = None
    record: EvidenceRecord | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)


def _require_evidence_id(evidence_id: str) -> str:
    if not isinstance(evidence_id, str) or not evidence_id.strip():
        raise InvalidInput("Evidence ID is required")
    return evidence_id.strip()


class CustodyLedger:
    """
    The custody engine.

    Args:
        repository: Evidence metadata, custody log and identities
        ledger: Append-only ledger the hashes are anchored in
        payloads: Evidence byte store
        audit: Custody log writer (defaults to one over ``repository``)
        identities: Identity registry (defaults to one over ``repository``)
        authorization: Capability rules
        config: Settings (defaults to the global settings)
    """

    def __init__(
        self,
        repository: EvidenceRepository,
        ledger: LedgerClient,
        payloads: PayloadStore,
        audit: AuditTrail | None = None,
        identities: IdentityService | None = None,
        authorization: AuthorizationModel | None = None,
        config: Settings | None = None,
    ) -> None:
        self._settings = config or default_settings
        self.repository = repository
        self.ledger = ledger
        self.payloads = payloads
        self.authorization = authorization or AuthorizationModel(
            require_ledger_permission=self._settings.custody.require_ledger_permission
        )
        self.audit = audit or AuditTrail(repository)
        self.identities = identities or IdentityService(repository, self.authorization)
        self._locks = KeyedLock()

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _ledger_write(self, call: Awaitable[T], operation: str) -> T:
        return await guarded(call, operation, self._settings.ledger.timeout_seconds)

    async def _ledger_read(self, factory: Callable[[], Awaitable[T]], operation: str) -> T:
        return await read_with_retry(
            factory,
            operation,
            timeout=self._settings.ledger.timeout_seconds,
            attempts=self._settings.ledger.read_retries,
            backoff_seconds=self._settings.ledger.retry_backoff_seconds,
        )

    async def _require_record(self, evidence_id: str) -> EvidenceRecord:
        record = await self.repository.get_evidence(evidence_id)
        if record is None:
            raise NotFound(
                f'Evidence "{evidence_id}" not found',
                details={"evidence_id": evidence_id},
            )
        return record

    async def _log(
        self,
        evidence_id: str,
        actor: str,
        action: CustodyAction,
        metadata: dict[str, Any] | None = None,
    ) -> list[str]:
        entry = await self.audit.record(evidence_id, actor, action, metadata)
        if entry is None:
            return [f"Custody log entry '{action.value}' could not be persisted"]
        return []

    async def _authorize_register(self, principal: Principal) -> None:
        permissioned = True
        if self.authorization.needs_ledger_permission(principal):
            permissioned = await self._ledger_read(
                lambda: self.ledger.is_permissioned(principal.identity),
                "has_role",
            )
        self.authorization.require_register(principal, permissioned)

    # =========================================================================
    # Registration
    # =========================================================================

    async def register(
        self,
        evidence_id: str,
        content_hash: str | bytes,
        uploader: Principal,
        ledger_tx_ref: str | None = None,
        *,
        content_kind: ContentKind = ContentKind.BINARY,
        evidence_type: EvidenceType = EvidenceType.OTHER,
        file_name: str | None = None,
        mime_type: str | None = None,
        payload_locator: str | None = None,
    ) -> EvidenceRecord:
        """
        Register evidence metadata.

        Without ``ledger_tx_ref`` the hash is written to the ledger first.
        With one, the ledger must already hold the same hash for the id.

        Raises:
            Forbidden: uploader may not register
            DuplicateId: id already registered locally, or on the ledger with
                a different hash or uploader
            LedgerUnavailable: ledger write or read failed; nothing stored
        """
        evidence_id = _require_evidence_id(evidence_id)
        content_hash = normalize_hash(content_hash)
        await self._authorize_register(uploader)

        async with self._locks.hold(evidence_id):
            return await self._register_locked(
                evidence_id,
                content_hash,
                uploader,
                ledger_tx_ref,
                content_kind=content_kind,
                evidence_type=evidence_type,
                file_name=file_name,
                mime_type=mime_type,
                payload_locator=payload_locator,
            )

    async def _register_locked(
        self,
        evidence_id: str,
        content_hash: str,
        uploader: Principal,
        ledger_tx_ref: str | None,
        **fields: Any,
    ) -> EvidenceRecord:
        if await self.repository.get_evidence(evidence_id) is not None:
            raise DuplicateId(evidence_id)

        if ledger_tx_ref is None:
            try:
                receipt = await self._ledger_write(
                    self.ledger.register_evidence(evidence_id, content_hash, uploader.identity),
                    "register_evidence",
                )
                ledger_tx_ref = receipt.tx_hash
            except DuplicateId:
                ledger_tx_ref = await self._adopt_ledger_registration(evidence_id, content_hash, uploader)
        else:
            anchored = await self._ledger_read(lambda: self.ledger.get_evidence(evidence_id), "get_evidence")
            if anchored is None or normalize_hash(anchored.content_hash) != content_hash:
                raise InvalidInput(
                    f'Evidence "{evidence_id}" is not registered on the ledger with this hash',
                    details={"evidence_id": evidence_id, "ledger_tx": ledger_tx_ref},
                )

        record = EvidenceRecord(
            evidence_id=evidence_id,
            content_hash=content_hash,
            uploaded_by=uploader.identity,
            current_holder=uploader.identity,
            state=EvidenceState.ACTIVE,
            blockchain_tx_hash=ledger_tx_ref,
            **fields,
        )
        record = await self.repository.insert_evidence(record)

        logger.info(
            "evidence_registered",
            evidence_id=evidence_id,
            uploader=uploader.identity,
            content_hash=content_hash,
            ledger_tx=ledger_tx_ref,
        )
        await self._log(
            evidence_id,
            uploader.identity,
            CustodyAction.UPLOADED,
            {
                "content_hash": content_hash,
                "evidence_type": record.evidence_type.value,
                "file_name": record.file_name,
                "ledger_tx": ledger_tx_ref,
            },
        )
        return record

    async def _adopt_ledger_registration(
        self, evidence_id: str, content_hash: str, uploader: Principal
    ) -> str | None:
        """
        Reuse a ledger registration with no local record.

        A write that timed out may still have been committed. It is adopted
        only when the ledger holds the same hash from the same uploader.
        """
        anchored = await self._ledger_read(lambda: self.ledger.get_evidence(evidence_id), "get_evidence")
        if (
            anchored is None
            or normalize_hash(anchored.content_hash) != content_hash
            or anchored.registrant != uploader.identity
        ):
            raise DuplicateId(evidence_id)

        history = await self._ledger_read(lambda: self.ledger.get_history(evidence_id), "get_history")
        tx_ref = next((e.tx_hash for e in history if e.action == LedgerAction.REGISTERED), None)
        logger.warning(
            "ledger_registration_adopted",
            evidence_id=evidence_id,
            uploader=uploader.identity,
            ledger_tx=tx_ref,
        )
        return tx_ref

    async def submit(
        self,
        payload: bytes,
        evidence_id: str,
        principal: Principal,
        evidence_type: EvidenceType | str = EvidenceType.OTHER,
        file_name: str | None = None,
        mime_type: str | None = None,
    ) -> EvidenceRecord:
        """
        Full intake: authorize, hash, store the bytes, anchor on the
        ledger, then register locally.

        The stored bytes are removed again if the ledger write or the
        local insert fails.
        """
        evidence_id = _require_evidence_id(evidence_id)
        if not payload:
            raise InvalidInput("No evidence file provided", details={"evidence_id": evidence_id})
        try:
            evidence_type = EvidenceType(evidence_type)
        except ValueError:
            raise InvalidInput(
                f"Unknown evidence type '{evidence_type}'",
                details={"allowed": [t.value for t in EvidenceType]},
            ) from None
        await self._authorize_register(principal)

        content_kind = content_kind_for(evidence_type, mime_type, file_name, payload)
        content_hash = hex_digest(payload, content_kind)

        async with self._locks.hold(evidence_id):
            if await self.repository.get_evidence(evidence_id) is not None:
                raise DuplicateId(evidence_id)

            locator = await self.payloads.put(evidence_id, payload, evidence_type, file_name)
            try:
                return await self._register_locked(
                    evidence_id,
                    content_hash,
                    principal,
                    None,
                    content_kind=content_kind,
                    evidence_type=evidence_type,
                    file_name=file_name,
                    mime_type=mime_type,
                    payload_locator=locator,
                )
            except Exception:
                if not await self.payloads.delete(locator):
                    logger.warning("intake_payload_cleanup_failed", evidence_id=evidence_id, locator=locator)
                raise

    # =========================================================================
    # Custody transfer
    # =========================================================================

    async def transfer(
        self,
        evidence_id: str,
        new_holder: str,
        actor: Principal,
        new_role: str | Role | None = None,
        transfer_type: TransferType = TransferType.FULL_CUSTODY,
        display_name: str | None = None,
    ) -> MutationResult:
        """
        Hand custody to ``new_holder``.

        Raises:
            InvalidRole: ``new_role`` is admin, superadmin or unknown
            NotFound: no such evidence
            Forbidden: actor may not transfer this evidence or assign this role
            LedgerUnavailable: ledger did not confirm; nothing changed
        """
        role = self.authorization.validate_transfer_role(new_role)
        evidence_id = _require_evidence_id(evidence_id)
        new_holder = normalize_identity(new_holder)

        async with self._locks.hold(evidence_id):
            record = await self._require_record(evidence_id)
            target = await self.identities.find(new_holder)
            self.authorization.require_transfer(actor, record, role, target)

            if record.current_holder == new_holder:
                raise InvalidInput(
                    f"Evidence is already held by {new_holder}",
                    details={"evidence_id": evidence_id},
                )

            receipt = await self._ledger_write(
                self.ledger.transfer_custody(evidence_id, new_holder, actor.identity),
                "transfer_custody",
            )
            previous_holder = record.current_holder
            updated = await self.repository.update_holder(evidence_id, new_holder)
            identity = await self.identities.ensure_for_transfer(
                new_holder,
                role,
                added_by=actor.identity,
                display_name=display_name,
            )

            details = {
                "previous_holder": previous_holder,
                "new_holder": new_holder,
                "assigned_role": identity.role.value,
                "transfer_type": TransferType(transfer_type).value,
                "ledger_tx": receipt.tx_hash,
            }
            logger.info("custody_transferred", evidence_id=evidence_id, actor=actor.identity, **details)
            warnings = await self._log(evidence_id, actor.identity, CustodyAction.TRANSFERRED, details)

        return MutationResult(
            evidence_id=evidence_id,
            action=CustodyAction.TRANSFERRED.value,
            ledger_tx=receipt.tx_hash,
            record=updated,
            details=details,
            warnings=warnings,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def change_state(
        self,
        evidence_id: str,
        new_state: EvidenceState | str,
        actor: Principal,
    ) -> MutationResult:
        """
        Move evidence along the lifecycle.

        Raises:
            Forbidden: actor is not judge or superadmin
            NotFound: no such evidence
            InvalidTransition: edge not allowed from the current state
            LedgerUnavailable: ledger did not confirm; nothing changed
        """
        self.authorization.require_change_state(actor)
        evidence_id = _require_evidence_id(evidence_id)
        try:
            target = EvidenceState(new_state)
        except ValueError:
            raise InvalidInput(
                f"Unknown evidence state '{new_state}'",
                details={"allowed": [s.value for s in EvidenceState]},
            ) from None

        async with self._locks.hold(evidence_id):
            record = await self._require_record(evidence_id)
            if not record.state.can_transition_to(target):
                raise InvalidTransition(
                    f"Cannot move evidence from {record.state.value} to {target.value}",
                    details={"from": record.state.value, "to": target.value},
                )

            receipt = await self._ledger_write(
                self.ledger.update_state(evidence_id, target, actor.identity),
                "update_state",
            )
            updated = await self.repository.update_state(evidence_id, target)

            details = {
                "previous_state": record.state.value,
                "new_state": target.value,
                "ledger_tx": receipt.tx_hash,
            }
            logger.info("evidence_state_changed", evidence_id=evidence_id, actor=actor.identity, **details)
            warnings = await self._log(evidence_id, actor.identity, CustodyAction.STATE_CHANGED, details)

        return MutationResult(
            evidence_id=evidence_id,
            action=CustodyAction.STATE_CHANGED.value,
            ledger_tx=receipt.tx_hash,
            record=updated,
            details=details,
            warnings=warnings,
        )

    async def log_custom_action(
        self,
        evidence_id: str,
        actor: Principal,
        label: str,
        details: dict[str, Any] | None = None,
    ) -> MutationResult:
        """Record a free-form custody action on the ledger and in the log."""
        evidence_id = _require_evidence_id(evidence_id)
        if not isinstance(label, str) or not label.strip():
            raise InvalidInput("Action label is required")
        label = label.strip()

        async with self._locks.hold(evidence_id):
            record = await self._require_record(evidence_id)
            self.authorization.require_view(actor, record)

            receipt = await self._ledger_write(
                self.ledger.append_event(evidence_id, actor.identity, LedgerAction.CUSTOM, label),
                "append_event",
            )
            metadata = {"label": label, "details": details, "ledger_tx": receipt.tx_hash}
            logger.info("custom_action_logged", evidence_id=evidence_id, actor=actor.identity, label=label)
            warnings = await self._log(evidence_id, actor.identity, CustodyAction.CUSTOM, metadata)

        return MutationResult(
            evidence_id=evidence_id,
            action=CustodyAction.CUSTOM.value,
            ledger_tx=receipt.tx_hash,
            details=metadata,
            warnings=warnings,
        )

    # =========================================================================
    # Access
    # =========================================================================

    async def record_access(
        self,
        evidence_id: str,
        actor: Principal,
        kind: CustodyAction = CustodyAction.VIEWED,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """
        Log an access in the background.

        Only fails if the evidence does not exist; log persistence
        failures go to the audit error channel.
        """
        # Scheduled under the lock so a concurrent delete flushes it before purging
        async with self._locks.hold(evidence_id):
            await self._require_record(evidence_id)
            self.audit.record_nowait(evidence_id, actor.identity, kind, metadata)

    async def describe(self, evidence_id: str, principal: Principal) -> EvidenceRecord:
        record = await self._require_record(evidence_id)
        self.authorization.require_view(principal, record)
        return record

    async def open_payload(self, evidence_id: str, principal: Principal) -> tuple[EvidenceRecord, bytes]:
        """
        Read the evidence bytes for a principal allowed to view them.

        Every successful read is logged as ``viewed``.
        """
        record = await self.describe(evidence_id, principal)
        if not record.payload_locator:
            raise PayloadMissing(
                "Evidence has no stored payload",
                details={"evidence_id": evidence_id},
            )
        data = await self.payloads.get(record.payload_locator)
        await self.record_access(
            evidence_id,
            principal,
            CustodyAction.VIEWED,
            {"file_name": record.file_name, "role": principal.role.value},
        )
        return record, data

    async def list_visible(self, principal: Principal) -> list[EvidenceRecord]:
        records = await self.repository.list_evidence()
        return [r for r in records if self.authorization.can_view(principal, r)]

    async def custody_log(self, evidence_id: str, principal: Principal) -> list[CustodyLogEntry]:
        await self.describe(evidence_id, principal)
        return await self.repository.list_logs(evidence_id)

    async def ledger_history(self, evidence_id: str, principal: Principal) -> list[LedgerEvent]:
        await self.describe(evidence_id, principal)
        return await self._ledger_read(lambda: self.ledger.get_history(evidence_id), "get_history")

    async def held_by(self, identity: str) -> list[EvidenceRecord]:
        identity = normalize_identity(identity)
        return [r for r in await self.repository.list_evidence() if r.current_holder == identity]

    # =========================================================================
    # Deletion
    # =========================================================================

    async def delete(self, evidence_id: str, actor: Principal) -> MutationResult:
        """
        Remove evidence: payload (best effort), custody log, then the record.

        Raises:
            Forbidden: actor is not superadmin
            NotFound: no such evidence
        """
        self.authorization.require_delete(actor)
        evidence_id = _require_evidence_id(evidence_id)
        warnings: list[str] = []

        async with self._locks.hold(evidence_id):
            record = await self._require_record(evidence_id)

            if record.payload_locator:
                try:
                    removed = await self.payloads.delete(record.payload_locator)
                except Exception as e:
                    logger.warning(
                        "payload_delete_failed",
                        evidence_id=evidence_id,
                        locator=record.payload_locator,
                        error=str(e),
                    )
                    removed = False
                if not removed:
                    warnings.append("Stored payload could not be removed")

            # Background access logs must not land after the purge
            await self.audit.flush()
            purged = await self.repository.purge_logs(evidence_id)
            await self.repository.delete_evidence(evidence_id)

            ledger_tx = None
            try:
                receipt = await self._ledger_write(
                    self.ledger.append_event(evidence_id, actor.identity, LedgerAction.DELETED),
                    "append_event",
                )
                ledger_tx = receipt.tx_hash
            except CustodyError as e:
                logger.warning("ledger_delete_event_failed", evidence_id=evidence_id, error=e.message)
                warnings.append("Deletion could not be recorded on the ledger")

        logger.info(
            "evidence_deleted",
            evidence_id=evidence_id,
            actor=actor.identity,
            purged_log_entries=purged,
            ledger_tx=ledger_tx,
        )
        return MutationResult(
            evidence_id=evidence_id,
            action="deleted",
            ledger_tx=ledger_tx,
            details={"purged_log_entries": purged},
            warnings=warnings,
        )
