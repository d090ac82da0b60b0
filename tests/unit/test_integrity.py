"""
Unit tests for integrity verification.
"""

import pytest

from custody.engine import CustodyLedger
from custody.errors import InvalidInput, NotFound, PayloadMissing
from custody.hashing import hex_digest
from custody.integrity import EMPTY_DIGEST, IntegrityStatus, IntegrityVerifier
from custody.ledger import MockLedgerClient
from custody.models import ContentKind, EvidenceType, Principal
from custody.storage import InMemoryEvidenceRepository, InMemoryPayloadStore


PAYLOAD = b"\xff\xd8\xff\xe0 crime scene photo 0042"


class TestVerify:
    """Tests for verification of stored payloads."""

    @pytest.mark.asyncio
    async def test_intact_right_after_registration(
        self, engine: CustodyLedger, verifier: IntegrityVerifier, judge: Principal
    ) -> None:
        record = await engine.submit(PAYLOAD, "EV-I1", judge, evidence_type=EvidenceType.IMAGE)

        report = await verifier.verify("EV-I1")

        assert report.intact is True
        assert report.status == IntegrityStatus.INTACT
        assert report.stored_hash == record.content_hash
        assert report.current_hash == record.content_hash
        assert report.ledger_hash == record.content_hash
        assert report.ledger_consistent is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("position", [0, 7, len(PAYLOAD) - 1])
    async def test_single_byte_change_detected(
        self,
        engine: CustodyLedger,
        verifier: IntegrityVerifier,
        payloads: InMemoryPayloadStore,
        judge: Principal,
        position: int,
    ) -> None:
        record = await engine.submit(PAYLOAD, "EV-I2", judge)
        mutated = bytearray(PAYLOAD)
        mutated[position] ^= 0x01
        payloads.overwrite(record.payload_locator, bytes(mutated))

        report = await verifier.verify("EV-I2")

        assert report.intact is False
        assert report.status == IntegrityStatus.TAMPERED
        assert report.current_hash == hex_digest(bytes(mutated))
        assert report.stored_hash == record.content_hash

    @pytest.mark.asyncio
    async def test_truncated_payload_is_tampered(
        self,
        engine: CustodyLedger,
        verifier: IntegrityVerifier,
        payloads: InMemoryPayloadStore,
        judge: Principal,
    ) -> None:
        record = await engine.submit(PAYLOAD, "EV-I3", judge)
        payloads.overwrite(record.payload_locator, b"")

        report = await verifier.verify("EV-I3")

        assert report.status == IntegrityStatus.TAMPERED
        assert report.current_hash == EMPTY_DIGEST

    @pytest.mark.asyncio
    async def test_ledger_hash_mismatch(
        self,
        engine: CustodyLedger,
        verifier: IntegrityVerifier,
        ledger: MockLedgerClient,
        judge: Principal,
    ) -> None:
        await engine.submit(PAYLOAD, "EV-I4", judge)
        ledger.tamper_hash("EV-I4", hex_digest(b"something else"))

        report = await verifier.verify("EV-I4")

        assert report.intact is True
        assert report.ledger_consistent is False
        assert report.status == IntegrityStatus.LEDGER_MISMATCH

    @pytest.mark.asyncio
    async def test_ledger_unreadable_is_not_reported_intact(
        self,
        engine: CustodyLedger,
        verifier: IntegrityVerifier,
        ledger: MockLedgerClient,
        judge: Principal,
    ) -> None:
        await engine.submit(PAYLOAD, "EV-I5", judge)
        ledger.set_available(False)

        report = await verifier.verify("EV-I5")

        assert report.intact is True
        assert report.ledger_hash is None
        assert report.ledger_consistent is None
        assert report.status == IntegrityStatus.LEDGER_UNVERIFIED

    @pytest.mark.asyncio
    async def test_transient_ledger_failure_is_retried(
        self,
        engine: CustodyLedger,
        verifier: IntegrityVerifier,
        ledger: MockLedgerClient,
        judge: Principal,
    ) -> None:
        await engine.submit(PAYLOAD, "EV-I6", judge)
        ledger.inject_failures(1)

        report = await verifier.verify("EV-I6")

        assert report.status == IntegrityStatus.INTACT

    @pytest.mark.asyncio
    async def test_without_ledger(
        self,
        engine: CustodyLedger,
        repository: InMemoryEvidenceRepository,
        payloads: InMemoryPayloadStore,
        judge: Principal,
    ) -> None:
        await engine.submit(PAYLOAD, "EV-I7", judge)

        report = await IntegrityVerifier(repository, payloads).verify("EV-I7")

        assert report.status == IntegrityStatus.INTACT
        assert report.ledger_consistent is None

    @pytest.mark.asyncio
    async def test_unknown_evidence(self, verifier: IntegrityVerifier) -> None:
        with pytest.raises(NotFound):
            await verifier.verify("EV-NOPE")

    @pytest.mark.asyncio
    async def test_missing_payload(
        self,
        engine: CustodyLedger,
        verifier: IntegrityVerifier,
        payloads: InMemoryPayloadStore,
        judge: Principal,
    ) -> None:
        record = await engine.submit(PAYLOAD, "EV-I8", judge)
        payloads.discard(record.payload_locator)

        with pytest.raises(PayloadMissing):
            await verifier.verify("EV-I8")

    @pytest.mark.asyncio
    async def test_hash_only_registration_has_no_payload(
        self, engine: CustodyLedger, verifier: IntegrityVerifier, judge: Principal
    ) -> None:
        await engine.register("EV-I9", hex_digest(PAYLOAD), judge)

        with pytest.raises(PayloadMissing):
            await verifier.verify("EV-I9")


class TestVerifyPayload:
    """Tests for verification of caller-supplied copies."""

    @pytest.mark.asyncio
    async def test_matching_copy(self, engine: CustodyLedger, verifier: IntegrityVerifier, judge: Principal) -> None:
        await engine.register("EV-C1", hex_digest(PAYLOAD), judge)

        report = await verifier.verify_payload("EV-C1", PAYLOAD)

        assert report.status == IntegrityStatus.INTACT

    @pytest.mark.asyncio
    async def test_altered_copy(self, engine: CustodyLedger, verifier: IntegrityVerifier, judge: Principal) -> None:
        await engine.register("EV-C2", hex_digest(PAYLOAD), judge)

        report = await verifier.verify_payload("EV-C2", PAYLOAD + b"\x00")

        assert report.status == IntegrityStatus.TAMPERED
        assert report.intact is False

    @pytest.mark.asyncio
    async def test_text_copy_uses_registered_content_kind(
        self, engine: CustodyLedger, verifier: IntegrityVerifier, judge: Principal
    ) -> None:
        statement = b"I saw the vehicle at 22:14\n"
        record = await engine.submit(statement, "EV-C3", judge, file_name="statement.txt")
        assert record.content_kind == ContentKind.TEXT

        assert (await verifier.verify_payload("EV-C3", statement)).intact is True
        assert (await verifier.verify_payload("EV-C3", statement.replace(b"\n", b"\r\n"))).intact is False

    @pytest.mark.asyncio
    async def test_empty_copy_rejected(self, engine: CustodyLedger, verifier: IntegrityVerifier, judge: Principal) -> None:
        await engine.register("EV-C4", hex_digest(PAYLOAD), judge)

        with pytest.raises(InvalidInput):
            await verifier.verify_payload("EV-C4", b"")


class TestTextEncoding:
    """Text evidence whose bytes are not valid UTF-8."""

    @pytest.mark.asyncio
    async def test_invalid_byte_swap_detected(
        self,
        engine: CustodyLedger,
        verifier: IntegrityVerifier,
        payloads: InMemoryPayloadStore,
        judge: Principal,
    ) -> None:
        record = await engine.submit(b"statement \xff end", "EV-T1", judge, evidence_type=EvidenceType.TEXT)
        assert record.content_kind == ContentKind.BINARY
        payloads.overwrite(record.payload_locator, b"statement \xfe end")

        report = await verifier.verify("EV-T1")

        assert report.intact is False
        assert report.status == IntegrityStatus.TAMPERED

    @pytest.mark.asyncio
    async def test_stored_text_no_longer_decoding_is_tampered(
        self,
        engine: CustodyLedger,
        verifier: IntegrityVerifier,
        payloads: InMemoryPayloadStore,
        judge: Principal,
    ) -> None:
        record = await engine.submit(b"statement - end", "EV-T2", judge, evidence_type=EvidenceType.TEXT)
        assert record.content_kind == ContentKind.TEXT
        payloads.overwrite(record.payload_locator, b"statement \xff end")

        report = await verifier.verify("EV-T2")

        assert report.intact is False
        assert report.status == IntegrityStatus.TAMPERED
        assert report.current_hash == hex_digest(b"statement \xff end", ContentKind.BINARY)

    @pytest.mark.asyncio
    async def test_undecodable_copy_of_text_is_tampered(
        self, engine: CustodyLedger, verifier: IntegrityVerifier, judge: Principal
    ) -> None:
        await engine.submit(b"statement - end", "EV-T3", judge, evidence_type=EvidenceType.TEXT)

        report = await verifier.verify_payload("EV-T3", b"statement \xff end")

        assert report.intact is False
        assert report.status == IntegrityStatus.TAMPERED
