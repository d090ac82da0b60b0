"""
Unit tests for evidence repositories.

Every test runs against the in-memory repository and the SQL repository
(SQLite via aiosqlite).
"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from custody.errors import DuplicateId, NotFound
from custody.hashing import hex_digest
from custody.models import (
    CustodyAction,
    CustodyLogEntry,
    EvidenceRecord,
    EvidenceState,
    Identity,
    Role,
)
from custody.storage import EvidenceRepository, InMemoryEvidenceRepository
from custody.storage.sql import DatabaseClient, SqlEvidenceRepository


ALICE = "0x" + "aa" * 20
BOB = "0x" + "bb" * 20
CAROL = "0x" + "cc" * 20


def _record(evidence_id: str, created_at: datetime | None = None) -> EvidenceRecord:
    return EvidenceRecord(
        evidence_id=evidence_id,
        content_hash=hex_digest(evidence_id.encode()),
        uploaded_by=ALICE,
        current_holder=ALICE,
        file_name="scene.jpg",
        created_at=created_at or datetime.now(UTC),
        blockchain_tx_hash="0x" + "12" * 32,
    )


@pytest_asyncio.fixture(params=["memory", "sql"])
async def repo(request: pytest.FixtureRequest) -> AsyncGenerator[EvidenceRepository, None]:
    if request.param == "memory":
        yield InMemoryEvidenceRepository()
        return

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await DatabaseClient.create_schema(engine)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield SqlEvidenceRepository(factory)
    await engine.dispose()


class TestEvidenceRows:
    """Tests for evidence record persistence."""

    @pytest.mark.asyncio
    async def test_insert_and_get(self, repo: EvidenceRepository) -> None:
        record = _record("EV-1")
        await repo.insert_evidence(record)

        stored = await repo.get_evidence("EV-1")

        assert stored is not None
        assert stored.content_hash == record.content_hash
        assert stored.uploaded_by == ALICE
        assert stored.current_holder == ALICE
        assert stored.previous_holders == []
        assert stored.state == EvidenceState.ACTIVE
        assert stored.file_name == "scene.jpg"
        assert stored.blockchain_tx_hash == record.blockchain_tx_hash

    @pytest.mark.asyncio
    async def test_duplicate_insert(self, repo: EvidenceRepository) -> None:
        await repo.insert_evidence(_record("EV-1"))

        duplicate = _record("EV-1").model_copy(update={"content_hash": hex_digest(b"other")})
        with pytest.raises(DuplicateId):
            await repo.insert_evidence(duplicate)

        assert (await repo.get_evidence("EV-1")).content_hash == hex_digest(b"EV-1")

    @pytest.mark.asyncio
    async def test_get_missing(self, repo: EvidenceRepository) -> None:
        assert await repo.get_evidence("EV-NONE") is None

    @pytest.mark.asyncio
    async def test_list_newest_first(self, repo: EvidenceRepository) -> None:
        now = datetime.now(UTC)
        await repo.insert_evidence(_record("EV-OLD", now - timedelta(hours=2)))
        await repo.insert_evidence(_record("EV-NEW", now))
        await repo.insert_evidence(_record("EV-MID", now - timedelta(hours=1)))

        assert [r.evidence_id for r in await repo.list_evidence()] == ["EV-NEW", "EV-MID", "EV-OLD"]

    @pytest.mark.asyncio
    async def test_update_holder_tracks_history(self, repo: EvidenceRepository) -> None:
        await repo.insert_evidence(_record("EV-1"))

        await repo.update_holder("EV-1", BOB)
        await repo.update_holder("EV-1", CAROL)
        updated = await repo.update_holder("EV-1", ALICE)

        assert updated.current_holder == ALICE
        assert updated.previous_holders == [ALICE, BOB, CAROL]
        assert (await repo.get_evidence("EV-1")).previous_holders == [ALICE, BOB, CAROL]

    @pytest.mark.asyncio
    async def test_update_state(self, repo: EvidenceRepository) -> None:
        await repo.insert_evidence(_record("EV-1"))

        updated = await repo.update_state("EV-1", EvidenceState.SEALED)

        assert updated.state == EvidenceState.SEALED
        assert (await repo.get_evidence("EV-1")).state == EvidenceState.SEALED

    @pytest.mark.asyncio
    async def test_updates_on_missing_record(self, repo: EvidenceRepository) -> None:
        with pytest.raises(NotFound):
            await repo.update_holder("EV-NONE", BOB)
        with pytest.raises(NotFound):
            await repo.update_state("EV-NONE", EvidenceState.SEALED)

    @pytest.mark.asyncio
    async def test_delete(self, repo: EvidenceRepository) -> None:
        await repo.insert_evidence(_record("EV-1"))

        assert await repo.delete_evidence("EV-1") is True
        assert await repo.delete_evidence("EV-1") is False
        assert await repo.get_evidence("EV-1") is None

    @pytest.mark.asyncio
    async def test_health_check(self, repo: EvidenceRepository) -> None:
        assert (await repo.health_check())["status"] == "healthy"


class TestCustodyLogRows:
    """Tests for the custody log."""

    @pytest.mark.asyncio
    async def test_insertion_order_and_filter(self, repo: EvidenceRepository) -> None:
        await repo.insert_evidence(_record("EV-1"))
        await repo.insert_evidence(_record("EV-2"))
        for evidence_id, action in [
            ("EV-1", CustodyAction.UPLOADED),
            ("EV-2", CustodyAction.UPLOADED),
            ("EV-1", CustodyAction.VIEWED),
            ("EV-1", CustodyAction.TRANSFERRED),
        ]:
            await repo.append_log(CustodyLogEntry(evidence_id=evidence_id, actor=ALICE, action=action))

        assert [e.action for e in await repo.list_logs("EV-1")] == [
            CustodyAction.UPLOADED,
            CustodyAction.VIEWED,
            CustodyAction.TRANSFERRED,
        ]
        assert len(await repo.list_logs()) == 4

    @pytest.mark.asyncio
    async def test_metadata_round_trip(self, repo: EvidenceRepository) -> None:
        await repo.insert_evidence(_record("EV-1"))
        entry = CustodyLogEntry(
            evidence_id="EV-1",
            actor=ALICE,
            action=CustodyAction.TRANSFERRED,
            metadata={"previous_holder": ALICE, "new_holder": BOB, "transfer_type": "full_custody"},
        )
        await repo.append_log(entry)

        stored = (await repo.list_logs("EV-1"))[0]

        assert stored.id == entry.id
        assert stored.actor == ALICE
        assert stored.metadata == entry.metadata
        assert stored.timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_purge(self, repo: EvidenceRepository) -> None:
        await repo.insert_evidence(_record("EV-1"))
        await repo.insert_evidence(_record("EV-2"))
        for evidence_id in ("EV-1", "EV-1", "EV-2"):
            await repo.append_log(CustodyLogEntry(evidence_id=evidence_id, actor=ALICE, action=CustodyAction.VIEWED))

        assert await repo.purge_logs("EV-1") == 2
        assert await repo.list_logs("EV-1") == []
        assert len(await repo.list_logs("EV-2")) == 1
        assert await repo.purge_logs("EV-1") == 0


class TestIdentityRows:
    """Tests for the identity registry."""

    @pytest.mark.asyncio
    async def test_upsert_and_get(self, repo: EvidenceRepository) -> None:
        await repo.upsert_identity(Identity(wallet_address=BOB, role=Role.INVESTIGATOR, added_by=ALICE))

        identity = await repo.get_identity(BOB)

        assert identity is not None
        assert identity.role == Role.INVESTIGATOR
        assert identity.added_by == ALICE

    @pytest.mark.asyncio
    async def test_upsert_keeps_created_at(self, repo: EvidenceRepository) -> None:
        first = await repo.upsert_identity(Identity(wallet_address=BOB, role=Role.VIEWER))
        second = await repo.upsert_identity(Identity(wallet_address=BOB, role=Role.JUDGE))

        assert second.role == Role.JUDGE
        assert abs((second.created_at - first.created_at).total_seconds()) < 1
        assert len(await repo.list_identities()) == 1

    @pytest.mark.asyncio
    async def test_delete(self, repo: EvidenceRepository) -> None:
        await repo.upsert_identity(Identity(wallet_address=BOB, role=Role.VIEWER))

        assert await repo.delete_identity(BOB) is True
        assert await repo.delete_identity(BOB) is False
        assert await repo.get_identity(BOB) is None
