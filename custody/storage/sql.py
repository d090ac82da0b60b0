"""
SQL Repository
==============

Async SQLAlchemy 2.0 implementation of ``EvidenceRepository``.
PostgreSQL (asyncpg) in deployments; any async dialect works.

The unique primary key on ``evidence.evidence_id`` makes registration
atomic: a losing concurrent insert surfaces as ``DuplicateId``.

Version: 0.1.0
"""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, delete, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from custody.config import settings
from custody.errors import DuplicateId, NotFound
from custody.logging import get_logger
from custody.models.evidence import (
    ContentKind,
    CustodyAction,
    CustodyLogEntry,
    EvidenceRecord,
    EvidenceState,
    EvidenceType,
)
from custody.models.identity import Identity, Role
from custody.storage.repository import EvidenceRepository


logger = get_logger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for ORM models."""

    pass


class EvidenceRow(Base):
    __tablename__ = "evidence"

    evidence_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    content_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    evidence_type: Mapped[str] = mapped_column(String(32), nullable=False)
    file_name: Mapped[str | None] = mapped_column(String(255))
    mime_type: Mapped[str | None] = mapped_column(String(255))
    payload_locator: Mapped[str | None] = mapped_column(String(512))
    uploaded_by: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    current_holder: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    previous_holders: Mapped[list[str]] = mapped_column(JSON, default=list)
    state: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    blockchain_tx_hash: Mapped[str | None] = mapped_column(String(128))


class CustodyLogRow(Base):
    __tablename__ = "custody_logs"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entry_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    evidence_id: Mapped[str] = mapped_column(
        String(200),
        ForeignKey("evidence.evidence_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    actor: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)


class IdentityRow(Base):
    __tablename__ = "identities"

    wallet_address: Mapped[str] = mapped_column(String(255), primary_key=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255))
    added_by: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _to_record(row: EvidenceRow) -> EvidenceRecord:
    return EvidenceRecord(
        evidence_id=row.evidence_id,
        content_hash=row.content_hash,
        content_kind=ContentKind(row.content_kind),
        evidence_type=EvidenceType(row.evidence_type),
        file_name=row.file_name,
        mime_type=row.mime_type,
        payload_locator=row.payload_locator,
        uploaded_by=row.uploaded_by,
        current_holder=row.current_holder,
        previous_holders=list(row.previous_holders or []),
        state=EvidenceState(row.state),
        created_at=_aware(row.created_at),
        blockchain_tx_hash=row.blockchain_tx_hash,
    )


def _to_entry(row: CustodyLogRow) -> CustodyLogEntry:
    return CustodyLogEntry(
        id=row.entry_id,
        evidence_id=row.evidence_id,
        actor=row.actor,
        action=CustodyAction(row.action),
        timestamp=_aware(row.timestamp),
        metadata=row.details,
    )


def _to_identity(row: IdentityRow) -> Identity:
    return Identity(
        wallet_address=row.wallet_address,
        role=Role(row.role),
        display_name=row.display_name,
        added_by=row.added_by,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


class DatabaseClient:
    """
    Async database client wrapper.

    Manages connection pooling and session lifecycle.
    """

    _engine: AsyncEngine | None = None
    _session_factory: async_sessionmaker[AsyncSession] | None = None

    @classmethod
    def get_engine(cls) -> AsyncEngine:
        """Get or create the async engine."""
        if cls._engine is None:
            cls._engine = create_async_engine(
                settings.postgres.async_url,
                echo=False,
                pool_pre_ping=True,
                pool_recycle=3600,
            )
            logger.info(
                "database_engine_created",
                host=settings.postgres.host,
                database=settings.postgres.db,
            )
        return cls._engine

    @classmethod
    def get_session_factory(cls) -> async_sessionmaker[AsyncSession]:
        """Get or create the session factory."""
        if cls._session_factory is None:
            cls._session_factory = async_sessionmaker(
                cls.get_engine(),
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        return cls._session_factory

    @classmethod
    async def create_schema(cls, engine: AsyncEngine | None = None) -> None:
        """Create all custody tables if missing."""
        async with (engine or cls.get_engine()).begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_schema_created")

    @classmethod
    async def close(cls) -> None:
        """Close the engine and release all connections."""
        if cls._engine is not None:
            await cls._engine.dispose()
            cls._engine = None
            cls._session_factory = None
            logger.info("database_engine_closed")


class SqlEvidenceRepository(EvidenceRepository):
    """Repository over an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _require(self, session: AsyncSession, evidence_id: str) -> EvidenceRow:
        row = await session.get(EvidenceRow, evidence_id)
        if row is None:
            raise NotFound(
                f'Evidence "{evidence_id}" not found',
                details={"evidence_id": evidence_id},
            )
        return row

    # =========================================================================
    # Evidence
    # =========================================================================

    async def insert_evidence(self, record: EvidenceRecord) -> EvidenceRecord:
        row = EvidenceRow(
            evidence_id=record.evidence_id,
            content_hash=record.content_hash,
            content_kind=record.content_kind.value,
            evidence_type=record.evidence_type.value,
            file_name=record.file_name,
            mime_type=record.mime_type,
            payload_locator=record.payload_locator,
            uploaded_by=record.uploaded_by,
            current_holder=record.current_holder,
            previous_holders=list(record.previous_holders),
            state=record.state.value,
            created_at=record.created_at,
            blockchain_tx_hash=record.blockchain_tx_hash,
        )
        try:
            async with self._session() as session:
                session.add(row)
        except IntegrityError:
            raise DuplicateId(record.evidence_id) from None
        return record

    async def get_evidence(self, evidence_id: str) -> EvidenceRecord | None:
        async with self._session() as session:
            row = await session.get(EvidenceRow, evidence_id)
            return _to_record(row) if row else None

    async def list_evidence(self) -> list[EvidenceRecord]:
        async with self._session() as session:
            result = await session.execute(select(EvidenceRow).order_by(EvidenceRow.created_at.desc()))
            return [_to_record(r) for r in result.scalars().all()]

    async def update_holder(self, evidence_id: str, new_holder: str) -> EvidenceRecord:
        async with self._session() as session:
            row = await self._require(session, evidence_id)
            previous = list(row.previous_holders or [])
            if row.current_holder != new_holder and row.current_holder not in previous:
                previous.append(row.current_holder)
            # Reassign so the JSON column is flagged dirty
            row.previous_holders = previous
            row.current_holder = new_holder
            return _to_record(row)

    async def update_state(self, evidence_id: str, state: EvidenceState) -> EvidenceRecord:
        async with self._session() as session:
            row = await self._require(session, evidence_id)
            row.state = state.value
            return _to_record(row)

    async def delete_evidence(self, evidence_id: str) -> bool:
        async with self._session() as session:
            result = await session.execute(delete(EvidenceRow).where(EvidenceRow.evidence_id == evidence_id))
            return (result.rowcount or 0) > 0

    # =========================================================================
    # Custody log
    # =========================================================================

    async def append_log(self, entry: CustodyLogEntry) -> CustodyLogEntry:
        async with self._session() as session:
            session.add(
                CustodyLogRow(
                    entry_id=entry.id,
                    evidence_id=entry.evidence_id,
                    actor=entry.actor,
                    action=entry.action.value,
                    timestamp=entry.timestamp,
                    details=entry.metadata,
                )
            )
        return entry

    async def list_logs(self, evidence_id: str | None = None) -> list[CustodyLogEntry]:
        stmt = select(CustodyLogRow).order_by(CustodyLogRow.seq)
        if evidence_id is not None:
            stmt = stmt.where(CustodyLogRow.evidence_id == evidence_id)
        async with self._session() as session:
            result = await session.execute(stmt)
            return [_to_entry(r) for r in result.scalars().all()]

    async def purge_logs(self, evidence_id: str) -> int:
        async with self._session() as session:
            result = await session.execute(
                delete(CustodyLogRow).where(CustodyLogRow.evidence_id == evidence_id)
            )
            return result.rowcount or 0

    # =========================================================================
    # Identities
    # =========================================================================

    async def get_identity(self, wallet_address: str) -> Identity | None:
        async with self._session() as session:
            row = await session.get(IdentityRow, wallet_address)
            return _to_identity(row) if row else None

    async def list_identities(self) -> list[Identity]:
        async with self._session() as session:
            result = await session.execute(select(IdentityRow).order_by(IdentityRow.created_at.desc()))
            return [_to_identity(r) for r in result.scalars().all()]

    async def upsert_identity(self, identity: Identity) -> Identity:
        now = datetime.now(UTC)
        async with self._session() as session:
            row = await session.get(IdentityRow, identity.wallet_address)
            if row is None:
                row = IdentityRow(
                    wallet_address=identity.wallet_address,
                    created_at=identity.created_at,
                )
                session.add(row)
            row.role = identity.role.value
            row.display_name = identity.display_name
            row.added_by = identity.added_by
            row.updated_at = now
            return _to_identity(row)

    async def delete_identity(self, wallet_address: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                delete(IdentityRow).where(IdentityRow.wallet_address == wallet_address)
            )
            return (result.rowcount or 0) > 0

    async def health_check(self) -> dict[str, Any]:
        """
        Check database health.

        Returns:
            dict with status and latency
        """
        try:
            start = time.perf_counter()
            async with self._session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                _ = result.scalar()
            latency_ms = (time.perf_counter() - start) * 1000

            return {
                "status": "healthy",
                "backend": "sql",
                "latency_ms": round(latency_ms, 2),
            }
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            return {
                "status": "unhealthy",
                "backend": "sql",
                "error": str(e),
            }
