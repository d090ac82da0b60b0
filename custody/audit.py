"""
Audit Trail
===========

Writes custody log entries on behalf of the engine.

A log write never fails the operation it describes: persistence is
retried, then the entry is dropped with a warning and an ``AuditFailure``
is published on the ``ErrorChannel``. Access logging runs in the
background (``record_nowait``); ``flush()`` waits for it.

Version: 0.1.0
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from custody.config import settings
from custody.logging import get_logger
from custody.models.evidence import CustodyAction, CustodyLogEntry
from custody.storage.repository import EvidenceRepository

logger = get_logger(__name__)


class AuditFailure(BaseModel):
    """A custody log entry that could not be persisted."""

    evidence_id: str
    actor: str
    action: CustodyAction
    error: str
    entry_id: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ErrorChannel:
    """
    Collects audit failures for operators and dashboards.

    Failures are kept until drained; subscribers are called synchronously
    as each failure is reported.
    """

    def __init__(self) -> None:
        self._failures: list[AuditFailure] = []
        self._subscribers: list[Callable[[AuditFailure], None]] = []

    def report(self, failure: AuditFailure) -> None:
        self._failures.append(failure)
        logger.warning(
            "audit_failure_reported",
            evidence_id=failure.evidence_id,
            action=failure.action.value,
            error=failure.error,
        )
        for callback in list(self._subscribers):
            try:
                callback(failure)
            except Exception as e:
                logger.error("audit_subscriber_failed", callback=repr(callback), error=str(e))

    def subscribe(self, callback: Callable[[AuditFailure], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[AuditFailure], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def drain(self) -> list[AuditFailure]:
        """Return and clear all pending failures."""
        failures, self._failures = self._failures, []
        return failures

    @property
    def pending(self) -> int:
        return len(self._failures)


class AuditTrail:
    """Custody log writer with retry and failure reporting."""

    def __init__(
        self,
        repository: EvidenceRepository,
        channel: ErrorChannel | None = None,
        attempts: int | None = None,
        backoff_seconds: float = 0.05,
    ) -> None:
        self._repository = repository
        self.channel = channel or ErrorChannel()
        self._attempts = attempts or settings.custody.log_write_attempts
        self._backoff = backoff_seconds
        self._pending: set[asyncio.Task[CustodyLogEntry | None]] = set()

    async def _persist(self, entry: CustodyLogEntry) -> None:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(Exception),
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=self._backoff, max=1),
            before_sleep=lambda retry_state: logger.warning(
                "custody_log_retry",
                evidence_id=entry.evidence_id,
                attempt=retry_state.attempt_number,
            ),
            reraise=True,
        ):
            with attempt:
                await self._repository.append_log(entry)

    async def record(
        self,
        evidence_id: str,
        actor: str,
        action: CustodyAction,
        metadata: dict[str, Any] | None = None,
    ) -> CustodyLogEntry | None:
        """
        Persist one custody log entry.

        Returns:
            The stored entry, or None if it was dropped after retries
        """
        entry = CustodyLogEntry(
            evidence_id=evidence_id,
            actor=actor,
            action=action,
            metadata=metadata,
        )
        try:
            await self._persist(entry)
        except Exception as e:
            logger.warning(
                "custody_log_dropped",
                evidence_id=evidence_id,
                action=action.value,
                attempts=self._attempts,
                error=str(e),
            )
            self.channel.report(
                AuditFailure(
                    evidence_id=evidence_id,
                    actor=actor,
                    action=action,
                    error=str(e),
                    entry_id=entry.id,
                )
            )
            return None
        return entry

    def record_nowait(
        self,
        evidence_id: str,
        actor: str,
        action: CustodyAction,
        metadata: dict[str, Any] | None = None,
    ) -> asyncio.Task[CustodyLogEntry | None]:
        """Schedule ``record`` in the background and return its task."""
        task = asyncio.create_task(self.record(evidence_id, actor, action, metadata))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def flush(self) -> None:
        """Wait for every background log write scheduled so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
