"""
Ledger Call Guards
==================

Timeouts for every ledger call and retries for idempotent reads.

Writes are bounded but never retried here: a repeated register or
transfer is not automatically safe and is left to the caller.

Version: 0.1.0
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from custody.errors import CustodyError, LedgerUnavailable
from custody.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def guarded(call: Awaitable[T], operation: str, timeout: float) -> T:
    """
    Await a ledger call with a deadline.

    Domain errors raised by the ledger (``DuplicateId``, ``NotFound``,
    ``LedgerUnavailable``) pass through; timeouts and any other failure
    become ``LedgerUnavailable``.
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except CustodyError:
        raise
    except TimeoutError:
        logger.error("ledger_call_timeout", operation=operation, timeout=timeout)
        raise LedgerUnavailable(
            f"Ledger did not confirm {operation} within {timeout}s",
            details={"operation": operation},
        ) from None
    except Exception as e:
        logger.error("ledger_call_failed", operation=operation, error=str(e))
        raise LedgerUnavailable(
            f"Ledger call {operation} failed: {e}",
            details={"operation": operation},
        ) from e


async def read_with_retry(
    factory: Callable[[], Awaitable[T]],
    operation: str,
    timeout: float,
    attempts: int,
    backoff_seconds: float,
) -> T:
    """Run an idempotent ledger read, retrying ``LedgerUnavailable``."""
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(LedgerUnavailable),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=backoff_seconds, max=5),
        before_sleep=lambda retry_state: logger.warning(
            "ledger_read_retry",
            operation=operation,
            attempt=retry_state.attempt_number,
        ),
        reraise=True,
    ):
        with attempt:
            return await guarded(factory(), operation, timeout)
    raise AssertionError("unreachable")
