"""
Ledger Module
=============

Abstraction layer for the append-only evidence ledger.

Supports:
- Mock (development/testing, in-memory)
- Journal (hash-chained JSON Lines file)

Usage:
    from custody.ledger import get_ledger_client

    ledger = get_ledger_client()
    await ledger.connect()

    receipt = await ledger.register_evidence(
        evidence_id="EV-2024-001",
        content_hash="9f86d0...",
        registrant="0xabc...",
    )
    history = await ledger.get_history("EV-2024-001")
"""

from custody.ledger.client import (
    LedgerAction,
    LedgerClient,
    LedgerEvent,
    LedgerEvidence,
    LedgerReceipt,
    LedgerRole,
    get_ledger_client,
    reset_ledger_client,
    set_ledger_client,
)
from custody.ledger.journal import JournalLedgerClient
from custody.ledger.mock import MockLedgerClient

__all__ = [
    # Client
    "LedgerClient",
    "get_ledger_client",
    "set_ledger_client",
    "reset_ledger_client",
    # Models
    "LedgerAction",
    "LedgerEvent",
    "LedgerEvidence",
    "LedgerReceipt",
    "LedgerRole",
    # Implementations
    "JournalLedgerClient",
    "MockLedgerClient",
]
