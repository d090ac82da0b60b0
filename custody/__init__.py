"""
Custody
=======

Evidence custody, authorization and integrity engine.

Usage:
    from custody import CustodyLedger, IntegrityVerifier
    from custody.ledger import get_ledger_client
    from custody.storage import build_payload_store, build_repository

    repository = build_repository()
    payloads = build_payload_store()
    engine = CustodyLedger(repository, get_ledger_client(), payloads)
    verifier = IntegrityVerifier(repository, payloads, engine.ledger)
"""

from custody.audit import AuditFailure, AuditTrail, ErrorChannel
from custody.authorization import AuthorizationModel
from custody.engine import CustodyLedger, MutationResult
from custody.identities import IdentityService
from custody.integrity import IntegrityReport, IntegrityStatus, IntegrityVerifier
from custody.locks import KeyedLock

__version__ = "0.1.0"

__all__ = [
    "AuditFailure",
    "AuditTrail",
    "AuthorizationModel",
    "CustodyLedger",
    "ErrorChannel",
    "IdentityService",
    "IntegrityReport",
    "IntegrityStatus",
    "IntegrityVerifier",
    "KeyedLock",
    "MutationResult",
]
