"""
Custody Errors
==============

Exception taxonomy for the custody engine. Every error carries a stable
``code`` and the HTTP status the service layer answers with.

Integrity mismatches are not errors; see ``custody.integrity``.
"""

from enum import Enum
from typing import Any


class AuthorizationRule(str, Enum):
    """Named authorization rules, reported with every ``Forbidden``."""

    REGISTER_ROLE = "register_requires_superadmin_judge_or_investigator"
    REGISTER_LEDGER_PERMISSION = "register_requires_ledger_role_grant"
    VIEW_NOT_HOLDER = "investigator_view_requires_custody_history"
    TRANSFER_ROLE = "transfer_requires_superadmin_judge_or_investigator"
    TRANSFER_NOT_HOLDER = "investigator_transfer_requires_current_holder"
    TRANSFER_ROLE_ABOVE_ACTOR = "transfer_cannot_assign_role_above_actor"
    TRANSFER_TARGET_OUTRANKS_ACTOR = "transfer_cannot_change_role_of_higher_identity"
    ASSIGN_ROLE = "assign_role_requires_superadmin_or_judge"
    ASSIGN_SUPERADMIN = "only_superadmin_assigns_superadmin"
    ASSIGN_TARGET_OUTRANKS_ACTOR = "judge_cannot_change_superadmin"
    REMOVE_IDENTITY = "remove_identity_requires_superadmin"
    REMOVE_SELF = "identity_cannot_remove_itself"
    DELETE_EVIDENCE = "delete_requires_superadmin"
    CHANGE_STATE = "state_change_requires_superadmin_or_judge"
    LEDGER_ADMIN = "ledger_role_grants_require_superadmin"


class CustodyError(Exception):
    """Base class for all custody engine errors."""

    code: str = "custody_error"
    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API error bodies."""
        return {
            "error": self.message,
            "error_code": self.code,
            "details": self.details or None,
        }


class InvalidInput(CustodyError):
    """Malformed or empty input."""

    code = "invalid_input"
    status_code = 400


class DuplicateId(CustodyError):
    """Evidence id already registered."""

    code = "duplicate_id"
    status_code = 409

    def __init__(self, evidence_id: str) -> None:
        super().__init__(
            f'Evidence ID "{evidence_id}" already exists',
            details={"evidence_id": evidence_id},
        )
        self.evidence_id = evidence_id


class NotFound(CustodyError):
    """Evidence record or identity does not exist."""

    code = "not_found"
    status_code = 404


class Forbidden(CustodyError):
    """Caller lacks the capability; ``rule`` names the violated rule."""

    code = "forbidden"
    status_code = 403

    def __init__(self, message: str, rule: AuthorizationRule) -> None:
        super().__init__(message, details={"rule": rule.value})
        self.rule = rule


class InvalidRole(CustodyError):
    """Unknown role string, or a role that may not be assigned here."""

    code = "invalid_role"
    status_code = 400


class InvalidTransition(CustodyError):
    """Evidence state change not allowed by the lifecycle."""

    code = "invalid_transition"
    status_code = 409


class PayloadMissing(CustodyError):
    """Stored evidence bytes cannot be read (loss or tampering)."""

    code = "payload_missing"
    status_code = 410


class LedgerUnavailable(CustodyError):
    """The external ledger could not be reached or did not confirm."""

    code = "ledger_unavailable"
    status_code = 503
