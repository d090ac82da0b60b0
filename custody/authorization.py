"""
Authorization Model
===================

Role hierarchy and capability rules for evidence handling.

    Action                  superadmin  judge        investigator               viewer
    Register evidence       yes         ledger role  ledger role                no
    View evidence           yes         yes          held it or uploaded it     yes
    Transfer any evidence   yes         yes          no                         no
    Transfer held evidence  yes         yes          only as current holder     no
    Assign role             any         not superadmin                          no
    Delete evidence         yes         no           no                         no
    Change evidence state   yes         yes          no                         no

``can_*`` predicates answer the question; ``require_*`` methods raise
``Forbidden`` naming the violated rule.

Version: 0.1.0
"""

from custody.errors import AuthorizationRule, Forbidden, InvalidRole
from custody.models.evidence import EvidenceRecord
from custody.models.identity import RESERVED_TRANSFER_ROLES, Identity, Principal, Role


_REGISTRANTS = frozenset({Role.SUPERADMIN, Role.JUDGE, Role.INVESTIGATOR})
_CUSTODIANS = frozenset({Role.SUPERADMIN, Role.JUDGE})


class AuthorizationModel:
    """
    Capability checks over principals and evidence records.

    Args:
        require_ledger_permission: judges and investigators may only
            register evidence while holding a ledger role grant
    """

    def __init__(self, require_ledger_permission: bool = True) -> None:
        self.require_ledger_permission = require_ledger_permission

    # =========================================================================
    # Registration
    # =========================================================================

    def needs_ledger_permission(self, principal: Principal) -> bool:
        """True if registering requires looking up a ledger grant for this principal."""
        return self.require_ledger_permission and principal.role in (Role.JUDGE, Role.INVESTIGATOR)

    def can_register(self, principal: Principal, ledger_permissioned: bool = True) -> bool:
        if principal.role not in _REGISTRANTS:
            return False
        return ledger_permissioned or not self.needs_ledger_permission(principal)

    def require_register(self, principal: Principal, ledger_permissioned: bool = True) -> None:
        if principal.role not in _REGISTRANTS:
            raise Forbidden(
                "Only superadmin, judge or investigator can register evidence",
                AuthorizationRule.REGISTER_ROLE,
            )
        if not self.can_register(principal, ledger_permissioned):
            raise Forbidden(
                "No ledger role grant to register evidence. Contact an admin.",
                AuthorizationRule.REGISTER_LEDGER_PERMISSION,
            )

    # =========================================================================
    # Viewing
    # =========================================================================

    def can_view(self, principal: Principal, record: EvidenceRecord) -> bool:
        if principal.role != Role.INVESTIGATOR:
            return True
        return principal.identity == record.uploaded_by or record.has_held(principal.identity)

    def require_view(self, principal: Principal, record: EvidenceRecord) -> None:
        if not self.can_view(principal, record):
            raise Forbidden(
                "Investigators can only view evidence they uploaded or have held",
                AuthorizationRule.VIEW_NOT_HOLDER,
            )

    # =========================================================================
    # Transfer
    # =========================================================================

    def validate_transfer_role(self, role: str | Role | None) -> Role | None:
        """
        Parse the role a transfer asks to assign.

        Raises:
            InvalidRole: admin/superadmin, or not a known role
        """
        if role is None:
            return None
        name = role.value if isinstance(role, Role) else str(role).strip().lower()
        if name in RESERVED_TRANSFER_ROLES:
            raise InvalidRole(
                "Cannot assign admin or superadmin role via transfer",
                details={"role": name},
            )
        return Role.parse(role)

    def can_transfer(self, principal: Principal, record: EvidenceRecord) -> bool:
        if principal.role in _CUSTODIANS:
            return True
        if principal.role == Role.INVESTIGATOR:
            return record.current_holder == principal.identity
        return False

    def require_transfer(
        self,
        principal: Principal,
        record: EvidenceRecord,
        new_role: Role | None = None,
        target: Identity | None = None,
    ) -> None:
        """
        Check a custody transfer.

        Args:
            principal: Caller
            record: Evidence being transferred
            new_role: Role the transfer would assign, already validated
            target: Registered identity of the new holder, if any
        """
        if principal.role not in _CUSTODIANS and principal.role != Role.INVESTIGATOR:
            raise Forbidden(
                "Only superadmin, judge or investigator can transfer custody",
                AuthorizationRule.TRANSFER_ROLE,
            )
        if not self.can_transfer(principal, record):
            raise Forbidden(
                "You can only transfer evidence you currently hold",
                AuthorizationRule.TRANSFER_NOT_HOLDER,
            )
        if new_role is not None and new_role.outranks(principal.role):
            raise Forbidden(
                f"Cannot assign role '{new_role.value}' above your own",
                AuthorizationRule.TRANSFER_ROLE_ABOVE_ACTOR,
            )
        if (
            new_role is not None
            and target is not None
            and target.role != new_role
            and target.role.outranks(principal.role)
        ):
            raise Forbidden(
                "Cannot change the role of a higher-privileged identity",
                AuthorizationRule.TRANSFER_TARGET_OUTRANKS_ACTOR,
            )

    # =========================================================================
    # Administration
    # =========================================================================

    def can_assign_role(self, principal: Principal, new_role: Role, current_role: Role | None = None) -> bool:
        if principal.role == Role.SUPERADMIN:
            return True
        if principal.role == Role.JUDGE:
            return new_role != Role.SUPERADMIN and current_role != Role.SUPERADMIN
        return False

    def require_assign_role(self, principal: Principal, new_role: Role, current_role: Role | None = None) -> None:
        if principal.role not in _CUSTODIANS:
            raise Forbidden(
                "Only superadmin or judge can assign roles",
                AuthorizationRule.ASSIGN_ROLE,
            )
        if new_role == Role.SUPERADMIN and principal.role != Role.SUPERADMIN:
            raise Forbidden(
                "Only superadmin can assign the superadmin role",
                AuthorizationRule.ASSIGN_SUPERADMIN,
            )
        if not self.can_assign_role(principal, new_role, current_role):
            raise Forbidden(
                "Judges cannot change a superadmin's role",
                AuthorizationRule.ASSIGN_TARGET_OUTRANKS_ACTOR,
            )

    def can_remove_identity(self, principal: Principal, wallet_address: str) -> bool:
        return principal.role == Role.SUPERADMIN and principal.identity != wallet_address

    def require_remove_identity(self, principal: Principal, wallet_address: str) -> None:
        if principal.role != Role.SUPERADMIN:
            raise Forbidden(
                "Only superadmin can remove identities",
                AuthorizationRule.REMOVE_IDENTITY,
            )
        if principal.identity == wallet_address:
            raise Forbidden(
                "Cannot remove yourself",
                AuthorizationRule.REMOVE_SELF,
            )

    def can_delete(self, principal: Principal) -> bool:
        return principal.role == Role.SUPERADMIN

    def require_delete(self, principal: Principal) -> None:
        if not self.can_delete(principal):
            raise Forbidden(
                "Only superadmin can delete evidence",
                AuthorizationRule.DELETE_EVIDENCE,
            )

    def can_change_state(self, principal: Principal) -> bool:
        return principal.role in _CUSTODIANS

    def require_change_state(self, principal: Principal) -> None:
        if not self.can_change_state(principal):
            raise Forbidden(
                "Only superadmin or judge can change evidence state",
                AuthorizationRule.CHANGE_STATE,
            )

    def require_ledger_admin(self, principal: Principal) -> None:
        if principal.role != Role.SUPERADMIN:
            raise Forbidden(
                "Only superadmin can manage ledger role grants",
                AuthorizationRule.LEDGER_ADMIN,
            )
