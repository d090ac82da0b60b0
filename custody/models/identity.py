"""
Identity Models
===============

Role hierarchy, authenticated principals and registered identities.

Version: 0.1.0
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from custody.errors import InvalidInput, InvalidRole


# Role names that can never be handed out through a custody transfer
RESERVED_TRANSFER_ROLES = frozenset({"admin", "superadmin"})


class Role(str, Enum):
    """Handler roles, most privileged first."""

    SUPERADMIN = "superadmin"
    JUDGE = "judge"
    INVESTIGATOR = "investigator"
    VIEWER = "viewer"

    @property
    def rank(self) -> int:
        """Privilege level; higher outranks lower."""
        return _ROLE_RANK[self]

    def outranks(self, other: "Role") -> bool:
        """True if this role is strictly more privileged than ``other``."""
        return self.rank > other.rank

    def at_least(self, other: "Role") -> bool:
        """True if this role is as privileged as ``other`` or more."""
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: "str | Role") -> "Role":
        """
        Parse a role string at the system boundary.

        Comparison is case-insensitive; anything outside the closed set
        raises ``InvalidRole``.
        """
        if isinstance(value, Role):
            return value
        if not isinstance(value, str):
            raise InvalidRole(f"Role must be a string, got {type(value).__name__}")
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidRole(
                f"Unknown role '{value}'",
                details={"allowed": [r.value for r in cls]},
            ) from None


_ROLE_RANK = {
    Role.SUPERADMIN: 3,
    Role.JUDGE: 2,
    Role.INVESTIGATOR: 1,
    Role.VIEWER: 0,
}


def normalize_identity(value: str) -> str:
    """Canonical form of a wallet address / account id."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput("Identity must be a non-empty string")
    return value.strip().lower()


def default_display_name(wallet_address: str) -> str:
    """Short display name used when an identity is auto-registered."""
    if len(wallet_address) <= 10:
        return f"User {wallet_address}"
    return f"User {wallet_address[:6]}...{wallet_address[-4:]}"


class Principal(BaseModel):
    """The calling party as supplied by the identity provider."""

    model_config = ConfigDict(frozen=True)

    identity: str
    role: Role
    display_name: str | None = None

    @field_validator("identity", mode="before")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_identity(v)

    @field_validator("role", mode="before")
    @classmethod
    def _parse_role(cls, v: str | Role) -> Role:
        return Role.parse(v)


class Identity(BaseModel):
    """A registered wallet / account and its single role."""

    wallet_address: str
    role: Role
    display_name: str | None = None
    added_by: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("wallet_address", mode="before")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_identity(v)

    def as_principal(self) -> Principal:
        return Principal(
            identity=self.wallet_address,
            role=self.role,
            display_name=self.display_name,
        )
