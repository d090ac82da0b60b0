"""
Identity Registry
=================

Wallet/account to role bindings, with the role-assignment rules of the
authorization model and the auto-registration performed by transfers.

Version: 0.1.0
"""

from custody.authorization import AuthorizationModel
from custody.config import settings
from custody.errors import NotFound
from custody.logging import get_logger
from custody.models.identity import Identity, Principal, Role, default_display_name, normalize_identity
from custody.storage.repository import EvidenceRepository

logger = get_logger(__name__)


class IdentityService:
    """Registry of identities and their single role."""

    def __init__(
        self,
        repository: EvidenceRepository,
        authorization: AuthorizationModel,
        default_transfer_role: str | Role | None = None,
    ) -> None:
        self._repository = repository
        self._authorization = authorization
        self.default_transfer_role = (
            authorization.validate_transfer_role(default_transfer_role or settings.custody.default_transfer_role)
            or Role.VIEWER
        )

    async def find(self, wallet_address: str) -> Identity | None:
        return await self._repository.get_identity(normalize_identity(wallet_address))

    async def get(self, wallet_address: str) -> Identity:
        identity = await self.find(wallet_address)
        if identity is None:
            raise NotFound(
                f"Identity '{wallet_address}' not found",
                details={"wallet_address": wallet_address},
            )
        return identity

    async def list(self) -> list[Identity]:
        return await self._repository.list_identities()

    async def assign_role(
        self,
        actor: Principal,
        wallet_address: str,
        role: str | Role,
        display_name: str | None = None,
    ) -> Identity:
        """
        Register an identity or change its role.

        Raises:
            InvalidRole: unknown role
            Forbidden: the actor may not make this assignment
        """
        new_role = Role.parse(role)
        wallet_address = normalize_identity(wallet_address)
        existing = await self._repository.get_identity(wallet_address)

        self._authorization.require_assign_role(actor, new_role, existing.role if existing else None)

        identity = Identity(
            wallet_address=wallet_address,
            role=new_role,
            display_name=display_name
            or (existing.display_name if existing else None)
            or default_display_name(wallet_address),
            added_by=existing.added_by if existing else actor.identity,
        )
        stored = await self._repository.upsert_identity(identity)

        logger.info(
            "identity_role_assigned",
            wallet_address=wallet_address,
            role=new_role.value,
            previous_role=existing.role.value if existing else None,
            actor=actor.identity,
        )
        return stored

    async def remove(self, actor: Principal, wallet_address: str) -> None:
        wallet_address = normalize_identity(wallet_address)
        self._authorization.require_remove_identity(actor, wallet_address)

        if not await self._repository.delete_identity(wallet_address):
            raise NotFound(
                f"Identity '{wallet_address}' not found",
                details={"wallet_address": wallet_address},
            )
        logger.info("identity_removed", wallet_address=wallet_address, actor=actor.identity)

    async def ensure_for_transfer(
        self,
        wallet_address: str,
        new_role: Role | None,
        added_by: str,
        display_name: str | None = None,
    ) -> Identity:
        """
        Make sure the receiving party of a transfer is registered.

        An unknown identity is created with ``new_role`` (or the default
        transfer role). A known identity only changes role when
        ``new_role`` is given and differs from its current one.
        """
        wallet_address = normalize_identity(wallet_address)
        existing = await self._repository.get_identity(wallet_address)

        if existing is None:
            identity = await self._repository.upsert_identity(
                Identity(
                    wallet_address=wallet_address,
                    role=new_role or self.default_transfer_role,
                    display_name=display_name or default_display_name(wallet_address),
                    added_by=added_by,
                )
            )
            logger.info(
                "identity_auto_registered",
                wallet_address=wallet_address,
                role=identity.role.value,
                added_by=added_by,
            )
            return identity

        if new_role is not None and new_role != existing.role:
            previous = existing.role
            existing.role = new_role
            identity = await self._repository.upsert_identity(existing)
            logger.info(
                "identity_role_updated_by_transfer",
                wallet_address=wallet_address,
                previous_role=previous.value,
                role=new_role.value,
                actor=added_by,
            )
            return identity

        return existing
