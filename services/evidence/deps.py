"""
Service Dependencies
====================

Wiring of the custody engine and its collaborators for the HTTP layer.

Version: 0.1.0
"""

from custody.audit import AuditTrail, ErrorChannel
from custody.engine import CustodyLedger
from custody.integrity import IntegrityVerifier
from custody.ledger import LedgerClient, get_ledger_client
from custody.logging import get_logger
from custody.storage import EvidenceRepository, PayloadStore, build_payload_store, build_repository


logger = get_logger(__name__)


class ServiceContainer:
    """Engine, verifier and collaborators shared by all requests."""

    def __init__(
        self,
        repository: EvidenceRepository,
        ledger: LedgerClient,
        payloads: PayloadStore,
        channel: ErrorChannel | None = None,
    ) -> None:
        self.repository = repository
        self.ledger = ledger
        self.payloads = payloads
        self.channel = channel or ErrorChannel()
        self.engine = CustodyLedger(
            repository,
            ledger,
            payloads,
            audit=AuditTrail(repository, self.channel),
        )
        self.verifier = IntegrityVerifier(repository, payloads, ledger)

    @classmethod
    def from_settings(cls) -> "ServiceContainer":
        return cls(build_repository(), get_ledger_client(), build_payload_store())


# Global container instance
_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """FastAPI dependency returning the service container."""
    global _container

    if _container is None:
        _container = ServiceContainer.from_settings()
        logger.info("service_container_initialized")
    return _container


def set_container(container: ServiceContainer) -> None:
    """Install a custom container (tests, embedding)."""
    global _container
    _container = container


def reset_container() -> None:
    """Drop the container so it is rebuilt on next use."""
    global _container
    _container = None
