"""
Storage Module
==============

Payload stores (evidence bytes) and evidence repositories (custody
metadata, custody log, identity registry).

Usage:
    from custody.storage import build_payload_store, build_repository

    payloads = build_payload_store()
    repository = build_repository()
"""

from custody.config import StorageBackend, settings
from custody.logging import get_logger
from custody.storage.payloads import InMemoryPayloadStore, LocalPayloadStore, PayloadStore
from custody.storage.repository import EvidenceRepository, InMemoryEvidenceRepository


logger = get_logger(__name__)


def build_payload_store() -> PayloadStore:
    """Create the payload store selected by ``STORAGE_PAYLOAD_BACKEND``."""
    backend = settings.storage.payload_backend
    if backend == StorageBackend.MEMORY:
        store: PayloadStore = InMemoryPayloadStore()
    elif backend == StorageBackend.LOCAL:
        store = LocalPayloadStore(settings.storage.base_dir)
    else:
        raise ValueError(f"Unsupported payload backend: {backend}")

    logger.info("payload_store_initialized", backend=backend.value)
    return store


def build_repository() -> EvidenceRepository:
    """Create the repository selected by ``STORAGE_METADATA_BACKEND``."""
    backend = settings.storage.metadata_backend
    if backend == StorageBackend.MEMORY:
        repository: EvidenceRepository = InMemoryEvidenceRepository()
    elif backend == StorageBackend.POSTGRES:
        from custody.storage.sql import DatabaseClient, SqlEvidenceRepository

        repository = SqlEvidenceRepository(DatabaseClient.get_session_factory())
    else:
        raise ValueError(f"Unsupported metadata backend: {backend}")

    logger.info("repository_initialized", backend=backend.value)
    return repository


__all__ = [
    # Payloads
    "PayloadStore",
    "LocalPayloadStore",
    "InMemoryPayloadStore",
    "build_payload_store",
    # Repositories
    "EvidenceRepository",
    "InMemoryEvidenceRepository",
    "build_repository",
]
