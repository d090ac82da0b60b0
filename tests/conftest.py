"""
Test Configuration
==================

Pytest fixtures for custody engine tests.
"""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment before any settings are loaded
os.environ["ENVIRONMENT"] = "testing"
os.environ["LEDGER_MODE"] = "mock"
os.environ["STORAGE_PAYLOAD_BACKEND"] = "memory"
os.environ["STORAGE_METADATA_BACKEND"] = "memory"
os.environ["LEDGER_RETRY_BACKOFF_SECONDS"] = "0"

from custody.audit import AuditTrail, ErrorChannel  # noqa: E402
from custody.engine import CustodyLedger  # noqa: E402
from custody.integrity import IntegrityVerifier  # noqa: E402
from custody.ledger import LedgerRole, MockLedgerClient  # noqa: E402
from custody.models import Principal, Role  # noqa: E402
from custody.storage import InMemoryEvidenceRepository, InMemoryPayloadStore  # noqa: E402


SUPERADMIN = "0x" + "a1" * 20
JUDGE = "0x" + "b2" * 20
INVESTIGATOR_A = "0x" + "c3" * 20
INVESTIGATOR_B = "0x" + "d4" * 20
VIEWER = "0x" + "e5" * 20
OUTSIDER = "0x" + "f6" * 20


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
def superadmin() -> Principal:
    return Principal(identity=SUPERADMIN, role=Role.SUPERADMIN)


@pytest.fixture
def judge() -> Principal:
    return Principal(identity=JUDGE, role=Role.JUDGE)


@pytest.fixture
def investigator() -> Principal:
    return Principal(identity=INVESTIGATOR_A, role=Role.INVESTIGATOR)


@pytest.fixture
def investigator_b() -> Principal:
    return Principal(identity=INVESTIGATOR_B, role=Role.INVESTIGATOR)


@pytest.fixture
def viewer() -> Principal:
    return Principal(identity=VIEWER, role=Role.VIEWER)


@pytest.fixture
def repository() -> InMemoryEvidenceRepository:
    return InMemoryEvidenceRepository()


@pytest.fixture
def payloads() -> InMemoryPayloadStore:
    return InMemoryPayloadStore()


@pytest.fixture
def channel() -> ErrorChannel:
    return ErrorChannel()


@pytest_asyncio.fixture
async def ledger() -> AsyncGenerator[MockLedgerClient, None]:
    """Fresh mock ledger with registration grants for the judge and investigators."""
    client = MockLedgerClient()
    client.clear_all()
    await client.connect()
    await client.grant_role(JUDGE, LedgerRole.JUDGE_ROLE)
    await client.grant_role(INVESTIGATOR_A, LedgerRole.INVESTIGATOR_ROLE)
    await client.grant_role(INVESTIGATOR_B, LedgerRole.INVESTIGATOR_ROLE)
    yield client
    await client.disconnect()


@pytest.fixture
def audit(repository: InMemoryEvidenceRepository, channel: ErrorChannel) -> AuditTrail:
    return AuditTrail(repository, channel, backoff_seconds=0)


@pytest.fixture
def engine(
    repository: InMemoryEvidenceRepository,
    ledger: MockLedgerClient,
    payloads: InMemoryPayloadStore,
    audit: AuditTrail,
) -> CustodyLedger:
    return CustodyLedger(repository, ledger, payloads, audit=audit)


@pytest.fixture
def verifier(
    repository: InMemoryEvidenceRepository,
    ledger: MockLedgerClient,
    payloads: InMemoryPayloadStore,
) -> IntegrityVerifier:
    return IntegrityVerifier(repository, payloads, ledger)


@pytest.fixture
def auth_headers():
    """Build bearer headers for a principal."""
    from custody.auth import create_access_token

    def _headers(principal: Principal) -> dict[str, str]:
        token = create_access_token({"sub": principal.identity, "role": principal.role.value})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def evidence_client(
    repository: InMemoryEvidenceRepository,
    ledger: MockLedgerClient,
    payloads: InMemoryPayloadStore,
    channel: ErrorChannel,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test client for the Evidence Service over in-memory components."""
    from services.evidence.deps import ServiceContainer, reset_container, set_container
    from services.evidence.main import app

    container = ServiceContainer(repository, ledger, payloads, channel)
    set_container(container)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    await container.engine.audit.flush()
    reset_container()
