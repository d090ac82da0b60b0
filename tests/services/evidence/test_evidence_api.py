"""Tests for the Evidence Service HTTP API."""

import pytest
from httpx import AsyncClient

from custody.ledger import MockLedgerClient
from custody.models import Principal
from custody.storage import InMemoryPayloadStore

from tests.conftest import OUTSIDER


PHOTO = b"\xff\xd8\xff\xe0 evidence photo bytes"


async def _upload(
    client: AsyncClient,
    headers: dict[str, str],
    evidence_id: str = "EV-API-1",
    payload: bytes = PHOTO,
) -> dict:
    response = await client.post(
        "/api/v1/evidence/",
        headers=headers,
        data={"evidence_id": evidence_id, "evidence_type": "image"},
        files={"file": ("scene.jpg", payload, "image/jpeg")},
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestHealth:
    """Tests for service endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, evidence_client: AsyncClient) -> None:
        response = await evidence_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert set(body["components"]) == {"repository", "payloads", "ledger", "audit"}

    @pytest.mark.asyncio
    async def test_root(self, evidence_client: AsyncClient) -> None:
        response = await evidence_client.get("/")
        assert response.json()["service"] == "Evidence Custody Service"


class TestEvidenceEndpoints:
    """Tests for evidence intake, viewing and custody."""

    @pytest.mark.asyncio
    async def test_requires_token(self, evidence_client: AsyncClient) -> None:
        response = await evidence_client.get("/api/v1/evidence/")

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_upload_and_view(
        self, evidence_client: AsyncClient, auth_headers, judge: Principal, viewer: Principal
    ) -> None:
        record = await _upload(evidence_client, auth_headers(judge))

        assert record["uploaded_by"] == judge.identity
        assert record["current_holder"] == judge.identity
        assert record["state"] == "Active"
        assert record["file_name"] == "scene.jpg"

        response = await evidence_client.get("/api/v1/evidence/EV-API-1/file", headers=auth_headers(viewer))
        assert response.status_code == 200
        assert response.content == PHOTO
        assert response.headers["content-type"] == "image/jpeg"
        assert 'filename="scene.jpg"' in response.headers["content-disposition"]

        logs = await evidence_client.get("/api/v1/evidence/EV-API-1/logs", headers=auth_headers(judge))
        actions = [e["action"] for e in logs.json()["data"]]
        assert actions[0] == "uploaded"

    @pytest.mark.asyncio
    async def test_duplicate_upload(self, evidence_client: AsyncClient, auth_headers, judge: Principal) -> None:
        await _upload(evidence_client, auth_headers(judge))

        response = await evidence_client.post(
            "/api/v1/evidence/",
            headers=auth_headers(judge),
            data={"evidence_id": "EV-API-1"},
            files={"file": ("other.bin", b"different", "application/octet-stream")},
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "duplicate_id"

    @pytest.mark.asyncio
    async def test_viewer_cannot_upload(self, evidence_client: AsyncClient, auth_headers, viewer: Principal) -> None:
        response = await evidence_client.post(
            "/api/v1/evidence/",
            headers=auth_headers(viewer),
            data={"evidence_id": "EV-API-V"},
            files={"file": ("a.bin", b"data", "application/octet-stream")},
        )

        assert response.status_code == 403
        assert response.json()["details"]["rule"] == "register_requires_superadmin_judge_or_investigator"

    @pytest.mark.asyncio
    async def test_upload_with_ledger_down(
        self,
        evidence_client: AsyncClient,
        auth_headers,
        ledger: MockLedgerClient,
        payloads: InMemoryPayloadStore,
        superadmin: Principal,
    ) -> None:
        ledger.set_available(False)

        response = await evidence_client.post(
            "/api/v1/evidence/",
            headers=auth_headers(superadmin),
            data={"evidence_id": "EV-API-DOWN"},
            files={"file": ("a.bin", b"data", "application/octet-stream")},
        )

        assert response.status_code == 503
        assert len(payloads) == 0

    @pytest.mark.asyncio
    async def test_investigator_visibility(
        self,
        evidence_client: AsyncClient,
        auth_headers,
        judge: Principal,
        investigator: Principal,
    ) -> None:
        await _upload(evidence_client, auth_headers(judge))

        response = await evidence_client.get("/api/v1/evidence/EV-API-1", headers=auth_headers(investigator))
        assert response.status_code == 403

        listing = await evidence_client.get("/api/v1/evidence/", headers=auth_headers(investigator))
        assert listing.json()["data"] == []

    @pytest.mark.asyncio
    async def test_transfer(
        self,
        evidence_client: AsyncClient,
        auth_headers,
        judge: Principal,
        investigator: Principal,
    ) -> None:
        await _upload(evidence_client, auth_headers(judge))

        response = await evidence_client.post(
            "/api/v1/evidence/EV-API-1/transfer",
            headers=auth_headers(judge),
            json={"new_holder": investigator.identity, "role": "investigator"},
        )

        assert response.status_code == 200
        result = response.json()["data"]
        assert result["record"]["current_holder"] == investigator.identity
        assert result["details"]["previous_holder"] == judge.identity
        assert response.json()["warnings"] == []

        history = await evidence_client.get("/api/v1/evidence/EV-API-1/history", headers=auth_headers(investigator))
        assert [e["action"] for e in history.json()["data"]] == ["REGISTERED", "TRANSFERRED"]

    @pytest.mark.asyncio
    async def test_transfer_reserved_role(
        self, evidence_client: AsyncClient, auth_headers, superadmin: Principal
    ) -> None:
        await _upload(evidence_client, auth_headers(superadmin))

        response = await evidence_client.post(
            "/api/v1/evidence/EV-API-1/transfer",
            headers=auth_headers(superadmin),
            json={"new_holder": OUTSIDER, "role": "admin"},
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "invalid_role"

    @pytest.mark.asyncio
    async def test_state_change(self, evidence_client: AsyncClient, auth_headers, judge: Principal) -> None:
        await _upload(evidence_client, auth_headers(judge))

        sealed = await evidence_client.post(
            "/api/v1/evidence/EV-API-1/state", headers=auth_headers(judge), json={"state": "Sealed"}
        )
        assert sealed.status_code == 200
        assert sealed.json()["data"]["record"]["state"] == "Sealed"

        back = await evidence_client.post(
            "/api/v1/evidence/EV-API-1/state", headers=auth_headers(judge), json={"state": "Active"}
        )
        assert back.status_code == 409
        assert back.json()["error_code"] == "invalid_transition"

    @pytest.mark.asyncio
    async def test_custom_action(self, evidence_client: AsyncClient, auth_headers, judge: Principal) -> None:
        await _upload(evidence_client, auth_headers(judge))

        response = await evidence_client.post(
            "/api/v1/evidence/EV-API-1/actions",
            headers=auth_headers(judge),
            json={"label": "lab-analysis", "details": {"lab": "north"}},
        )

        assert response.status_code == 200
        assert response.json()["data"]["action"] == "custom"

    @pytest.mark.asyncio
    async def test_integrity(
        self,
        evidence_client: AsyncClient,
        auth_headers,
        payloads: InMemoryPayloadStore,
        judge: Principal,
    ) -> None:
        record = await _upload(evidence_client, auth_headers(judge))

        intact = await evidence_client.get("/api/v1/evidence/EV-API-1/integrity", headers=auth_headers(judge))
        assert intact.json()["data"]["status"] == "intact"

        payloads.overwrite(record["payload_locator"], PHOTO[:-1] + b"!")
        tampered = await evidence_client.get("/api/v1/evidence/EV-API-1/integrity", headers=auth_headers(judge))
        assert tampered.json()["data"]["status"] == "tampered"
        assert tampered.json()["data"]["intact"] is False

    @pytest.mark.asyncio
    async def test_verify_copy(self, evidence_client: AsyncClient, auth_headers, judge: Principal) -> None:
        await _upload(evidence_client, auth_headers(judge))

        response = await evidence_client.post(
            "/api/v1/evidence/EV-API-1/verify-copy",
            headers=auth_headers(judge),
            files={"file": ("copy.jpg", PHOTO, "image/jpeg")},
        )

        assert response.json()["data"]["intact"] is True

    @pytest.mark.asyncio
    async def test_delete(
        self,
        evidence_client: AsyncClient,
        auth_headers,
        superadmin: Principal,
        judge: Principal,
    ) -> None:
        await _upload(evidence_client, auth_headers(judge))

        denied = await evidence_client.delete("/api/v1/evidence/EV-API-1", headers=auth_headers(judge))
        assert denied.status_code == 403

        response = await evidence_client.delete("/api/v1/evidence/EV-API-1", headers=auth_headers(superadmin))
        assert response.status_code == 200

        missing = await evidence_client.get("/api/v1/evidence/EV-API-1", headers=auth_headers(superadmin))
        assert missing.status_code == 404


class TestIdentityEndpoints:
    """Tests for the identity registry API."""

    @pytest.mark.asyncio
    async def test_assign_and_list(
        self, evidence_client: AsyncClient, auth_headers, superadmin: Principal, viewer: Principal
    ) -> None:
        response = await evidence_client.put(
            f"/api/v1/identities/{OUTSIDER}",
            headers=auth_headers(superadmin),
            json={"role": "investigator", "display_name": "Det. Rivera"},
        )
        assert response.status_code == 200
        assert response.json()["data"]["role"] == "investigator"

        listing = await evidence_client.get("/api/v1/identities/", headers=auth_headers(superadmin))
        assert [i["wallet_address"] for i in listing.json()["data"]] == [OUTSIDER]

        forbidden = await evidence_client.get("/api/v1/identities/", headers=auth_headers(viewer))
        assert forbidden.status_code == 403

    @pytest.mark.asyncio
    async def test_me(self, evidence_client: AsyncClient, auth_headers, viewer: Principal) -> None:
        response = await evidence_client.get("/api/v1/identities/me", headers=auth_headers(viewer))

        assert response.json()["data"]["wallet_address"] == viewer.identity
        assert response.json()["data"]["role"] == "viewer"


class TestLedgerEndpoints:
    """Tests for ledger administration."""

    @pytest.mark.asyncio
    async def test_grant_enables_registration(
        self, evidence_client: AsyncClient, auth_headers, superadmin: Principal
    ) -> None:
        newcomer = Principal(identity=OUTSIDER, role="investigator")
        denied = await evidence_client.post(
            "/api/v1/evidence/",
            headers=auth_headers(newcomer),
            data={"evidence_id": "EV-API-G"},
            files={"file": ("a.bin", b"data", "application/octet-stream")},
        )
        assert denied.status_code == 403

        granted = await evidence_client.post(
            "/api/v1/ledger/grants",
            headers=auth_headers(superadmin),
            json={"account": OUTSIDER, "role": "INVESTIGATOR_ROLE"},
        )
        assert granted.status_code == 200

        grants = await evidence_client.get(f"/api/v1/ledger/grants/{OUTSIDER}", headers=auth_headers(superadmin))
        assert grants.json()["data"] == ["INVESTIGATOR_ROLE"]

        await _upload(evidence_client, auth_headers(newcomer), "EV-API-G")

    @pytest.mark.asyncio
    async def test_grant_requires_superadmin(
        self, evidence_client: AsyncClient, auth_headers, judge: Principal
    ) -> None:
        response = await evidence_client.post(
            "/api/v1/ledger/grants",
            headers=auth_headers(judge),
            json={"account": OUTSIDER, "role": "JUDGE_ROLE"},
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_holders(
        self, evidence_client: AsyncClient, auth_headers, judge: Principal
    ) -> None:
        await _upload(evidence_client, auth_headers(judge))

        response = await evidence_client.get(f"/api/v1/ledger/holders/{judge.identity}", headers=auth_headers(judge))

        data = response.json()["data"]
        assert data["ledger_evidence_ids"] == ["EV-API-1"]
        assert [r["evidence_id"] for r in data["records"]] == ["EV-API-1"]

    @pytest.mark.asyncio
    async def test_journal_verify_on_mock(
        self, evidence_client: AsyncClient, auth_headers, superadmin: Principal
    ) -> None:
        response = await evidence_client.get("/api/v1/ledger/journal/verify", headers=auth_headers(superadmin))

        assert response.status_code == 200
        assert response.json()["data"] == {"mode": "mock"}
