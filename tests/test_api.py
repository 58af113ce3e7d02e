import asyncio
import threading
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from accessgate.api import create_app
from accessgate.core.errors import GrantNotFound
from accessgate.core.keys import K_ACCESS_COUNT, K_ACCESS_TOKEN, K_EXPIRY_TIME, K_IS_ACTIVE
from accessgate.workflows.gateway import ContentAccessGateway
from accessgate.workflows.probe import DiagnosticProbe

from conftest import (
    GATEWAY_A,
    LEGACY_CID,
    MULTICODEC_CID,
    FakeRequestsSession,
    FakeResponse,
    FakeSession,
    json_response,
)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def client(settings, store, session) -> TestClient:
    gateway = ContentAccessGateway(settings, store=store, session=session)
    probe = DiagnosticProbe(settings, session=FakeRequestsSession())
    return TestClient(create_app(settings, gateway=gateway, probe=probe))


def test_missing_parameters_is_bad_request(client):
    response = client.get("/ipfs")

    assert response.status_code == 400
    assert response.json()["error"] == "Missing IPFS CID parameter"


def test_token_resolves_and_returns_json(client, store, session, future):
    grant = store.create(LEGACY_CID, future, access_token="tok-a")
    session.routes[f"{GATEWAY_A}/{LEGACY_CID}"] = json_response(b'{"record": "ok"}')

    response = client.get("/ipfs", params={"accessToken": "tok-a"})

    assert response.status_code == 200
    assert response.json() == {"record": "ok"}
    assert store.get(grant.id).access_count == 1


def test_expired_token_is_forbidden(client, store, session, past):
    grant = store.create(LEGACY_CID, past, access_token="tok-b")

    response = client.get("/ipfs", params={"accessToken": "tok-b"})

    assert response.status_code == 403
    assert response.json()["error"] == "Access has expired"
    assert store.get(grant.id).access_count == 0
    assert session.calls == []


def test_password_grant_returns_metadata_without_upstream(client, store, session, future):
    store.create(MULTICODEC_CID, future, access_token="tok-c", has_password=True)

    response = client.get("/ipfs", params={"accessToken": "tok-c"})

    assert response.status_code == 200
    body = response.json()
    assert body["hasPassword"] is True
    assert body["contentIdentifier"] == MULTICODEC_CID
    assert body["accessToken"] == "tok-c"
    assert session.calls == []


def test_exhausted_retrieval_lists_attempted_urls(client, session):
    response = client.get("/ipfs", params={"contentIdentifier": MULTICODEC_CID})

    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "IPFS content not found"
    assert body["contentIdentifier"] == MULTICODEC_CID
    assert len(body["attemptedUrls"]) == 8
    assert body["attemptedUrls"] == session.urls


def test_revoked_grant_is_not_found(client, store, future):
    grant = store.create(LEGACY_CID, future, access_token="tok-e")

    revoke = client.put(f"/shared-data/{grant.id}", json={"isActive": False})
    response = client.get("/ipfs", params={"accessToken": "tok-e"})

    assert revoke.status_code == 200
    assert revoke.json()["isActive"] is False
    assert response.status_code == 404
    assert response.json()["error"] == "Shared data not found or access has been revoked"


def test_identifier_wins_over_token(client, store, session, future):
    store.create(MULTICODEC_CID, future, access_token="tok-f", has_password=True)
    session.routes[f"{GATEWAY_A}/{LEGACY_CID}"] = FakeResponse(200, b"plain", {"Content-Type": "text/plain"})

    response = client.get("/ipfs", params={"contentIdentifier": LEGACY_CID, "accessToken": "tok-f"})

    assert response.status_code == 200
    assert response.text == "plain"
    assert response.headers["content-type"].startswith("text/plain")


def test_binary_payload_keeps_content_type(client, session):
    session.routes[f"{GATEWAY_A}/{LEGACY_CID}"] = FakeResponse(200, b"\x89PNG", {"Content-Type": "image/png"})

    response = client.get("/ipfs", params={"contentIdentifier": LEGACY_CID})

    assert response.status_code == 200
    assert response.content == b"\x89PNG"
    assert response.headers["content-type"] == "image/png"


def test_unexpected_failure_is_a_proxy_error(settings, store):
    class ExplodingOrchestrator:
        async def retrieve(self, identifier, classification=None):
            raise RuntimeError("socket closed")

    gateway = ContentAccessGateway(settings, store=store, orchestrator=ExplodingOrchestrator())
    client = TestClient(create_app(settings, gateway=gateway))

    response = client.get("/ipfs", params={"contentIdentifier": LEGACY_CID})

    assert response.status_code == 500
    assert response.json() == {
        "error": "IPFS proxy error",
        "message": "socket closed",
        "contentIdentifier": LEGACY_CID,
    }


def test_non_standard_json_constants_are_not_a_server_error(client, session):
    session.routes[f"{GATEWAY_A}/{LEGACY_CID}"] = json_response(b'{"v": NaN}')

    response = client.get("/ipfs", params={"contentIdentifier": LEGACY_CID})

    assert response.status_code == 200
    assert response.content == b'{"v": NaN}'
    assert response.headers["content-type"].startswith("application/json")


def test_latin1_text_is_served_as_utf8(client, session):
    session.routes[f"{GATEWAY_A}/{LEGACY_CID}"] = FakeResponse(
        200, b"caf\xe9", {"Content-Type": "text/plain; charset=iso-8859-1"}
    )

    response = client.get("/ipfs", params={"contentIdentifier": LEGACY_CID})

    assert response.status_code == 200
    assert response.content == "café".encode("utf-8")
    assert response.text == "café"
    assert "charset=utf-8" in response.headers["content-type"]
    assert "iso-8859-1" not in response.headers["content-type"]


def test_store_failure_during_token_lookup_reports_token_prefix(settings, store, monkeypatch):
    def broken_lookup(token):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(store, "find_active_by_token", broken_lookup)
    gateway = ContentAccessGateway(settings, store=store, session=FakeSession())
    client = TestClient(create_app(settings, gateway=gateway))

    response = client.get("/ipfs", params={"accessToken": "tok-abcdef"})

    assert response.status_code == 500
    assert response.json() == {
        "error": "IPFS proxy error",
        "message": "database is locked",
        "contentIdentifier": None,
        "accessToken": "tok-ab...",
    }


def test_diagnostic_endpoint(client):
    response = client.get("/ipfs/diagnostic", params={"contentIdentifier": MULTICODEC_CID})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["ipfsStatus"] == "not_found"
    assert client.get("/ipfs/diagnostic").status_code == 400
    assert client.post("/ipfs/diagnostic").status_code == 405


def test_update_refuses_reactivation(client, store, future):
    grant = store.create(LEGACY_CID, future, access_token="tok-g")

    assert client.put(f"/shared-data/{grant.id}", json={"isActive": True}).status_code == 400
    assert client.put("/shared-data/missing", json={"isActive": False}).status_code == 404


def test_record_access_and_find_by_cid(client, store, future):
    store.create(MULTICODEC_CID, future, access_token="tok-h")

    recorded = client.post("/shared-data/record-access", json={"accessToken": "tok-h"})
    found = client.get("/shared-data/find-by-cid", params={"contentIdentifier": MULTICODEC_CID})
    missing = client.get("/shared-data/find-by-cid", params={"contentIdentifier": LEGACY_CID})

    assert recorded.json() == {"success": True, "accessCount": 1}
    assert found.json()["accessToken"] == "tok-h"
    assert found.json()["expiryTime"].endswith("Z")
    assert missing.status_code == 404
    assert missing.json()["message"] == "No shared data found for this CID"


def test_update_response_uses_wire_keys(client, store, future):
    grant = store.create(LEGACY_CID, future, access_token="tok-i")

    body = client.put(f"/shared-data/{grant.id}", json={"isActive": False}).json()

    assert body[K_IS_ACTIVE] is False
    assert body[K_ACCESS_COUNT] == 0
    assert body[K_ACCESS_TOKEN] == "tok-i"
    assert body[K_EXPIRY_TIME].endswith("Z")


def test_token_lookup_runs_off_the_event_loop_thread(settings):
    seen = []

    class RecordingResolver:
        def resolve(self, token):
            seen.append(threading.get_ident())
            raise GrantNotFound()

    gateway = ContentAccessGateway(settings, resolver=RecordingResolver(), session=FakeSession())

    with pytest.raises(GrantNotFound):
        asyncio.run(gateway.fetch(access_token="tok-j"))

    assert len(seen) == 1
    assert seen[0] != threading.get_ident()


def test_identifier_fetch_does_not_open_the_grant_store(settings, tmp_path: Path):
    session = FakeSession()
    session.routes[f"{GATEWAY_A}/{LEGACY_CID}"] = json_response(b'{"ok": true}')
    gateway = ContentAccessGateway(settings, session=session)

    result = asyncio.run(gateway.fetch(content_identifier=LEGACY_CID))

    assert result.payload.body == {"ok": True}
    assert not (tmp_path / "grants.db").exists()
