from dataclasses import replace

import requests

from accessgate.workflows.probe import DiagnosticProbe

from conftest import (
    GATEWAY_A,
    GATEWAY_B,
    MULTICODEC_CID,
    FakeRequestsResponse,
    FakeRequestsSession,
)

PINATA_API = "https://api.pinata.test"
PIN_JOBS = f"{PINATA_API}/pinning/pinJobs?ipfs_pin_hash={MULTICODEC_CID}"
PIN_LIST = f"{PINATA_API}/data/pinList?hashContains={MULTICODEC_CID}"


def test_probe_reports_each_gateway_by_host(settings):
    session = FakeRequestsSession(
        {
            ("HEAD", f"{GATEWAY_A}/{MULTICODEC_CID}"): FakeRequestsResponse(
                200, {"content-type": "application/json", "content-length": "42"}
            ),
            ("HEAD", f"{GATEWAY_B}/{MULTICODEC_CID}"): requests.ConnectionError("connection refused"),
        }
    )

    report = DiagnosticProbe(settings, session=session).probe(MULTICODEC_CID)

    assert report["status"] == "success"
    assert report["contentIdentifier"] == MULTICODEC_CID
    assert report["providerPinStatus"] == {"status": "no_credentials", "details": None}
    assert report["gateways"]["gw-a.test"] == {
        "status": "available",
        "statusCode": 200,
        "contentType": "application/json",
        "contentLength": "42",
    }
    assert report["gateways"]["gw-b.test"]["status"] == "error"
    assert "connection refused" in report["gateways"]["gw-b.test"]["error"]
    assert report["ipfsStatus"] == "available"


def test_probe_reports_not_found_when_no_gateway_answers(settings):
    session = FakeRequestsSession()

    report = DiagnosticProbe(settings, session=session).probe(MULTICODEC_CID)

    assert report["ipfsStatus"] == "not_found"
    assert report["gateways"]["gw-a.test"] == {"status": "error", "statusCode": 404}
    assert [method for method, _ in session.calls] == ["HEAD", "HEAD"]


def test_probe_finds_pin_in_pin_list(settings):
    settings = replace(settings, pinata_jwt="jwt-token", pinata_api_url=PINATA_API)
    row = {"ipfs_pin_hash": MULTICODEC_CID, "size": 10}
    session = FakeRequestsSession(
        {
            ("GET", PIN_JOBS): FakeRequestsResponse(200, payload={"rows": []}),
            ("GET", PIN_LIST): FakeRequestsResponse(200, payload={"rows": [row]}),
        }
    )

    report = DiagnosticProbe(settings, session=session).probe(MULTICODEC_CID)

    assert report["providerPinStatus"] == {"status": "pinned", "details": row}
    assert session.calls[:2] == [("GET", PIN_JOBS), ("GET", PIN_LIST)]


def test_probe_reports_not_pinned(settings):
    settings = replace(settings, pinata_jwt="jwt-token", pinata_api_url=PINATA_API)
    session = FakeRequestsSession(
        {
            ("GET", PIN_JOBS): FakeRequestsResponse(200, payload={"rows": []}),
            ("GET", PIN_LIST): FakeRequestsResponse(200, payload={"rows": [], "count": 0}),
        }
    )

    report = DiagnosticProbe(settings, session=session).probe(MULTICODEC_CID)

    assert report["providerPinStatus"]["status"] == "not_pinned"


def test_probe_reports_pin_lookup_errors(settings):
    settings = replace(settings, pinata_api_key="key", pinata_secret_api_key="secret", pinata_api_url=PINATA_API)
    session = FakeRequestsSession({("GET", PIN_JOBS): FakeRequestsResponse(401, text="unauthorized")})

    report = DiagnosticProbe(settings, session=session).probe(MULTICODEC_CID)

    pin = report["providerPinStatus"]
    assert pin["status"] == "error"
    assert pin["details"]["error"] == "Failed to check /pinning/pinJobs: 401"
    assert pin["details"]["message"] == "unauthorized"
    assert report["status"] == "success"


def test_probe_never_raises(settings):
    class BrokenSession:
        def request(self, method, url, **kwargs):
            raise RuntimeError("boom")

    report = DiagnosticProbe(settings, session=BrokenSession()).probe(f"ipfs://{MULTICODEC_CID}")

    assert report == {
        "status": "error",
        "error": "IPFS diagnostic error",
        "message": "boom",
        "contentIdentifier": MULTICODEC_CID,
    }
