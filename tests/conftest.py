from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from accessgate.workflows.settings import GatewaySettings
from accessgate.workflows.storage import SqlGrantStore

GATEWAY_A = "https://gw-a.test/ipfs"
GATEWAY_B = "https://gw-b.test/ipfs"

LEGACY_CID = "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"
MULTICODEC_CID = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"


class FakeResponse:
    """Minimal stand-in for an aiohttp response used as an async context manager."""

    def __init__(self, status: int = 200, body: bytes = b"", headers: Optional[Dict[str, str]] = None) -> None:
        self.status = status
        self._body = body
        self.headers = dict(headers or {})

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc: Any) -> bool:
        return False

    async def read(self) -> bytes:
        return self._body


class FakeSession:
    """Routes exact URLs to canned responses or exceptions; everything else is a 404."""

    def __init__(self, routes: Optional[Dict[str, Any]] = None) -> None:
        self.routes = dict(routes or {})
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        outcome = self.routes.get(url)
        if outcome is None:
            return FakeResponse(404, b"not found", {"Content-Type": "text/plain"})
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    @property
    def urls(self) -> List[str]:
        return [url for _, url, _ in self.calls]


class FakeRequestsResponse:
    def __init__(
        self,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
        payload: Any = None,
        text: str = "",
    ) -> None:
        self.status_code = status_code
        self.headers = dict(headers or {})
        self._payload = payload
        self.text = text

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON payload")
        return self._payload


class FakeRequestsSession:
    def __init__(self, routes: Optional[Dict[Tuple[str, str], Any]] = None) -> None:
        self.routes = dict(routes or {})
        self.calls: List[Tuple[str, str]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeRequestsResponse:
        self.calls.append((method, url))
        outcome = self.routes.get((method, url))
        if outcome is None:
            return FakeRequestsResponse(404)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def json_response(body: bytes) -> FakeResponse:
    return FakeResponse(200, body, {"Content-Type": "application/json"})


@pytest.fixture
def settings(tmp_path: Path) -> GatewaySettings:
    return GatewaySettings(
        public_gateways=(GATEWAY_A, GATEWAY_B),
        probe_gateways=(GATEWAY_A, GATEWAY_B),
        database_url=f"sqlite:///{tmp_path / 'grants.db'}",
    )


@pytest.fixture
def store(settings: GatewaySettings) -> SqlGrantStore:
    return SqlGrantStore(settings.database_url)


@pytest.fixture
def future() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=1)


@pytest.fixture
def past() -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=1)
