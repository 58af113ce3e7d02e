"""Exhaustive availability report for one identifier.

The probe is never on the retrieval path and shares no state with the
orchestrator. It runs synchronously over a fixed gateway list, records every
failure inline, and only reports ``status: "error"`` when something outside
those checks goes wrong.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests

from ..core.keys import (
    K_CONTENT_IDENTIFIER,
    K_CONTENT_LENGTH,
    K_CONTENT_TYPE,
    K_DETAILS,
    K_ERROR,
    K_GATEWAYS,
    K_IPFS_STATUS,
    K_MESSAGE,
    K_PROVIDER_PIN_STATUS,
    K_STATUS,
    K_STATUS_CODE,
    K_TIMESTAMP,
)
from .attempts import format_url
from .cid_utils import normalize_cid
from .gateway_config import HDR_ACCEPT
from .providers import first_pin_row, pin_status_urls, pinning_credentials
from .settings import GatewaySettings

logger = logging.getLogger(__name__)

PIN_PINNED = "pinned"
PIN_NOT_PINNED = "not_pinned"
PIN_NO_CREDENTIALS = "no_credentials"
PIN_ERROR = "error"

GATEWAY_AVAILABLE = "available"
GATEWAY_ERROR = "error"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def gateway_name(gateway: str) -> str:
    return urlparse(gateway).hostname or gateway


class DiagnosticProbe:
    """Pin status plus a HEAD check against every known public gateway."""

    def __init__(self, settings: GatewaySettings, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self._session = session

    def probe(self, identifier: Optional[str]) -> Dict[str, Any]:
        cid = normalize_cid(identifier)
        try:
            session = self._session or requests.Session()
            try:
                return self._probe(session, cid)
            finally:
                if self._session is None:
                    session.close()
        except Exception as exc:  # report, never propagate
            logger.exception("Error in IPFS diagnostic for %s", cid)
            return {
                K_STATUS: "error",
                K_ERROR: "IPFS diagnostic error",
                K_MESSAGE: str(exc) or "An unexpected error occurred",
                K_CONTENT_IDENTIFIER: cid,
            }

    def _probe(self, session: requests.Session, cid: str) -> Dict[str, Any]:
        report: Dict[str, Any] = {
            K_STATUS: "success",
            K_CONTENT_IDENTIFIER: cid,
            K_TIMESTAMP: _timestamp(),
            K_PROVIDER_PIN_STATUS: self.check_pin_status(session, cid),
            K_GATEWAYS: {},
        }
        any_available = False
        for gateway in self.settings.probe_gateways:
            result = self.check_gateway(session, gateway, cid)
            report[K_GATEWAYS][gateway_name(gateway)] = result
            any_available = any_available or result[K_STATUS] == GATEWAY_AVAILABLE
        report[K_IPFS_STATUS] = "available" if any_available else "not_found"
        return report

    def check_pin_status(self, session: requests.Session, cid: str) -> Dict[str, Any]:
        credentials = pinning_credentials(self.settings)
        if credentials is None:
            return {K_STATUS: PIN_NO_CREDENTIALS, K_DETAILS: None}
        headers = {**credentials.headers(), HDR_ACCEPT: "application/json"}
        try:
            for url in pin_status_urls(self.settings, cid):
                resp = session.request("GET", url, headers=headers, timeout=self.settings.probe_timeout)
                if not resp.ok:
                    return {
                        K_STATUS: PIN_ERROR,
                        K_DETAILS: {
                            K_ERROR: f"Failed to check {urlparse(url).path}: {resp.status_code}",
                            K_MESSAGE: resp.text,
                        },
                    }
                row = first_pin_row(resp.json())
                if row is not None:
                    return {K_STATUS: PIN_PINNED, K_DETAILS: row}
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Pin status check failed for %s: %s", cid, exc)
            return {K_STATUS: PIN_ERROR, K_DETAILS: {K_ERROR: str(exc) or type(exc).__name__}}
        return {K_STATUS: PIN_NOT_PINNED, K_DETAILS: None}

    def check_gateway(self, session: requests.Session, gateway: str, cid: str) -> Dict[str, Any]:
        url = format_url(gateway, cid)
        try:
            resp = session.request("HEAD", url, timeout=self.settings.probe_timeout, allow_redirects=True)
        except requests.RequestException as exc:
            return {K_STATUS: GATEWAY_ERROR, K_ERROR: str(exc) or type(exc).__name__}
        if resp.ok:
            return {
                K_STATUS: GATEWAY_AVAILABLE,
                K_STATUS_CODE: resp.status_code,
                K_CONTENT_TYPE: resp.headers.get("content-type"),
                K_CONTENT_LENGTH: resp.headers.get("content-length"),
            }
        return {K_STATUS: GATEWAY_ERROR, K_STATUS_CODE: resp.status_code}


__all__ = [
    "DiagnosticProbe",
    "gateway_name",
    "PIN_PINNED",
    "PIN_NOT_PINNED",
    "PIN_NO_CREDENTIALS",
    "PIN_ERROR",
    "GATEWAY_AVAILABLE",
    "GATEWAY_ERROR",
]
