"""Provider-direct retrieval strategies.

Each strategy exposes the same ``try_fetch`` capability; the orchestrator walks
a ranked list of whichever strategies are configured and never inspects
credentials itself.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import aiohttp

from .attempts import (
    PHASE_NODE_API,
    PHASE_PIN_STATUS,
    PHASE_PROVIDER_GATEWAY,
    AttemptLog,
    UpstreamResponse,
    format_url,
    perform_attempt,
)
from .cid_utils import CidClassification
from .gateway_config import (
    HDR_ACCEPT,
    HDR_AUTHORIZATION,
    HDR_PINATA_API_KEY,
    HDR_PINATA_SECRET,
    LEGACY_FORMATS,
    MULTICODEC_FORMATS,
    NODE_API_OPERATIONS,
    PINATA_PIN_JOBS_PATH,
    PINATA_PIN_LIST_PATH,
)
from .settings import GatewaySettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BearerCredentials:
    token: str

    def headers(self) -> Dict[str, str]:
        return {HDR_AUTHORIZATION: f"Bearer {self.token}"}


@dataclass(frozen=True)
class KeyPairCredentials:
    api_key: str
    secret: str

    def headers(self) -> Dict[str, str]:
        return {HDR_PINATA_API_KEY: self.api_key, HDR_PINATA_SECRET: self.secret}


@dataclass(frozen=True)
class BasicCredentials:
    username: str
    password: str

    def headers(self) -> Dict[str, str]:
        return {HDR_AUTHORIZATION: aiohttp.BasicAuth(self.username, self.password).encode()}


def pinning_credentials(settings: GatewaySettings) -> Optional[Any]:
    """JWT wins over the key pair; ``None`` when neither is configured."""

    if settings.pinata_jwt:
        return BearerCredentials(settings.pinata_jwt)
    if settings.pinata_api_key and settings.pinata_secret_api_key:
        return KeyPairCredentials(settings.pinata_api_key, settings.pinata_secret_api_key)
    return None


def pin_status_urls(settings: GatewaySettings, identifier: str) -> List[str]:
    base = settings.pinata_api_url.rstrip("/")
    return [
        f"{base}{PINATA_PIN_JOBS_PATH}?ipfs_pin_hash={identifier}",
        f"{base}{PINATA_PIN_LIST_PATH}?hashContains={identifier}",
    ]


def first_pin_row(payload: Any) -> Optional[Dict[str, Any]]:
    """Return the first ``rows`` entry of a pin API payload, if any."""

    if not isinstance(payload, Mapping):
        return None
    rows = payload.get("rows")
    if isinstance(rows, list) and rows:
        first = rows[0]
        return first if isinstance(first, dict) else {"value": first}
    return None


def candidate_formats(classification: CidClassification) -> List[str]:
    if classification.override and classification.override.preferred_formats:
        return list(classification.override.preferred_formats)
    if classification.is_multicodec:
        return list(MULTICODEC_FORMATS)
    return list(LEGACY_FORMATS)


class ProviderStrategy:
    """A provider-direct path that may produce content for an identifier."""

    name = "provider"

    async def try_fetch(
        self,
        session: aiohttp.ClientSession,
        classification: CidClassification,
        log: AttemptLog,
    ) -> Optional[UpstreamResponse]:
        raise NotImplementedError


class PinningServiceStrategy(ProviderStrategy):
    """Check the pinning service's pin status, then read through its own gateway."""

    name = "pinata"

    def __init__(self, settings: GatewaySettings, credentials: Any) -> None:
        self.settings = settings
        self.credentials = credentials

    async def is_pinned(
        self,
        session: aiohttp.ClientSession,
        identifier: str,
        log: AttemptLog,
    ) -> bool:
        headers = {**self.credentials.headers(), HDR_ACCEPT: "application/json"}
        for url in pin_status_urls(self.settings, identifier):
            response = await perform_attempt(
                session,
                log,
                phase=PHASE_PIN_STATUS,
                url=url,
                headers=headers,
                timeout=self.settings.provider_timeout,
            )
            if response is None or not response.ok:
                return False
            try:
                payload = json.loads(response.body.decode("utf-8") or "{}")
            except (UnicodeDecodeError, json.JSONDecodeError):
                logger.warning("Pin status payload from %s is not JSON", url)
                return False
            if first_pin_row(payload) is not None:
                return True
        return False

    async def try_fetch(
        self,
        session: aiohttp.ClientSession,
        classification: CidClassification,
        log: AttemptLog,
    ) -> Optional[UpstreamResponse]:
        cid = classification.identifier
        if not await self.is_pinned(session, cid, log):
            logger.info("CID %s is not pinned on %s", cid, self.name)
            return None
        logger.info("CID %s is pinned on %s, reading via provider gateway", cid, self.name)
        for fmt in candidate_formats(classification):
            response = await perform_attempt(
                session,
                log,
                phase=PHASE_PROVIDER_GATEWAY,
                url=format_url(self.settings.pinata_gateway_url, cid, fmt),
                headers={HDR_ACCEPT: "*/*"},
                timeout=self.settings.provider_timeout,
                fmt=fmt,
            )
            if response is not None and response.ok:
                return response
        return None


class NodeApiStrategy(ProviderStrategy):
    """Ask a hosted node's HTTP API for the identifier, one operation at a time."""

    name = "infura"

    def __init__(self, settings: GatewaySettings, credentials: BasicCredentials) -> None:
        self.settings = settings
        self.credentials = credentials

    async def try_fetch(
        self,
        session: aiohttp.ClientSession,
        classification: CidClassification,
        log: AttemptLog,
    ) -> Optional[UpstreamResponse]:
        base = self.settings.node_api_url.rstrip("/")
        headers = {**self.credentials.headers(), HDR_ACCEPT: "*/*"}
        for operation in NODE_API_OPERATIONS:
            response = await perform_attempt(
                session,
                log,
                phase=PHASE_NODE_API,
                url=f"{base}/{operation}?arg={classification.identifier}",
                method="POST",
                headers=headers,
                timeout=self.settings.node_timeout,
            )
            if response is not None and response.ok:
                return response
        return None


def build_provider_strategies(settings: GatewaySettings) -> List[ProviderStrategy]:
    """Ranked strategies for the configured credentials (possibly empty)."""

    strategies: List[ProviderStrategy] = []
    creds = pinning_credentials(settings)
    if creds is not None:
        strategies.append(PinningServiceStrategy(settings, creds))
    if settings.has_node_credentials:
        strategies.append(
            NodeApiStrategy(
                settings,
                BasicCredentials(settings.node_project_id or "", settings.node_project_secret or ""),
            )
        )
    return strategies


__all__ = [
    "BearerCredentials",
    "KeyPairCredentials",
    "BasicCredentials",
    "ProviderStrategy",
    "PinningServiceStrategy",
    "NodeApiStrategy",
    "build_provider_strategies",
    "candidate_formats",
    "first_pin_row",
    "pin_status_urls",
    "pinning_credentials",
]
