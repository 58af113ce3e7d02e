"""Ordered, time-boxed retrieval across provider APIs and public gateways.

Content is replicated unevenly across providers and public mirrors, so no
single endpoint or encoding is authoritative. Retrieval therefore sweeps an
ordered candidate list, known-good configurations first, and returns the
first 2xx response:

1. provider-direct strategies (multi-codec identifiers only, unless an
   override opts out);
2. every (public gateway, format) pair, override ordering first.

Attempts run strictly one after another. A failed or timed-out attempt is
recorded and the sweep moves on; only exhaustion surfaces as an error.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import aiohttp

from ..core.errors import AllAttemptsFailed
from .attempts import (
    PHASE_PUBLIC_GATEWAY,
    AttemptLog,
    UpstreamResponse,
    format_url,
    perform_attempt,
)
from .cid_utils import CidClassification, ContentIdentifierAnalyzer
from .gateway_config import HDR_ACCEPT
from .providers import ProviderStrategy, build_provider_strategies, candidate_formats
from .settings import GatewaySettings

logger = logging.getLogger(__name__)


def candidate_gateways(classification: CidClassification, settings: GatewaySettings) -> List[str]:
    if classification.override and classification.override.preferred_gateways:
        return list(classification.override.preferred_gateways)
    return list(settings.public_gateways)


def plan_gateway_candidates(
    classification: CidClassification,
    settings: GatewaySettings,
) -> List[Tuple[str, str]]:
    """Ordered (gateway, format) pairs for the public-gateway phase."""

    formats = candidate_formats(classification)
    return [(gateway, fmt) for gateway in candidate_gateways(classification, settings) for fmt in formats]


class RetrievalOrchestrator:
    """Runs the provider-direct phase, then the public-gateway phase."""

    def __init__(
        self,
        settings: GatewaySettings,
        *,
        analyzer: Optional[ContentIdentifierAnalyzer] = None,
        strategies: Optional[Sequence[ProviderStrategy]] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.settings = settings
        self.analyzer = analyzer or ContentIdentifierAnalyzer(overrides_path=settings.overrides_path)
        self.strategies: List[ProviderStrategy] = (
            list(strategies) if strategies is not None else build_provider_strategies(settings)
        )
        self._session = session

    async def retrieve(
        self,
        identifier: str,
        classification: Optional[CidClassification] = None,
    ) -> UpstreamResponse:
        classification = classification or self.analyzer.classify(identifier)
        if self._session is not None:
            return await self._retrieve(self._session, classification)
        async with aiohttp.ClientSession(headers={"User-Agent": self.settings.user_agent}) as session:
            return await self._retrieve(session, classification)

    async def _retrieve(
        self,
        session: aiohttp.ClientSession,
        classification: CidClassification,
    ) -> UpstreamResponse:
        cid = classification.identifier
        log = AttemptLog()
        logger.info("Retrieving CID %s (family=%s, override=%s)", cid, classification.family, bool(classification.override))

        response: Optional[UpstreamResponse] = None
        if classification.needs_provider_phase:
            response = await self._provider_phase(session, classification, log)
        if response is None:
            response = await self._gateway_phase(session, classification, log)

        if response is not None:
            response.attempts = list(log.attempts)
            logger.info("Retrieved CID %s from %s after %d attempt(s)", cid, response.url, len(log.attempts))
            return response

        logger.error("All IPFS gateway attempts failed for CID %s (%d urls)", cid, len(log.attempted_urls))
        raise AllAttemptsFailed(cid, log.attempted_urls, log.last_error)

    async def _provider_phase(
        self,
        session: aiohttp.ClientSession,
        classification: CidClassification,
        log: AttemptLog,
    ) -> Optional[UpstreamResponse]:
        for strategy in self.strategies:
            logger.info("Trying provider %s for CID %s", strategy.name, classification.identifier)
            response = await strategy.try_fetch(session, classification, log)
            if response is not None and response.ok:
                return response
        return None

    async def _gateway_phase(
        self,
        session: aiohttp.ClientSession,
        classification: CidClassification,
        log: AttemptLog,
    ) -> Optional[UpstreamResponse]:
        for gateway, fmt in plan_gateway_candidates(classification, self.settings):
            logger.debug("Trying gateway %s with format %s", gateway, fmt or "default")
            response = await perform_attempt(
                session,
                log,
                phase=PHASE_PUBLIC_GATEWAY,
                url=format_url(gateway, classification.identifier, fmt),
                headers={HDR_ACCEPT: "*/*"},
                timeout=self.settings.gateway_timeout,
                fmt=fmt,
            )
            if response is not None and response.ok:
                return response
        return None


__all__ = [
    "RetrievalOrchestrator",
    "candidate_gateways",
    "plan_gateway_candidates",
]
