"""Timed upstream requests and the per-retrieval attempt ledger."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import aiohttp

from ..core.errors import UpstreamTimeout
from .gateway_config import HDR_CONTENT_TYPE

logger = logging.getLogger(__name__)

PHASE_PIN_STATUS = "pin_status"
PHASE_PROVIDER_GATEWAY = "provider_gateway"
PHASE_NODE_API = "node_api"
PHASE_PUBLIC_GATEWAY = "public_gateway"

# Phases whose URLs are content candidates (reported as attemptedUrls)
CONTENT_PHASES = (PHASE_PROVIDER_GATEWAY, PHASE_NODE_API, PHASE_PUBLIC_GATEWAY)

OUTCOME_SUCCESS = "success"
OUTCOME_HTTP_ERROR = "http_error"
OUTCOME_TRANSPORT_ERROR = "transport_error"
OUTCOME_TIMEOUT = "timeout"


@dataclass
class UpstreamResponse:
    """A fully-read upstream HTTP response."""

    url: str
    status: int
    headers: Dict[str, str]
    body: bytes = field(repr=False)
    source: str = PHASE_PUBLIC_GATEWAY
    format: str = ""
    attempts: List["RetrievalAttempt"] = field(default_factory=list, repr=False)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> Optional[str]:
        for name, value in self.headers.items():
            if name.lower() == HDR_CONTENT_TYPE.lower():
                return value
        return None


@dataclass
class RetrievalAttempt:
    phase: str
    url: str
    method: str = "GET"
    format: str = ""
    outcome: str = OUTCOME_TRANSPORT_ERROR
    status: Optional[int] = None
    error: Optional[str] = None
    elapsed_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "url": self.url,
            "method": self.method,
            "format": self.format,
            "outcome": self.outcome,
            "status": self.status,
            "error": self.error,
            "elapsed_ms": self.elapsed_ms,
        }


class AttemptLog:
    """Accumulates attempts for one retrieval; only used for error reporting."""

    def __init__(self) -> None:
        self.attempts: List[RetrievalAttempt] = []

    def record(self, attempt: RetrievalAttempt) -> None:
        self.attempts.append(attempt)

    @property
    def attempted_urls(self) -> List[str]:
        return [a.url for a in self.attempts if a.phase in CONTENT_PHASES]

    @property
    def last_error(self) -> Optional[str]:
        for attempt in reversed(self.attempts):
            if attempt.phase not in CONTENT_PHASES:
                continue
            if attempt.outcome == OUTCOME_HTTP_ERROR:
                return f"{attempt.url} returned status {attempt.status}"
            if attempt.error:
                return attempt.error
        return None


async def _send(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    headers: Optional[Mapping[str, str]],
    timeout: float,
) -> UpstreamResponse:
    try:
        async with session.request(
            method,
            url,
            headers=dict(headers or {}),
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as resp:
            body = await resp.read()
            return UpstreamResponse(
                url=url,
                status=resp.status,
                headers={str(k): str(v) for k, v in resp.headers.items()},
                body=body,
            )
    except asyncio.TimeoutError as exc:
        raise UpstreamTimeout(url, timeout) from exc


async def perform_attempt(
    session: aiohttp.ClientSession,
    log: AttemptLog,
    *,
    phase: str,
    url: str,
    method: str = "GET",
    headers: Optional[Mapping[str, str]] = None,
    timeout: float,
    fmt: str = "",
) -> Optional[UpstreamResponse]:
    """Run one time-boxed request and record it.

    Returns the response for any HTTP status; ``None`` when the request timed
    out or failed at the transport level. Never raises for network errors.
    """

    attempt = RetrievalAttempt(phase=phase, url=url, method=method, format=fmt)
    start = time.perf_counter()
    response: Optional[UpstreamResponse] = None
    try:
        response = await _send(session, method, url, headers, timeout)
    except UpstreamTimeout as exc:
        attempt.outcome = OUTCOME_TIMEOUT
        attempt.error = exc.message
        logger.warning("Timed out: %s %s (%s)", method, url, phase)
    except aiohttp.ClientError as exc:
        attempt.outcome = OUTCOME_TRANSPORT_ERROR
        attempt.error = f"{type(exc).__name__}: {exc}"
        logger.warning("Transport error: %s %s (%s): %s", method, url, phase, exc)
    else:
        attempt.status = response.status
        response.source = phase
        response.format = fmt
        if response.ok:
            attempt.outcome = OUTCOME_SUCCESS
        else:
            attempt.outcome = OUTCOME_HTTP_ERROR
            logger.warning("%s %s (%s) failed with status %s", method, url, phase, response.status)
    attempt.elapsed_ms = int((time.perf_counter() - start) * 1000)
    log.record(attempt)
    return response


def format_url(base: str, identifier: str, fmt: str = "") -> str:
    url = f"{base.rstrip('/')}/{identifier}"
    return f"{url}?format={fmt}" if fmt else url


__all__ = [
    "PHASE_PIN_STATUS",
    "PHASE_PROVIDER_GATEWAY",
    "PHASE_NODE_API",
    "PHASE_PUBLIC_GATEWAY",
    "OUTCOME_SUCCESS",
    "OUTCOME_HTTP_ERROR",
    "OUTCOME_TRANSPORT_ERROR",
    "OUTCOME_TIMEOUT",
    "UpstreamResponse",
    "RetrievalAttempt",
    "AttemptLog",
    "perform_attempt",
    "format_url",
]
