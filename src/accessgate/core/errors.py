"""Error taxonomy shared by the resolver, the orchestrator and the HTTP layer.

Every error knows the HTTP status it maps to and the stable ``error`` string
callers match on, so the API layer renders them without a lookup table.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from .keys import K_ACCESS_TOKEN, K_ATTEMPTED_URLS, K_CONTENT_IDENTIFIER, K_ERROR, K_MESSAGE


class GatewayError(Exception):
    """Base class for errors surfaced to gateway callers."""

    status_code = 500
    error = "Gateway error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.error
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {K_ERROR: self.error, K_MESSAGE: self.message}


class MissingParameter(GatewayError):
    status_code = 400
    error = "Missing IPFS CID parameter"


class GrantNotFound(GatewayError):
    status_code = 404
    error = "Shared data not found or access has been revoked"


class GrantExpired(GatewayError):
    status_code = 403
    error = "Access has expired"


class AllAttemptsFailed(GatewayError):
    """Every provider and gateway candidate was exhausted without a 2xx."""

    status_code = 404
    error = "IPFS content not found"

    def __init__(
        self,
        content_identifier: str,
        attempted_urls: Sequence[str],
        last_error: Optional[str] = None,
    ) -> None:
        self.content_identifier = content_identifier
        self.attempted_urls: List[str] = list(attempted_urls)
        self.last_error = last_error
        super().__init__(last_error or "Failed to retrieve content from IPFS")

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload[K_CONTENT_IDENTIFIER] = self.content_identifier
        payload[K_ATTEMPTED_URLS] = list(self.attempted_urls)
        return payload


class UpstreamTimeout(GatewayError):
    """A single upstream attempt exceeded its time box. Recovered per attempt."""

    status_code = 504
    error = "Upstream timeout"

    def __init__(self, url: str, timeout: float) -> None:
        self.url = url
        self.timeout = timeout
        super().__init__(f"Request to {url} timed out after {timeout:g}s")


class TranscodeDegraded(GatewayError):
    """Structured parsing failed; the payload is served less structured instead."""

    status_code = 200
    error = "Transcode degraded"


class UnexpectedFailure(GatewayError):
    status_code = 500
    error = "IPFS proxy error"

    def __init__(
        self,
        message: Optional[str],
        content_identifier: Optional[str] = None,
        access_token_hint: Optional[str] = None,
    ) -> None:
        self.content_identifier = content_identifier
        self.access_token_hint = access_token_hint
        super().__init__(message or "An unexpected error occurred")

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload[K_CONTENT_IDENTIFIER] = self.content_identifier
        if self.content_identifier is None and self.access_token_hint:
            # failed before the token resolved to an identifier
            payload[K_ACCESS_TOKEN] = self.access_token_hint
        return payload


__all__ = [
    "GatewayError",
    "MissingParameter",
    "GrantNotFound",
    "GrantExpired",
    "AllAttemptsFailed",
    "UpstreamTimeout",
    "TranscodeDegraded",
    "UnexpectedFailure",
]
