"""High-level exports for the access gateway workflows."""

from .cid_utils import ContentIdentifierAnalyzer, CidClassification, KnownCidOverride, reload_override_cache
from .gateway import ContentAccessGateway, GatewayResult
from .grants import GrantResolution, GrantResolver
from .probe import DiagnosticProbe
from .retrieval import RetrievalOrchestrator
from .settings import GatewaySettings, load_settings
from .storage import AccessGrant, SqlGrantStore
from .transcode import ResponseTranscoder, TranscodedPayload

__all__ = [
    "AccessGrant",
    "CidClassification",
    "ContentAccessGateway",
    "ContentIdentifierAnalyzer",
    "DiagnosticProbe",
    "GatewayResult",
    "GatewaySettings",
    "GrantResolution",
    "GrantResolver",
    "KnownCidOverride",
    "ResponseTranscoder",
    "RetrievalOrchestrator",
    "SqlGrantStore",
    "TranscodedPayload",
    "load_settings",
    "reload_override_cache",
]
