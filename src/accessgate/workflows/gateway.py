"""Content access facade: grant resolution, retrieval and transcoding in one call."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from ..core.errors import GatewayError, MissingParameter, UnexpectedFailure
from .cid_utils import ContentIdentifierAnalyzer, normalize_cid
from .grants import GrantResolution, GrantResolver, token_hint
from .retrieval import RetrievalOrchestrator
from .settings import GatewaySettings, load_settings
from .storage import SqlGrantStore
from .transcode import ResponseTranscoder, TranscodedPayload, content_type_for_format

logger = logging.getLogger(__name__)


@dataclass
class GatewayResult:
    """Either password-grant metadata or a transcoded payload, never both."""

    content_identifier: str
    payload: Optional[TranscodedPayload] = None
    metadata: Optional[Dict[str, Any]] = None
    resolution: Optional[GrantResolution] = None
    source_url: Optional[str] = None

    @property
    def metadata_only(self) -> bool:
        return self.metadata is not None


class ContentAccessGateway:
    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        *,
        store: Optional[SqlGrantStore] = None,
        resolver: Optional[GrantResolver] = None,
        analyzer: Optional[ContentIdentifierAnalyzer] = None,
        orchestrator: Optional[RetrievalOrchestrator] = None,
        transcoder: Optional[ResponseTranscoder] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.analyzer = analyzer or ContentIdentifierAnalyzer(overrides_path=self.settings.overrides_path)
        self._store = store
        self._resolver = resolver
        self.orchestrator = orchestrator or RetrievalOrchestrator(
            self.settings, analyzer=self.analyzer, session=session
        )
        self.transcoder = transcoder or ResponseTranscoder()

    @property
    def resolver(self) -> GrantResolver:
        """Opened on first token lookup; identifier-only use never touches the store."""

        if self._resolver is None:
            self._resolver = GrantResolver(self._store or SqlGrantStore(self.settings.database_url))
        return self._resolver

    def _resolve_token(self, access_token: Optional[str]) -> GrantResolution:
        return self.resolver.resolve(access_token)

    async def fetch(
        self,
        content_identifier: Optional[str] = None,
        access_token: Optional[str] = None,
        response_type: str = "auto",
        format_hint: Optional[str] = "raw",
    ) -> GatewayResult:
        """Resolve, retrieve and transcode.

        A raw identifier, when given, is used as-is and the token is ignored.
        Password-protected grants short-circuit to metadata without touching
        any upstream.
        """

        cid = normalize_cid(content_identifier)
        if not cid and not (access_token or "").strip():
            raise MissingParameter()
        try:
            return await self._fetch(cid, access_token, response_type, format_hint)
        except GatewayError:
            raise
        except Exception as exc:
            if cid:
                logger.exception("IPFS proxy error for CID %s", cid)
                raise UnexpectedFailure(str(exc), cid) from exc
            hint = token_hint(access_token)
            logger.exception("IPFS proxy error resolving access token %s", hint)
            raise UnexpectedFailure(str(exc), access_token_hint=hint) from exc

    async def _fetch(
        self,
        cid: str,
        access_token: Optional[str],
        response_type: str,
        format_hint: Optional[str],
    ) -> GatewayResult:
        resolution: Optional[GrantResolution] = None
        if not cid:
            # grant store calls are blocking
            resolution = await asyncio.to_thread(self._resolve_token, access_token)
            if resolution.metadata_only:
                return GatewayResult(
                    content_identifier=resolution.content_identifier,
                    metadata=resolution.metadata(),
                    resolution=resolution,
                )
            cid = normalize_cid(resolution.content_identifier)

        classification = self.analyzer.classify(cid)
        try:
            upstream = await self.orchestrator.retrieve(cid, classification)
            payload = self.transcoder.transcode(
                upstream,
                response_type=response_type,
                content_type_hint=content_type_for_format(format_hint),
            )
        except GatewayError:
            raise
        except Exception as exc:
            logger.exception("IPFS proxy error for CID %s", cid)
            raise UnexpectedFailure(str(exc), cid) from exc

        return GatewayResult(
            content_identifier=cid,
            payload=payload,
            resolution=resolution,
            source_url=upstream.url,
        )


__all__ = ["ContentAccessGateway", "GatewayResult"]
