"""FastAPI application exposing content retrieval, diagnostics and grant upkeep."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse

from . import __version__, schemas
from .core.errors import GatewayError, MissingParameter
from .workflows.cid_utils import normalize_cid
from .workflows.gateway import ContentAccessGateway
from .workflows.grants import GrantResolver
from .workflows.probe import DiagnosticProbe
from .workflows.settings import GatewaySettings, load_settings
from .workflows.transcode import KIND_JSON, KIND_TEXT, utf8_content_type

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[GatewaySettings] = None,
    *,
    gateway: Optional[ContentAccessGateway] = None,
    probe: Optional[DiagnosticProbe] = None,
) -> FastAPI:
    """Build the app. Collaborators are created on first use unless injected."""

    app = FastAPI(
        title="Content Access Gateway",
        description=(
            "Token-gated retrieval of content-addressed data. Access tokens are resolved "
            "against share grants, content is fetched through provider APIs and public "
            "gateways, and a diagnostic probe reports where an identifier is available."
        ),
        version=__version__,
    )
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.probe = probe

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    _register_routes(app)
    return app


def _settings(request: Request) -> GatewaySettings:
    state = request.app.state
    if state.settings is None:
        state.settings = load_settings()
    return state.settings


def get_gateway(request: Request) -> ContentAccessGateway:
    state = request.app.state
    if state.gateway is None:
        state.gateway = ContentAccessGateway(_settings(request))
    return state.gateway


def get_resolver(gateway: ContentAccessGateway = Depends(get_gateway)) -> GrantResolver:
    return gateway.resolver


def get_probe(request: Request) -> DiagnosticProbe:
    state = request.app.state
    if state.probe is None:
        state.probe = DiagnosticProbe(_settings(request))
    return state.probe


def _register_routes(app: FastAPI) -> None:
    @app.get("/ipfs")
    async def fetch_content(
        content_identifier: Optional[str] = Query(None, alias="contentIdentifier"),
        access_token: Optional[str] = Query(None, alias="accessToken"),
        format_hint: str = Query("raw", alias="format"),
        response_type: str = Query("auto", alias="responseType"),
        gateway: ContentAccessGateway = Depends(get_gateway),
    ) -> Response:
        result = await gateway.fetch(
            content_identifier=content_identifier,
            access_token=access_token,
            response_type=response_type,
            format_hint=format_hint,
        )
        if result.metadata_only:
            return JSONResponse(content=result.metadata)
        payload = result.payload
        if payload.kind == KIND_JSON:
            return JSONResponse(content=payload.body)
        if payload.kind == KIND_TEXT:
            return Response(content=payload.body.encode("utf-8"), media_type=utf8_content_type(payload.content_type))
        return Response(content=payload.body, media_type=payload.content_type)

    @app.get("/ipfs/diagnostic")
    def diagnose_content(
        content_identifier: Optional[str] = Query(None, alias="contentIdentifier"),
        probe: DiagnosticProbe = Depends(get_probe),
    ) -> dict:
        cid = normalize_cid(content_identifier)
        if not cid:
            raise MissingParameter()
        return probe.probe(cid)

    @app.post("/shared-data/record-access")
    def record_access(
        body: schemas.RecordAccessRequest,
        resolver: GrantResolver = Depends(get_resolver),
    ) -> dict:
        count = resolver.record_access(body.access_token)
        return schemas.RecordAccessResponse(access_count=count).model_dump(by_alias=True)

    @app.get("/shared-data/find-by-cid")
    def find_by_content(
        content_identifier: Optional[str] = Query(None, alias="contentIdentifier"),
        resolver: GrantResolver = Depends(get_resolver),
    ) -> dict:
        grant = resolver.find_by_content(normalize_cid(content_identifier))
        return schemas.GrantLookupResponse.from_grant(grant).model_dump(by_alias=True)

    @app.put("/shared-data/{grant_id}")
    def update_grant(
        grant_id: str,
        body: schemas.GrantUpdateRequest,
        resolver: GrantResolver = Depends(get_resolver),
    ) -> dict:
        try:
            grant = resolver.update(grant_id, is_active=body.is_active, expiry_time=body.expiry_time)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return schemas.GrantView.from_grant(grant).model_dump(by_alias=True)


app = create_app()
