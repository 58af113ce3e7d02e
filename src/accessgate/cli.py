from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from .core.errors import GatewayError
from .core.keys import K_CONTENT_IDENTIFIER, K_CONTENT_TYPE, K_EXPIRY_TIME, K_IS_ACTIVE
from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.gateway import ContentAccessGateway, GatewayResult
from .workflows.grants import GrantResolver, isoformat_z
from .workflows.probe import DiagnosticProbe
from .workflows.settings import load_settings
from .workflows.storage import SqlGrantStore
from .workflows.transcode import KIND_BINARY, KIND_JSON

app = typer.Typer(add_help_option=False, no_args_is_help=False)


def _minimal_help() -> str:
    return """Access gateway CLI

Usage:
  accessgate get <cid> [--token <TOKEN>] [--response-type auto|json|text] [--format <FMT>] [--out <FILE>] [--json]
  accessgate probe <cid>
  accessgate revoke <grant-id>
  accessgate doctor

Common options:
  --token <TOKEN>   Resolve an access token instead of a raw identifier (pass '-' as <cid>).
  --out <FILE>      Write the payload to this file instead of stdout.
  --json            Print a JSON summary instead of the payload.
  --verbose         Log retrieval attempts to stderr.

Discoverability:
  --help-full     Expanded help + env vars.
  --find <query>  Search commands, flags, env vars.
  --doctor        Run configuration diagnostics and exit.
"""


def _help_full() -> str:
    return """Access gateway CLI

Commands:
  get      Retrieve content by identifier or access token.
  probe    Report pin status and per-gateway availability (JSON).
  revoke   Deactivate a share grant. Idempotent.
  doctor   Print configuration diagnostics.

Retrieval order:
  1. Provider-direct (multi-codec identifiers, when credentials are set):
     pinning service gateway, then node API.
  2. Public gateways x formats, override ordering first.

Important env vars:
  PINATA_JWT / PINATA_API_KEY + PINATA_SECRET_API_KEY
  PINATA_GATEWAY_URL, PINATA_API_URL
  IPFS_PROJECT_ID, IPFS_PROJECT_SECRET, IPFS_API_URL
  ACCESSGATE_GATEWAYS, ACCESSGATE_PROBE_GATEWAYS
  ACCESSGATE_GATEWAY_TIMEOUT, ACCESSGATE_PROVIDER_TIMEOUT
  ACCESSGATE_NODE_TIMEOUT, ACCESSGATE_PROBE_TIMEOUT
  ACCESSGATE_OVERRIDES_PATH
  ACCESSGATE_DATABASE_URL

Exit codes:
  0 success, 1 gateway error (not found, expired, exhausted), 2 doctor warnings, 3 fatal.
"""


_FIND_INDEX = [
    ("command", "get", "Retrieve content by identifier or access token."),
    ("command", "probe", "Report pin status and gateway availability."),
    ("command", "revoke", "Deactivate a share grant."),
    ("command", "doctor", "Print configuration diagnostics."),
    ("flag", "--token", "Resolve an access token instead of a raw identifier."),
    ("flag", "--response-type", "auto, json or text."),
    ("flag", "--format", "Format hint used when upstream declares no content type."),
    ("flag", "--out", "Write the payload to a file."),
    ("flag", "--json", "Print a JSON summary."),
    ("flag", "--help-full", "Expanded help, env vars."),
    ("flag", "--find", "Search commands, flags, env vars."),
    ("flag", "--doctor", "Run configuration diagnostics and exit."),
    ("env", "PINATA_JWT", "Pinning service bearer token."),
    ("env", "PINATA_API_KEY", "Pinning service key (with PINATA_SECRET_API_KEY)."),
    ("env", "IPFS_PROJECT_ID", "Node API project id (with IPFS_PROJECT_SECRET)."),
    ("env", "ACCESSGATE_GATEWAYS", "Comma list of public gateway base URLs."),
    ("env", "ACCESSGATE_PROBE_GATEWAYS", "Comma list of gateways the probe checks."),
    ("env", "ACCESSGATE_OVERRIDES_PATH", "Override overrides.json path."),
    ("env", "ACCESSGATE_DATABASE_URL", "Grant store database URL."),
]


def _run_find(query: str) -> str:
    needle = (query or "").strip().lower()
    if not needle:
        return ""
    lines = []
    for category, name, desc in _FIND_INDEX:
        haystack = f"{category} {name} {desc}".lower()
        if needle in haystack:
            lines.append(f"{category} {name} - {desc}")
    return "\n".join(lines)


def _fail(exc: GatewayError) -> None:
    typer.echo(json.dumps(exc.to_dict(), ensure_ascii=False), err=True)
    raise typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    help: bool = typer.Option(False, "--help", "-h", is_eager=True, help="Show minimal help."),
    help_full: bool = typer.Option(False, "--help-full", is_eager=True, help="Show expanded help."),
    find: Optional[str] = typer.Option(None, "--find", is_eager=True, help="Search commands, flags, env vars."),
    doctor: bool = typer.Option(False, "--doctor", is_eager=True, help="Run configuration diagnostics and exit."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log retrieval attempts to stderr."),
) -> None:
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    if help_full:
        typer.echo(_help_full())
        raise typer.Exit(code=0)
    if find is not None:
        output = _run_find(find)
        if output:
            typer.echo(output)
        raise typer.Exit(code=0)
    if doctor:
        report = build_doctor_report()
        typer.echo(format_doctor_report(report))
        raise typer.Exit(code=0 if report.get("ok", True) else 2)
    if help or ctx.invoked_subcommand is None:
        typer.echo(_minimal_help())
        raise typer.Exit(code=0)


@app.command("doctor", add_help_option=True)
def doctor_cmd() -> None:
    """Print configuration diagnostics."""
    report = build_doctor_report()
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else 2)


def _summary(result: GatewayResult) -> dict:
    if result.metadata_only:
        return {K_CONTENT_IDENTIFIER: result.content_identifier, "metadataOnly": True, "metadata": result.metadata}
    payload = result.payload
    return {
        K_CONTENT_IDENTIFIER: result.content_identifier,
        "metadataOnly": False,
        "kind": payload.kind,
        K_CONTENT_TYPE: payload.content_type,
        "degraded": payload.degraded,
        "source": result.source_url,
    }


def _emit_payload(result: GatewayResult, out: Optional[Path]) -> None:
    if result.metadata_only:
        text = json.dumps(result.metadata, ensure_ascii=False, indent=2)
        data = text.encode("utf-8")
    else:
        payload = result.payload
        if payload.kind == KIND_BINARY:
            data = payload.body
        elif payload.kind == KIND_JSON:
            data = json.dumps(payload.body, ensure_ascii=False, indent=2).encode("utf-8")
        else:
            data = payload.body.encode("utf-8")
    if out is not None:
        out.write_bytes(data)
        return
    sys.stdout.buffer.write(data)
    if not data.endswith(b"\n"):
        sys.stdout.buffer.write(b"\n")
    sys.stdout.flush()


@app.command("get", add_help_option=True)
def get_content(
    cid: str = typer.Argument(..., help="Content identifier, or '-' when using --token."),
    token: Optional[str] = typer.Option(None, "--token", help="Access token to resolve."),
    response_type: str = typer.Option("auto", "--response-type", help="auto, json or text."),
    fmt: str = typer.Option("raw", "--format", help="Format hint used when upstream declares no content type."),
    out: Optional[Path] = typer.Option(None, "--out", help="Write the payload to this file."),
    json_out: bool = typer.Option(False, "--json", help="Print a JSON summary instead of the payload."),
) -> None:
    identifier = None if cid == "-" else cid
    gateway = ContentAccessGateway(load_settings())
    try:
        result = asyncio.run(
            gateway.fetch(
                content_identifier=identifier,
                access_token=token,
                response_type=response_type,
                format_hint=fmt,
            )
        )
    except GatewayError as exc:
        _fail(exc)
        return
    if json_out:
        if out is not None:
            _emit_payload(result, out)
        sys.stdout.write(json.dumps(_summary(result), ensure_ascii=False) + "\n")
    else:
        _emit_payload(result, out)
    raise typer.Exit(code=0)


@app.command("probe", add_help_option=True)
def probe_content(cid: str = typer.Argument(..., help="Content identifier to diagnose.")) -> None:
    """Report pin status and per-gateway availability."""
    report = DiagnosticProbe(load_settings()).probe(cid)
    sys.stdout.write(json.dumps(report, ensure_ascii=False, indent=2) + "\n")
    raise typer.Exit(code=0 if report.get("status") == "success" else 3)


@app.command("revoke", add_help_option=True)
def revoke_grant(grant_id: str = typer.Argument(..., help="Grant id (not the access token).")) -> None:
    """Deactivate a share grant."""
    settings = load_settings()
    resolver = GrantResolver(SqlGrantStore(settings.database_url))
    try:
        grant = resolver.revoke(grant_id)
    except GatewayError as exc:
        _fail(exc)
        return
    typer.echo(
        json.dumps(
            {"id": grant.id, K_IS_ACTIVE: grant.is_active, K_EXPIRY_TIME: isoformat_z(grant.expiry_time)},
            ensure_ascii=False,
        )
    )
    raise typer.Exit(code=0)
