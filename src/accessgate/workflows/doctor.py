from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from .cid_utils import load_override_file
from .settings import GatewaySettings, load_settings
from .storage import _make_engine


_SECRET_TOKENS = ("key", "token", "secret", "password", "pass", "jwt")


def _is_secret_name(name: str) -> bool:
    lowered = (name or "").lower()
    return any(token in lowered for token in _SECRET_TOKENS)


def redact_value(value: str, keep: int = 4) -> str:
    raw = (value or "").strip()
    if not raw:
        return ""
    if len(raw) <= keep * 2:
        return "*" * len(raw)
    return f"{raw[:keep]}...{raw[-keep:]}"


def _redacted_env_value(name: str, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return redact_value(value) if _is_secret_name(name) else value


def _redact_url(url: str) -> str:
    # user:password@host forms
    if "@" not in url or "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    creds, host = rest.rsplit("@", 1)
    return f"{scheme}://{redact_value(creds)}@{host}"


def _sqlite_file(url: str) -> Optional[Path]:
    try:
        parsed = make_url(url)
    except ArgumentError:
        return None
    if parsed.get_backend_name() != "sqlite" or parsed.database in (None, "", ":memory:"):
        return None
    return Path(parsed.database)


def _check_database(url: str) -> Optional[str]:
    """Return ``None`` when the database answers, else the error text.

    A SQLite file that does not exist yet is never created here; only its
    directory is checked.
    """

    db_file = _sqlite_file(url)
    if db_file is not None and not db_file.exists():
        parent = db_file.parent
        if not parent.is_dir():
            return f"directory {parent} does not exist"
        if not os.access(parent, os.W_OK):
            return f"directory {parent} is not writable"
        return None
    try:
        engine = _make_engine(url)
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        finally:
            engine.dispose()
    except SQLAlchemyError as exc:
        return str(exc).splitlines()[0]
    return None


def collect_environment_warnings(settings: GatewaySettings) -> List[Dict[str, str]]:
    warnings: List[Dict[str, str]] = []
    if settings.pinata_api_key and not settings.pinata_secret_api_key and not settings.pinata_jwt:
        warnings.append(
            {
                "code": "pinata_key_pair_incomplete",
                "message": "PINATA_API_KEY is set without PINATA_SECRET_API_KEY; the key pair is ignored.",
                "remedy": "Set PINATA_SECRET_API_KEY or use PINATA_JWT.",
            }
        )
    if bool(settings.node_project_id) != bool(settings.node_project_secret):
        warnings.append(
            {
                "code": "ipfs_node_credentials_incomplete",
                "message": "Only one of IPFS_PROJECT_ID / IPFS_PROJECT_SECRET is set; node API retrieval is disabled.",
                "remedy": "Set both IPFS_PROJECT_ID and IPFS_PROJECT_SECRET.",
            }
        )
    if not settings.public_gateways:
        warnings.append(
            {
                "code": "no_public_gateways",
                "message": "No public gateways configured; only provider-direct retrieval can succeed.",
                "remedy": "Unset ACCESSGATE_GATEWAYS or list at least one gateway.",
            }
        )
    return warnings


def build_doctor_report(settings: Optional[GatewaySettings] = None) -> Dict[str, Any]:
    settings = settings or load_settings()
    report: Dict[str, Any] = {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "ok": True,
        "checks": [],
        "environment_warnings": collect_environment_warnings(settings),
    }

    def add_check(
        name: str,
        status: bool,
        *,
        detail: Optional[str] = None,
        remedy: Optional[str] = None,
        level: str = "warn",
        value: Optional[str] = None,
    ) -> None:
        entry = {
            "name": name,
            "status": "ok" if status else "missing",
            "level": level,
            "detail": detail,
        }
        if remedy:
            entry["remedy"] = remedy
        if value is not None:
            entry["value"] = _redacted_env_value(name, value)
        report["checks"].append(entry)
        if not status and level == "warn":
            report["ok"] = False

    if settings.pinata_jwt:
        add_check(
            "PINATA_JWT",
            True,
            detail="Pinning service lookups use bearer auth",
            level="info",
            value=settings.pinata_jwt,
        )
    elif settings.pinata_api_key and settings.pinata_secret_api_key:
        add_check(
            "PINATA_API_KEY",
            True,
            detail="Pinning service lookups use the key pair",
            level="info",
            value=settings.pinata_api_key,
        )
    else:
        add_check(
            "PINATA_JWT",
            False,
            detail="Pinning service phase disabled",
            remedy="Set PINATA_JWT (or PINATA_API_KEY and PINATA_SECRET_API_KEY).",
            level="warn",
        )

    add_check(
        "IPFS_PROJECT_ID",
        settings.has_node_credentials,
        detail="Node API phase enabled" if settings.has_node_credentials else "Node API phase disabled",
        remedy="Set IPFS_PROJECT_ID and IPFS_PROJECT_SECRET to enable the node API phase.",
        level="warn",
        value=settings.node_project_id,
    )

    add_check(
        "ACCESSGATE_GATEWAYS",
        bool(settings.public_gateways),
        detail=", ".join(settings.public_gateways) or "none",
        remedy="List at least one public gateway base URL.",
        level="warn",
    )

    overrides = settings.overrides_path
    if overrides is None:
        add_check("ACCESSGATE_OVERRIDES_PATH", True, detail="Built-in overrides only", level="info")
    else:
        overrides = Path(overrides)
        add_check(
            "ACCESSGATE_OVERRIDES_PATH",
            overrides.exists(),
            detail=f"{overrides} ({len(load_override_file(overrides))} entries)",
            remedy="Ensure overrides.json is present or set ACCESSGATE_OVERRIDES_PATH.",
            level="warn",
        )

    db_error = _check_database(settings.database_url)
    add_check(
        "ACCESSGATE_DATABASE_URL",
        db_error is None,
        detail=db_error or _redact_url(settings.database_url),
        remedy="Point ACCESSGATE_DATABASE_URL at a reachable database.",
        level="warn",
    )

    return report


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("Access gateway doctor")
    lines.append(f"Generated: {report.get('generated_at')}")
    lines.append("Values are redacted where applicable.")
    lines.append("")
    for check in report.get("checks", []):
        name = check.get("name", "check")
        status = check.get("status", "unknown")
        level = check.get("level", "info")
        detail = check.get("detail")
        value = check.get("value")
        label = f"{name}: {status}"
        if value:
            label = f"{label} ({value})"
        lines.append(f"- [{level}] {label}")
        if detail:
            lines.append(f"  detail: {detail}")
        remedy = check.get("remedy")
        if remedy:
            lines.append(f"  remedy: {remedy}")
    warnings = report.get("environment_warnings") or []
    if warnings:
        lines.append("")
        lines.append("Environment warnings:")
        for warning in warnings:
            lines.append(f"- {warning.get('code', 'warning')}: {warning.get('message', '')}")
            if warning.get("remedy"):
                lines.append(f"  remedy: {warning['remedy']}")
    return "\n".join(lines).rstrip() + "\n"


__all__ = [
    "build_doctor_report",
    "collect_environment_warnings",
    "format_doctor_report",
    "redact_value",
]
