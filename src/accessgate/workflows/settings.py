"""Explicit gateway configuration.

The orchestrator, probe and store never read the process environment; they
receive a :class:`GatewaySettings` built once by :func:`load_settings` (or by
a test with fake endpoints).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

from .gateway_config import (
    DATABASE_URL,
    GATEWAY_TIMEOUT,
    IPFS_NODE_API_URL,
    NODE_TIMEOUT,
    OVERRIDES_PATH,
    PINATA_API_URL,
    PINATA_GATEWAY_URL,
    PROBE_TIMEOUT,
    PROVIDER_TIMEOUT,
    PUBLIC_GATEWAYS,
    USER_AGENT,
)


@dataclass(frozen=True)
class GatewaySettings:
    """Endpoints, credentials and time boxes for one gateway instance."""

    public_gateways: Tuple[str, ...] = PUBLIC_GATEWAYS
    probe_gateways: Tuple[str, ...] = PUBLIC_GATEWAYS
    pinata_jwt: Optional[str] = field(default=None, repr=False)
    pinata_api_key: Optional[str] = None
    pinata_secret_api_key: Optional[str] = field(default=None, repr=False)
    pinata_api_url: str = PINATA_API_URL
    pinata_gateway_url: str = PINATA_GATEWAY_URL
    node_api_url: str = IPFS_NODE_API_URL
    node_project_id: Optional[str] = None
    node_project_secret: Optional[str] = field(default=None, repr=False)
    gateway_timeout: float = GATEWAY_TIMEOUT
    provider_timeout: float = PROVIDER_TIMEOUT
    node_timeout: float = NODE_TIMEOUT
    probe_timeout: float = PROBE_TIMEOUT
    overrides_path: Optional[Path] = None
    database_url: str = DATABASE_URL
    user_agent: str = USER_AGENT

    @property
    def has_pinning_credentials(self) -> bool:
        return bool(self.pinata_jwt or (self.pinata_api_key and self.pinata_secret_api_key))

    @property
    def has_node_credentials(self) -> bool:
        return bool(self.node_project_id and self.node_project_secret)


def _env_present(*names: str) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value and value.strip():
            return value.strip()
    return None


def _public_env(name: str) -> Optional[str]:
    """Read ``NAME`` and fall back to the ``NEXT_PUBLIC_NAME`` spelling."""

    return _env_present(name, f"NEXT_PUBLIC_{name}")


def _split_env_list(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    tokens = [token.strip().rstrip("/") for token in value.replace("\n", ",").split(",")]
    return tuple(token for token in tokens if token)


def _safe_float(value: Optional[str], default: float) -> float:
    if value is None or not str(value).strip():
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def load_settings(*, dotenv: bool = True) -> GatewaySettings:
    """Build settings from the environment (and a ``.env`` file when present)."""

    if dotenv:
        load_dotenv()

    gateways = _split_env_list(os.getenv("ACCESSGATE_GATEWAYS")) or PUBLIC_GATEWAYS
    overrides = os.getenv("ACCESSGATE_OVERRIDES_PATH")
    return GatewaySettings(
        public_gateways=gateways,
        probe_gateways=_split_env_list(os.getenv("ACCESSGATE_PROBE_GATEWAYS")) or PUBLIC_GATEWAYS,
        pinata_jwt=_public_env("PINATA_JWT"),
        pinata_api_key=_public_env("PINATA_API_KEY"),
        pinata_secret_api_key=_public_env("PINATA_SECRET_API_KEY"),
        pinata_api_url=(_public_env("PINATA_API_URL") or PINATA_API_URL).rstrip("/"),
        pinata_gateway_url=(_public_env("PINATA_GATEWAY_URL") or PINATA_GATEWAY_URL).rstrip("/"),
        node_api_url=(_public_env("IPFS_API_URL") or IPFS_NODE_API_URL).rstrip("/"),
        node_project_id=_public_env("IPFS_PROJECT_ID"),
        node_project_secret=_public_env("IPFS_PROJECT_SECRET"),
        gateway_timeout=_safe_float(os.getenv("ACCESSGATE_GATEWAY_TIMEOUT"), GATEWAY_TIMEOUT),
        provider_timeout=_safe_float(os.getenv("ACCESSGATE_PROVIDER_TIMEOUT"), PROVIDER_TIMEOUT),
        node_timeout=_safe_float(os.getenv("ACCESSGATE_NODE_TIMEOUT"), NODE_TIMEOUT),
        probe_timeout=_safe_float(os.getenv("ACCESSGATE_PROBE_TIMEOUT"), PROBE_TIMEOUT),
        overrides_path=Path(overrides) if overrides else OVERRIDES_PATH,
        database_url=os.getenv("ACCESSGATE_DATABASE_URL") or DATABASE_URL,
    )


__all__ = ["GatewaySettings", "load_settings"]
