"""Content identifier normalization, classification and override lookup."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from ..core.errors import MissingParameter

logger = logging.getLogger(__name__)

FAMILY_LEGACY = "cidv0"
FAMILY_MULTICODEC = "cidv1"
FAMILY_UNKNOWN = "unknown"

_LEGACY_PREFIX = "Qm"
_MULTICODEC_PREFIX = "b"
_STRIP_PREFIXES = ("ipfs://", "/ipfs/")


@dataclass(frozen=True)
class KnownCidOverride:
    """Retrieval hints for one identifier whose upstream behavior is known to be quirky."""

    preferred_formats: Tuple[str, ...] = ()
    preferred_gateways: Tuple[str, ...] = ()
    needs_provider_phase: bool = True


# Operational escape hatch, not a general rule: identifiers listed here were
# only reachable with these exact gateway/format orderings.
KNOWN_CID_OVERRIDES: Dict[str, KnownCidOverride] = {
    "bagaaierapfdluuliyl5h6bwstq6o7427terxinsbd5ougxvvtrgit52fmxqq": KnownCidOverride(
        preferred_formats=("dag-json", "raw", "dag-cbor", ""),
        preferred_gateways=("https://dweb.link/ipfs", "https://cloudflare-ipfs.com/ipfs"),
        needs_provider_phase=True,
    ),
    "bagaaieraogtm52c46bjycxklevgsfs5lben3k2zfoqxgqcwguvb2wuqyngmq": KnownCidOverride(
        preferred_formats=("dag-json", "dag-cbor", "raw", ""),
        preferred_gateways=("https://ipfs.io/ipfs", "https://dweb.link/ipfs"),
        needs_provider_phase=True,
    ),
}


@dataclass(frozen=True)
class CidClassification:
    identifier: str
    family: str
    override: Optional[KnownCidOverride] = None

    @property
    def is_multicodec(self) -> bool:
        return self.family == FAMILY_MULTICODEC

    @property
    def is_legacy(self) -> bool:
        return self.family == FAMILY_LEGACY

    @property
    def needs_provider_phase(self) -> bool:
        """Provider-direct attempts apply to multi-codec identifiers unless an override opts out."""

        if not self.is_multicodec:
            return False
        return self.override is None or self.override.needs_provider_phase


def normalize_cid(raw: Optional[str]) -> str:
    """Strip whitespace and ``ipfs://`` / ``/ipfs/`` prefixes; never re-encodes."""

    value = (raw or "").strip()
    for prefix in _STRIP_PREFIXES:
        if value.startswith(prefix):
            value = value[len(prefix):]
            break
    return value.strip("/")


def infer_family(identifier: str) -> str:
    if identifier.startswith(_LEGACY_PREFIX):
        return FAMILY_LEGACY
    if identifier.startswith(_MULTICODEC_PREFIX):
        return FAMILY_MULTICODEC
    return FAMILY_UNKNOWN


def _coerce_override(raw: Any) -> Optional[KnownCidOverride]:
    if not isinstance(raw, Mapping):
        return None
    formats = raw.get("preferred_formats") or ()
    gateways = raw.get("preferred_gateways") or ()
    if not isinstance(formats, (list, tuple)) or not isinstance(gateways, (list, tuple)):
        return None
    return KnownCidOverride(
        preferred_formats=tuple(str(item) for item in formats),
        preferred_gateways=tuple(str(item).rstrip("/") for item in gateways if str(item).strip()),
        needs_provider_phase=bool(raw.get("needs_provider_phase", True)),
    )


_OVERRIDE_FILE_CACHE: Dict[str, Dict[str, KnownCidOverride]] = {}


def load_override_file(path: Optional[Path]) -> Dict[str, KnownCidOverride]:
    """Load ``{cid: {preferred_formats, preferred_gateways, needs_provider_phase}}`` entries."""

    if path is None:
        return {}
    key = str(path)
    if key in _OVERRIDE_FILE_CACHE:
        return _OVERRIDE_FILE_CACHE[key]
    entries: Dict[str, KnownCidOverride] = {}
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable CID override file %s: %s", path, exc)
            data = {}
        if isinstance(data, dict):
            for cid, raw in data.items():
                override = _coerce_override(raw)
                if override is None:
                    logger.warning("Skipping malformed CID override for %s", cid)
                    continue
                entries[normalize_cid(cid)] = override
    _OVERRIDE_FILE_CACHE[key] = entries
    return entries


def reload_override_cache() -> None:
    _OVERRIDE_FILE_CACHE.clear()


class ContentIdentifierAnalyzer:
    """Classifies identifiers and looks up identifier-specific retrieval overrides."""

    def __init__(
        self,
        overrides: Optional[Mapping[str, KnownCidOverride]] = None,
        overrides_path: Optional[Path] = None,
    ) -> None:
        table: Dict[str, KnownCidOverride] = dict(KNOWN_CID_OVERRIDES if overrides is None else overrides)
        table.update(load_override_file(overrides_path))
        self._overrides = table

    @property
    def overrides(self) -> Mapping[str, KnownCidOverride]:
        return dict(self._overrides)

    def lookup_override(self, identifier: str) -> Optional[KnownCidOverride]:
        return self._overrides.get(identifier)

    def classify(self, identifier: Optional[str]) -> CidClassification:
        cid = normalize_cid(identifier)
        if not cid:
            raise MissingParameter()
        family = infer_family(cid)
        logger.debug("Classified CID %s as %s", cid, family)
        return CidClassification(identifier=cid, family=family, override=self.lookup_override(cid))


__all__ = [
    "FAMILY_LEGACY",
    "FAMILY_MULTICODEC",
    "FAMILY_UNKNOWN",
    "KNOWN_CID_OVERRIDES",
    "KnownCidOverride",
    "CidClassification",
    "ContentIdentifierAnalyzer",
    "normalize_cid",
    "infer_family",
    "load_override_file",
    "reload_override_cache",
]
