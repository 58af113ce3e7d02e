"""Convert a successful upstream response into the representation a caller asked for."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from charset_normalizer import from_bytes

from ..core.errors import TranscodeDegraded
from .attempts import UpstreamResponse

logger = logging.getLogger(__name__)

KIND_JSON = "json"
KIND_TEXT = "text"
KIND_BINARY = "binary"

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# ``format`` query hints that imply a content type when upstream declares none
_FORMAT_HINTS = {
    "json": "application/json",
    "dag-json": "application/json",
    "text": "text/plain",
}

_CHARSET_RE = re.compile(r"charset=([^\s;]+)", re.I)


def _reject_constant(name: str) -> Any:
    # NaN and Infinity cannot be re-rendered as strict JSON
    raise ValueError(f"non-standard JSON constant {name}")


def utf8_content_type(content_type: str) -> str:
    """Content type for a body re-encoded as UTF-8."""

    if _CHARSET_RE.search(content_type):
        return _CHARSET_RE.sub("charset=utf-8", content_type)
    return f"{content_type}; charset=utf-8"


@dataclass
class TranscodedPayload:
    kind: str
    content_type: str
    body: Any
    degraded: bool = False


def content_type_for_format(fmt: Optional[str]) -> Optional[str]:
    return _FORMAT_HINTS.get((fmt or "").strip().lower())


def decode_body(body: bytes, content_type: Optional[str] = None) -> str:
    """Decode using the declared charset, falling back to charset-normalizer detection."""

    enc = None
    if content_type:
        match = _CHARSET_RE.search(content_type)
        if match:
            enc = match.group(1).strip(' "\'').lower()
    if enc:
        try:
            return body.decode(enc, errors="replace")
        except LookupError:
            logger.debug("Unknown charset %s; detecting instead", enc)
    if not body:
        return ""
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError:
        pass
    result = from_bytes(body).best()
    if result is None:
        return body.decode("utf-8", errors="replace")
    return str(result)


class ResponseTranscoder:
    """JSON when asked or declared, text when textual, bytes otherwise."""

    def _parse_json(self, upstream: UpstreamResponse, content_type: str) -> Any:
        try:
            return json.loads(decode_body(upstream.body, content_type), parse_constant=_reject_constant)
        except ValueError as exc:
            raise TranscodeDegraded(f"Failed to parse response from {upstream.url} as JSON: {exc}") from exc

    def transcode(
        self,
        upstream: UpstreamResponse,
        response_type: str = "auto",
        content_type_hint: Optional[str] = None,
    ) -> TranscodedPayload:
        content_type = upstream.content_type or content_type_hint or DEFAULT_CONTENT_TYPE
        lowered = content_type.lower()
        requested = (response_type or "auto").strip().lower()
        degraded = False

        if requested == KIND_JSON or "json" in lowered:
            try:
                parsed = self._parse_json(upstream, content_type)
                return TranscodedPayload(KIND_JSON, content_type, parsed)
            except TranscodeDegraded as exc:
                logger.warning("%s; serving a less structured payload", exc.message)
                degraded = True

        if "text" in lowered or requested == KIND_TEXT:
            return TranscodedPayload(KIND_TEXT, content_type, decode_body(upstream.body, content_type), degraded)

        return TranscodedPayload(KIND_BINARY, content_type, upstream.body, degraded)


__all__ = [
    "KIND_JSON",
    "KIND_TEXT",
    "KIND_BINARY",
    "TranscodedPayload",
    "ResponseTranscoder",
    "content_type_for_format",
    "decode_body",
    "utf8_content_type",
]
