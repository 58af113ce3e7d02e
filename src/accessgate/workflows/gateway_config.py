"""Gateway defaults (endpoints, headers, gateways, formats, timeouts).

Centralizes static defaults so the retrieval modules have no embedded magic
strings. These are baseline constants used to build ``GatewaySettings``;
callers can inject their own settings to override any of them.
"""

from __future__ import annotations

from pathlib import Path

# Endpoints / headers
PINATA_API_URL = "https://api.pinata.cloud"
PINATA_PIN_JOBS_PATH = "/pinning/pinJobs"
PINATA_PIN_LIST_PATH = "/data/pinList"
PINATA_GATEWAY_URL = "https://gateway.pinata.cloud/ipfs"
IPFS_NODE_API_URL = "https://ipfs.infura.io:5001/api/v0"

HDR_ACCEPT = "Accept"
HDR_AUTHORIZATION = "Authorization"
HDR_PINATA_API_KEY = "pinata_api_key"
HDR_PINATA_SECRET = "pinata_secret_api_key"
HDR_CONTENT_TYPE = "Content-Type"
HDR_CONTENT_LENGTH = "Content-Length"

USER_AGENT = "accessgate/0.1 (+https://docs.ipfs.tech/concepts/ipfs-gateway/)"

# Paths (project-relative)
_ROOT = Path(__file__).resolve().parents[1]
OVERRIDES_PATH = _ROOT / "data" / "overrides.json"
DATABASE_URL = "sqlite:///accessgate.db"

# Public gateways, in default preference order
PUBLIC_GATEWAYS = (
    "https://ipfs.io/ipfs",
    "https://dweb.link/ipfs",
    "https://cloudflare-ipfs.com/ipfs",
    "https://gateway.pinata.cloud/ipfs",
)

# Format negotiation; "" means no ?format= hint
MULTICODEC_FORMATS = ("dag-json", "raw", "dag-cbor", "")
LEGACY_FORMATS = ("",)

# Node API operations tried in order against the provider node
NODE_API_OPERATIONS = ("dag/get", "cat", "block/get")

# Per-attempt time boxes (seconds)
PROVIDER_TIMEOUT = 10.0
GATEWAY_TIMEOUT = 15.0
NODE_TIMEOUT = 15.0
PROBE_TIMEOUT = 10.0

PASSWORD_PROTECTED_MESSAGE = (
    "This content is password protected. Please use the password to decrypt it."
)
