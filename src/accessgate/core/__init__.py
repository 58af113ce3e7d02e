"""Core schema helpers for the access gateway."""

from .keys import *  # noqa: F401,F403 re-export stable keys
from .errors import (
    AllAttemptsFailed,
    GatewayError,
    GrantExpired,
    GrantNotFound,
    MissingParameter,
    TranscodeDegraded,
    UnexpectedFailure,
    UpstreamTimeout,
)

__all__ = [name for name in globals() if name.startswith("K_")] + [
    "AllAttemptsFailed",
    "GatewayError",
    "GrantExpired",
    "GrantNotFound",
    "MissingParameter",
    "TranscodeDegraded",
    "UnexpectedFailure",
    "UpstreamTimeout",
]
