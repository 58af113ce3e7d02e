"""Access grant policy: token -> content identifier (or metadata-only)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..core.errors import GrantExpired, GrantNotFound, MissingParameter
from ..core.keys import (
    K_ACCESS_TOKEN,
    K_CONTENT_IDENTIFIER,
    K_EXPIRY_TIME,
    K_HAS_PASSWORD,
    K_MESSAGE,
)
from .gateway_config import PASSWORD_PROTECTED_MESSAGE
from .storage import AccessGrant, SqlGrantStore, as_utc, utcnow

logger = logging.getLogger(__name__)


def isoformat_z(value: datetime) -> str:
    return as_utc(value).isoformat().replace("+00:00", "Z")


def token_hint(token: Optional[str]) -> str:
    """Short, log-safe prefix of an access token."""

    return f"{(token or '').strip()[:6]}..."


@dataclass(frozen=True)
class GrantResolution:
    grant: AccessGrant
    access_count: Optional[int] = None

    @property
    def content_identifier(self) -> str:
        return self.grant.content_identifier

    @property
    def metadata_only(self) -> bool:
        return self.grant.has_password

    def metadata(self) -> Dict[str, Any]:
        """Body returned instead of content for password-protected grants."""

        return {
            K_ACCESS_TOKEN: self.grant.access_token,
            K_CONTENT_IDENTIFIER: self.grant.content_identifier,
            K_HAS_PASSWORD: True,
            K_EXPIRY_TIME: isoformat_z(self.grant.expiry_time),
            K_MESSAGE: PASSWORD_PROTECTED_MESSAGE,
        }


class GrantResolver:
    """Applies expiry, revocation and password gating to access tokens."""

    def __init__(self, store: SqlGrantStore, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.store = store
        self._clock = clock or utcnow

    def _now(self) -> datetime:
        return as_utc(self._clock())

    def _count_access(self, grant: AccessGrant) -> Optional[int]:
        try:
            return self.store.increment_access_count(grant.id)
        except SQLAlchemyError:
            # Counting must not stand between a valid token and its content.
            logger.exception("Failed to record access for grant %s", grant.id)
            return None

    def resolve(self, token: Optional[str]) -> GrantResolution:
        token = (token or "").strip()
        if not token:
            raise MissingParameter()
        logger.info("Looking up shared data for access token %s", token_hint(token))
        grant = self.store.find_active_by_token(token)
        if grant is None:
            logger.info("No active shared data for access token %s", token_hint(token))
            raise GrantNotFound()
        if grant.is_expired(self._now()):
            logger.info("Access has expired for grant %s", grant.id)
            raise GrantExpired()
        count = self._count_access(grant)
        if grant.has_password:
            logger.info("Grant %s is password protected; returning metadata only", grant.id)
        return GrantResolution(grant=grant, access_count=count)

    def record_access(self, token: Optional[str]) -> int:
        """Count an access made outside the gateway; inactive grants are refused."""

        token = (token or "").strip()
        if not token:
            raise MissingParameter("Invalid access token")
        grant = self.store.find_by_token(token)
        if grant is None:
            raise GrantNotFound("Shared data not found")
        if not grant.is_active or grant.is_expired(self._now()):
            raise GrantExpired("Access has expired or is inactive")
        return self.store.increment_access_count(grant.id)

    def find_by_content(self, content_identifier: Optional[str]) -> AccessGrant:
        cid = (content_identifier or "").strip()
        if not cid:
            raise MissingParameter("Missing or invalid CID parameter")
        grant = self.store.find_active_by_content(cid)
        if grant is None:
            raise GrantNotFound("No shared data found for this CID")
        if grant.is_expired(self._now()):
            raise GrantExpired()
        return grant

    def update(
        self,
        grant_id: str,
        *,
        is_active: Optional[bool] = None,
        expiry_time: Optional[datetime] = None,
    ) -> AccessGrant:
        if is_active:
            # Revocation is terminal; nothing in the gateway re-activates a grant.
            raise ValueError("Revoked grants cannot be re-activated")
        grant = self.store.update(grant_id, is_active=is_active, expiry_time=expiry_time)
        if grant is None:
            raise GrantNotFound("Shared data not found")
        if is_active is False:
            logger.info("Revoked grant %s", grant_id)
        return grant

    def revoke(self, grant_id: str) -> AccessGrant:
        return self.update(grant_id, is_active=False)


__all__ = ["GrantResolution", "GrantResolver", "isoformat_z", "token_hint"]
