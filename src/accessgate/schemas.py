"""Pydantic schemas for the access gateway HTTP API."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .core.keys import (
    K_ACCESS_COUNT,
    K_ACCESS_TOKEN,
    K_CONTENT_IDENTIFIER,
    K_EXPIRY_TIME,
    K_HAS_PASSWORD,
    K_IS_ACTIVE,
)
from .workflows.grants import isoformat_z
from .workflows.storage import AccessGrant


class GrantUpdateRequest(BaseModel):
    """Partial update of a grant. Only revocation and expiry changes are accepted."""

    model_config = ConfigDict(populate_by_name=True)

    is_active: Optional[bool] = Field(None, alias=K_IS_ACTIVE)
    expiry_time: Optional[datetime] = Field(None, alias=K_EXPIRY_TIME)


class RecordAccessRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias=K_ACCESS_TOKEN, min_length=1)


class RecordAccessResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    access_count: int = Field(..., serialization_alias=K_ACCESS_COUNT)


class GrantLookupResponse(BaseModel):
    """Token and expiry for the newest active grant of a content identifier."""

    access_token: str = Field(..., serialization_alias=K_ACCESS_TOKEN)
    expiry_time: str = Field(..., serialization_alias=K_EXPIRY_TIME)

    @classmethod
    def from_grant(cls, grant: AccessGrant) -> "GrantLookupResponse":
        return cls(access_token=grant.access_token, expiry_time=isoformat_z(grant.expiry_time))


class GrantView(BaseModel):
    """Public view of a grant after an update."""

    id: str
    access_token: str = Field(..., serialization_alias=K_ACCESS_TOKEN)
    content_identifier: str = Field(..., serialization_alias=K_CONTENT_IDENTIFIER)
    expiry_time: str = Field(..., serialization_alias=K_EXPIRY_TIME)
    is_active: bool = Field(..., serialization_alias=K_IS_ACTIVE)
    has_password: bool = Field(..., serialization_alias=K_HAS_PASSWORD)
    access_count: int = Field(..., serialization_alias=K_ACCESS_COUNT)

    @classmethod
    def from_grant(cls, grant: AccessGrant) -> "GrantView":
        return cls(
            id=grant.id,
            access_token=grant.access_token,
            content_identifier=grant.content_identifier,
            expiry_time=isoformat_z(grant.expiry_time),
            is_active=grant.is_active,
            has_password=grant.has_password,
            access_count=grant.access_count,
        )
