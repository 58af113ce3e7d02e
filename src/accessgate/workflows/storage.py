"""Access grant persistence.

The gateway consumes grants; it does not own their creation flow. The SQL
store below is the single authoritative store the resolver talks to.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, create_engine, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from .gateway_config import DATABASE_URL


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo; stored timestamps are always UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class AccessGrantRow(Base):
    __tablename__ = "access_grants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    access_token: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    content_identifier: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    expiry_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    has_password: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    access_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


@dataclass(frozen=True)
class AccessGrant:
    """Detached snapshot of one share action."""

    id: str
    access_token: str
    content_identifier: str
    expiry_time: datetime
    is_active: bool
    has_password: bool
    access_count: int
    created_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.expiry_time

    @classmethod
    def from_row(cls, row: AccessGrantRow) -> "AccessGrant":
        return cls(
            id=row.id,
            access_token=row.access_token,
            content_identifier=row.content_identifier,
            expiry_time=as_utc(row.expiry_time),
            is_active=bool(row.is_active),
            has_password=bool(row.has_password),
            access_count=int(row.access_count or 0),
            created_at=as_utc(row.created_at) if row.created_at else None,
        )


def _make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url)


class SqlGrantStore:
    """SQLAlchemy-backed grant store."""

    def __init__(self, url: str = DATABASE_URL, *, engine: Optional[Engine] = None) -> None:
        self.engine = engine or _make_engine(url)
        Base.metadata.create_all(self.engine)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    def _session(self) -> Session:
        return self._sessions()

    def create(
        self,
        content_identifier: str,
        expiry_time: datetime,
        *,
        has_password: bool = False,
        access_token: Optional[str] = None,
        is_active: bool = True,
    ) -> AccessGrant:
        row = AccessGrantRow(
            id=str(uuid.uuid4()),
            access_token=access_token or secrets.token_urlsafe(24),
            content_identifier=content_identifier,
            expiry_time=as_utc(expiry_time),
            is_active=is_active,
            has_password=has_password,
            access_count=0,
            created_at=utcnow(),
        )
        with self._session() as session, session.begin():
            session.add(row)
        return AccessGrant.from_row(row)

    def get(self, grant_id: str) -> Optional[AccessGrant]:
        with self._session() as session:
            row = session.get(AccessGrantRow, grant_id)
            return AccessGrant.from_row(row) if row else None

    def find_by_token(self, access_token: str) -> Optional[AccessGrant]:
        with self._session() as session:
            row = session.scalars(
                select(AccessGrantRow).where(AccessGrantRow.access_token == access_token)
            ).first()
            return AccessGrant.from_row(row) if row else None

    def find_active_by_token(self, access_token: str) -> Optional[AccessGrant]:
        """Absent and revoked grants are indistinguishable here."""

        with self._session() as session:
            row = session.scalars(
                select(AccessGrantRow).where(
                    AccessGrantRow.access_token == access_token,
                    AccessGrantRow.is_active.is_(True),
                )
            ).first()
            return AccessGrant.from_row(row) if row else None

    def find_active_by_content(self, content_identifier: str) -> Optional[AccessGrant]:
        with self._session() as session:
            row = session.scalars(
                select(AccessGrantRow)
                .where(
                    AccessGrantRow.content_identifier == content_identifier,
                    AccessGrantRow.is_active.is_(True),
                )
                .order_by(AccessGrantRow.created_at.desc())
            ).first()
            return AccessGrant.from_row(row) if row else None

    def increment_access_count(self, grant_id: str) -> int:
        """Single-statement increment; returns the new count (0 if the grant vanished)."""

        with self._session() as session, session.begin():
            session.execute(
                update(AccessGrantRow)
                .where(AccessGrantRow.id == grant_id)
                .values(access_count=AccessGrantRow.access_count + 1)
            )
            count = session.scalar(select(AccessGrantRow.access_count).where(AccessGrantRow.id == grant_id))
        return int(count or 0)

    def set_active(self, grant_id: str, active: bool) -> Optional[AccessGrant]:
        return self.update(grant_id, is_active=active)

    def update(
        self,
        grant_id: str,
        *,
        is_active: Optional[bool] = None,
        expiry_time: Optional[datetime] = None,
    ) -> Optional[AccessGrant]:
        with self._session() as session, session.begin():
            row = session.get(AccessGrantRow, grant_id)
            if row is None:
                return None
            if is_active is not None:
                row.is_active = is_active
            if expiry_time is not None:
                row.expiry_time = as_utc(expiry_time)
        return AccessGrant.from_row(row)


__all__ = ["AccessGrant", "AccessGrantRow", "Base", "SqlGrantStore", "as_utc", "utcnow"]
