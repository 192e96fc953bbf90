"""SQLAlchemy ORM models for the link shortener.

Data Model Layout
=================
::
    links table
    ├─ id (UUID PRIMARY KEY)
    ├─ short_code (VARCHAR(20) UNIQUE, INDEXED)
    ├─ original_url (TEXT NOT NULL)
    ├─ clicks (BIGINT DEFAULT 0)
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW())
    └─ expires_at (TIMESTAMPTZ NULL)

Key Behaviours
===============
- short_code is indexed for fast lookups during redirects.
- clicks starts at 0 and only moves through ``LinkStore.increment_clicks``.
- A link whose expires_at is not in the future is treated as absent
  (soft expiry); the row stays until its code is claimed again.

Classes:
    Link:  A shortened URL with click tracking and optional expiry.
"""

import datetime
import uuid

from sqlalchemy import BigInteger, DateTime, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from shortener.database import Base

__all__ = ["Link"]


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Link(Base):
    __tablename__ = "links"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    short_code: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    clicks: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def is_active(self, now: datetime.datetime | None = None) -> bool:
        if self.expires_at is None:
            return True
        return self.expires_at > (now or _utcnow())

    def __repr__(self) -> str:
        return f"<Link(id={self.id}, short_code='{self.short_code}', clicks={self.clicks})>"
