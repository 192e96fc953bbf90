"""Durable link storage on PostgreSQL.

``LinkStore`` is the source of truth for links and their durable click
counters. Each operation borrows its own session from the pooled session
factory, so request handlers and detached background increments never share
a session.

Error Translation
=================
::
    IntegrityError on insert  ─▶ DuplicateShortCode
    any other SQLAlchemyError ─▶ StorageError
    OSError (connect/refused) ─▶ StorageError

Key Behaviours
===============
- ``get_by_code`` hides soft-expired links (expires_at not strictly in the future).
- ``create`` replaces an expired row holding the same code inside the insert
  transaction; an active row makes the insert fail.
- ``increment_clicks`` on a missing code updates zero rows and succeeds.
- ``exists`` ignores expiry and only serves liveness probing.
"""

import datetime
import logging

from sqlalchemy import delete, exists, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortener.errors import DuplicateShortCode, StorageError
from shortener.models import Link

__all__ = ["LinkStore"]

logger = logging.getLogger("shortener.store")


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class LinkStore:
    """Relational store for ``Link`` records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, link: Link) -> None:
        now = _utcnow()
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        delete(Link).where(
                            Link.short_code == link.short_code,
                            Link.expires_at.is_not(None),
                            Link.expires_at <= now,
                        )
                    )
                    session.add(link)
        except IntegrityError as exc:
            logger.info(f"Short code collision on insert: {link.short_code}")
            raise DuplicateShortCode(f"Short code '{link.short_code}' already exists") from exc
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Failed to create link '{link.short_code}': {exc}") from exc

    async def get_by_code(self, short_code: str) -> Link | None:
        now = _utcnow()
        stmt = select(Link).where(
            Link.short_code == short_code,
            or_(Link.expires_at.is_(None), Link.expires_at > now),
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Failed to load link '{short_code}': {exc}") from exc

    async def increment_clicks(self, short_code: str) -> None:
        stmt = update(Link).where(Link.short_code == short_code).values(clicks=Link.clicks + 1)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Failed to increment clicks for '{short_code}': {exc}") from exc
        if result.rowcount == 0:
            logger.debug(f"Click increment matched no link: {short_code}")

    async def exists(self, short_code: str) -> bool:
        stmt = select(exists().where(Link.short_code == short_code))
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return bool(result.scalar())
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Failed to probe link '{short_code}': {exc}") from exc
