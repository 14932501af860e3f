"""
SQL-backed key-value store.

Keeps each key as a row of ``kv_entries``. SQLAlchemy sessions are
synchronous, so every operation runs in Starlette's thread pool to keep the
event loop free.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import Engine, delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from chittycontext.db.connection import session_scope
from chittycontext.exceptions import StoreError
from chittycontext.models.db import KeyValueEntry

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is written as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlKeyValueStore:
    """Key-value store over a relational table.

    ``increment`` locks the counter row with ``SELECT ... FOR UPDATE`` so
    concurrent increments of an existing counter are serialized by the
    database.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._session_factory = session_factory
        self._clock = clock

    @property
    def engine(self) -> Engine:
        return self._session_factory.kw["bind"]

    def _expiry(self, ttl_seconds: Optional[int]) -> Optional[datetime]:
        if ttl_seconds is None:
            return None
        return self._clock() + timedelta(seconds=ttl_seconds)

    def _is_expired(self, entry: KeyValueEntry) -> bool:
        return entry.expires_at is not None and _as_utc(entry.expires_at) <= self._clock()

    async def _run(self, operation: str, key: str, func, *args):
        try:
            return await run_in_threadpool(func, *args)
        except SQLAlchemyError as e:
            logger.error(f"Store {operation} failed for {key!r}: {e}")
            raise StoreError(operation, key, e) from e

    def _get(self, key: str) -> Optional[str]:
        with session_scope(self._session_factory) as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                return None
            if self._is_expired(entry):
                session.delete(entry)
                return None
            return entry.value

    def _put(self, key: str, value: str, ttl_seconds: Optional[int]) -> None:
        with session_scope(self._session_factory) as session:
            session.merge(
                KeyValueEntry(key=key, value=value, expires_at=self._expiry(ttl_seconds))
            )

    def _delete(self, key: str) -> None:
        with session_scope(self._session_factory) as session:
            session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))

    def _list_keys(self, prefix: str, limit: Optional[int]) -> list[str]:
        with session_scope(self._session_factory) as session:
            query = (
                select(KeyValueEntry.key)
                .where(
                    KeyValueEntry.key.startswith(prefix, autoescape=True),
                    or_(
                        KeyValueEntry.expires_at.is_(None),
                        KeyValueEntry.expires_at > self._clock(),
                    ),
                )
                .order_by(KeyValueEntry.key)
            )
            if limit is not None:
                query = query.limit(limit)
            return list(session.scalars(query))

    def _increment(self, key: str, ttl_seconds: int) -> int:
        with session_scope(self._session_factory) as session:
            entry = session.scalars(
                select(KeyValueEntry).where(KeyValueEntry.key == key).with_for_update()
            ).one_or_none()

            if entry is None:
                session.add(
                    KeyValueEntry(key=key, value="1", expires_at=self._expiry(ttl_seconds))
                )
                return 1

            if self._is_expired(entry):
                entry.value = "1"
                entry.expires_at = self._expiry(ttl_seconds)
                return 1

            count = int(entry.value) + 1
            entry.value = str(count)
            return count

    def _purge_expired(self) -> int:
        with session_scope(self._session_factory) as session:
            result = session.execute(
                delete(KeyValueEntry).where(
                    KeyValueEntry.expires_at.is_not(None),
                    KeyValueEntry.expires_at <= self._clock(),
                )
            )
            return result.rowcount

    async def get(self, key: str) -> Optional[str]:
        return await self._run("get", key, self._get, key)

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        await self._run("put", key, self._put, key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._run("delete", key, self._delete, key)

    async def list_keys(self, prefix: str, limit: Optional[int] = None) -> list[str]:
        return await self._run("list", prefix, self._list_keys, prefix, limit)

    async def increment(self, key: str, ttl_seconds: int) -> int:
        return await self._run("increment", key, self._increment, key, ttl_seconds)

    async def purge_expired(self) -> int:
        """Delete expired rows.

        Returns:
            Number of rows removed
        """
        removed = await self._run("purge", "*", self._purge_expired)
        if removed:
            logger.info(f"Purged {removed} expired store entries")
        return removed
