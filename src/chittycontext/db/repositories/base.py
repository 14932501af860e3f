"""
Base repository for store-backed persistence.

Repositories map context entities onto keys of a KeyValueStore. Store
failures propagate to the caller; only the notification step is
fire-and-forget.
"""

import logging
from typing import Generic, Optional, TypeVar
from urllib.parse import quote, unquote

from pydantic import BaseModel

from chittycontext.store.base import DAY_SECONDS, KeyValueStore
from chittycontext.tasks import TaskChannel, TaskMessage, TaskType, notify

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Retention policy per key family
CONTEXT_TTL = 30 * DAY_SECONDS
PRINCIPAL_INDEX_TTL = 30 * DAY_SECONDS
TYPE_INDEX_TTL = 30 * DAY_SECONDS
SESSION_INDEX_TTL = 7 * DAY_SECONDS
ACTIVE_MARKER_TTL = 1 * DAY_SECONDS
AUDIT_TTL = 30 * DAY_SECONDS
PATTERN_TTL = 90 * DAY_SECONDS
MESSAGE_TTL = 90 * DAY_SECONDS


def key_part(value: str) -> str:
    """
    Escape a caller-supplied value for use as one key segment.

    ChittyIDs, session ids and conversation ids may contain ``:``; escaping
    keeps one principal's prefix from matching another's keys. Values made
    of letters, digits and ``-_.~`` are unchanged.
    """
    return quote(value, safe="")


def id_from_key(key: str) -> str:
    """Index keys end with ``:{id}``, escaped with key_part()."""
    return unquote(key.rsplit(":", 1)[-1])


class BaseRepository(Generic[M]):
    """Shared helpers for repositories over a KeyValueStore."""

    def __init__(self, store: KeyValueStore, channel: Optional[TaskChannel] = None):
        self.store = store
        self.channel = channel

    async def _write(self, key: str, model: M, ttl_seconds: int) -> None:
        await self.store.put(key, model.model_dump_json(by_alias=True), ttl_seconds)

    async def _read(self, key: str, model_class: type[M]) -> Optional[M]:
        data = await self.store.get(key)
        if data is None:
            return None
        return model_class.model_validate_json(data)

    async def _notify(self, task_type: TaskType, model: BaseModel) -> bool:
        message = TaskMessage(
            type=task_type, payload=model.model_dump(mode="json", by_alias=True)
        )
        return await notify(self.channel, message)
