"""
Task/notification channel.

After a context is saved or an audit event is logged, the persistence layer
can place a tagged message on a channel for downstream consumers. Delivery is
fire-and-forget: ``notify`` never lets a channel failure reach the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional, Protocol, runtime_checkable

from pydantic import BaseModel

logger = logging.getLogger(__name__)

TaskType = Literal["context.save", "audit.event"]


class TaskMessage(BaseModel):
    """Envelope placed on the channel: ``{"type": ..., "payload": ...}``."""

    type: TaskType
    payload: dict[str, Any]


@runtime_checkable
class TaskChannel(Protocol):
    async def send(self, message: TaskMessage) -> None: ...


@dataclass
class ChannelStats:
    """Counters for an in-memory channel."""

    sent: int = 0
    drained: int = 0

    @property
    def pending(self) -> int:
        return self.sent - self.drained


class InMemoryTaskChannel:
    """
    asyncio.Queue-backed channel.

    Useful for tests and for in-process consumers that drain messages in
    batches.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue[TaskMessage] = asyncio.Queue(maxsize=maxsize)
        self.stats = ChannelStats()

    async def send(self, message: TaskMessage) -> None:
        self._queue.put_nowait(message)
        self.stats.sent += 1

    def drain(self, limit: Optional[int] = None) -> list[TaskMessage]:
        """
        Remove and return queued messages in send order.

        Args:
            limit: Maximum number of messages to return (all if None)

        Returns:
            List of drained messages
        """
        messages: list[TaskMessage] = []
        while not self._queue.empty() and (limit is None or len(messages) < limit):
            messages.append(self._queue.get_nowait())
        self.stats.drained += len(messages)
        return messages


async def notify(channel: Optional[TaskChannel], message: TaskMessage) -> bool:
    """
    Send ``message`` if a channel is configured.

    Failures are logged and swallowed.

    Returns:
        True if the message was handed to the channel
    """
    if channel is None:
        return False
    try:
        await channel.send(message)
    except Exception as e:
        logger.warning(f"Failed to enqueue {message.type} notification: {e}")
        return False
    logger.debug(f"Enqueued {message.type} notification")
    return True
