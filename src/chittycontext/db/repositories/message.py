"""
Conversation message repository.
"""

import json
import logging
from typing import Any, List, Optional, Sequence

from chittycontext.db.repositories.base import MESSAGE_TTL, BaseRepository, key_part
from chittycontext.lifecycle import new_id, utc_now
from chittycontext.models.context import (
    ConversationContext,
    ConversationMessage,
    MessageRole,
    ToolCall,
)

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE_LIMIT = 50


def message_key(conversation_id: str, message_id: str) -> str:
    return f"message:{key_part(conversation_id)}:{key_part(message_id)}"


def message_index_key(conversation_id: str) -> str:
    return f"message:{key_part(conversation_id)}:index"


class MessageRepository(BaseRepository[ConversationMessage]):
    """Messages owned by a conversation, kept in insertion order.

    Each message is its own key; ``message:{conversationId}:index`` holds the
    ordered list of message ids.
    """

    async def _read_index(self, conversation_id: str) -> List[str]:
        data = await self.store.get(message_index_key(conversation_id))
        return json.loads(data) if data else []

    async def store_message(
        self,
        ctx: ConversationContext,
        role: MessageRole | str,
        content: str,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        token_count: Optional[int] = None,
        tool_calls: Optional[Sequence[ToolCall | dict[str, Any]]] = None,
    ) -> ConversationMessage:
        """
        Stamp and store a message, then append it to the conversation index.

        The index update is a read-modify-write of one key; concurrent writers
        to the same conversation can lose index entries.

        Args:
            ctx: Conversation the message belongs to
            role: Author role
            content: Message text
            provider: LLM provider, if any
            model: Model name, if any
            token_count: Tokens consumed by the message
            tool_calls: Tool invocation trace

        Returns:
            The stored message with id, owner and timestamp set
        """
        message = ConversationMessage(
            id=new_id(),
            context_id=ctx.id,
            chitty_id=ctx.chitty_id,
            conversation_id=ctx.conversation_id,
            timestamp=utc_now(),
            role=MessageRole(role),
            content=content,
            provider=provider,
            model=model,
            token_count=token_count,
            tool_calls=tuple(tool_calls) if tool_calls is not None else None,
        )
        await self._write(
            message_key(ctx.conversation_id, message.id), message, MESSAGE_TTL
        )

        ids = await self._read_index(ctx.conversation_id)
        ids.append(message.id)
        await self.store.put(
            message_index_key(ctx.conversation_id), json.dumps(ids), MESSAGE_TTL
        )

        logger.debug(
            f"Stored {message.role.value} message {message.id} "
            f"in conversation {ctx.conversation_id}"
        )
        return message

    async def get_messages(
        self,
        conversation_id: str,
        limit: int = DEFAULT_MESSAGE_LIMIT,
        chitty_id: Optional[str] = None,
    ) -> List[ConversationMessage]:
        """
        Get the most recent ``limit`` messages in chronological order.

        Messages whose records have expired are skipped. With ``chitty_id``
        only that principal's messages are returned, and ``limit`` counts
        only those.
        """
        if limit <= 0:
            return []
        messages: List[ConversationMessage] = []
        for message_id in reversed(await self._read_index(conversation_id)):
            message = await self._read(
                message_key(conversation_id, message_id), ConversationMessage
            )
            if message is None:
                continue
            if chitty_id is not None and message.chitty_id != chitty_id:
                continue
            messages.append(message)
            if len(messages) == limit:
                break
        messages.reverse()
        return messages
