"""
Context repository.
"""

import logging
from typing import List, Optional

from chittycontext.db.repositories.base import (
    ACTIVE_MARKER_TTL,
    CONTEXT_TTL,
    PRINCIPAL_INDEX_TTL,
    SESSION_INDEX_TTL,
    TYPE_INDEX_TTL,
    BaseRepository,
    id_from_key,
    key_part,
)
from chittycontext.models.context import (
    Context,
    ContextStatus,
    ContextType,
    ConversationContext,
    context_from_json,
)

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50


def context_key(context_id: str) -> str:
    return f"context:{context_id}"


def principal_index_prefix(chitty_id: str) -> str:
    return f"context-by-principal:{key_part(chitty_id)}:"


def type_index_prefix(context_type: ContextType | str) -> str:
    return f"context-by-type:{ContextType(context_type).value}:"


def session_index_prefix(session_id: str) -> str:
    return f"context-by-session:{key_part(session_id)}:"


def active_marker_prefix(chitty_id: str) -> str:
    return f"active-context:{key_part(chitty_id)}:"


def conversation_key(chitty_id: str, conversation_id: str) -> str:
    return f"conversation-context:{key_part(chitty_id)}:{key_part(conversation_id)}"


class ContextRepository(BaseRepository[Context]):
    """Repository for Context records and their secondary indexes.

    The primary ``context:{id}`` record is authoritative. Index entries can
    outlive it (different TTLs), so every index lookup resolves through
    ``load`` and skips ids that no longer resolve.
    """

    async def save(self, ctx: Context) -> None:
        """
        Write the primary record and all index entries.

        Writes are sequential; if one fails the error propagates and the
        primary record, written first, stays authoritative. The active marker
        exists only while the context is active and is removed otherwise.
        Conversation contexts are also reachable by principal and
        conversation id.

        Args:
            ctx: Context to persist
        """
        await self._write(context_key(ctx.id), ctx, CONTEXT_TTL)
        entry = key_part(ctx.id)
        await self.store.put(
            principal_index_prefix(ctx.chitty_id) + entry, ctx.id, PRINCIPAL_INDEX_TTL
        )
        await self.store.put(type_index_prefix(ctx.type) + entry, ctx.id, TYPE_INDEX_TTL)
        await self.store.put(
            session_index_prefix(ctx.session_id) + entry, ctx.id, SESSION_INDEX_TTL
        )
        if isinstance(ctx, ConversationContext):
            await self.store.put(
                conversation_key(ctx.chitty_id, ctx.conversation_id), ctx.id, CONTEXT_TTL
            )

        marker = active_marker_prefix(ctx.chitty_id) + entry
        if ctx.status == ContextStatus.ACTIVE:
            await self.store.put(marker, ctx.id, ACTIVE_MARKER_TTL)
        else:
            await self.store.delete(marker)

        logger.debug(f"Saved context {ctx.id} ({ctx.type.value}, {ctx.status.value})")
        await self._notify("context.save", ctx)

    async def load(self, context_id: str) -> Optional[Context]:
        """
        Get a context by id from its primary record.

        Returns:
            The stored Context (as its subtype), or None
        """
        data = await self.store.get(context_key(context_id))
        if data is None:
            return None
        return context_from_json(data)

    async def _resolve(self, prefix: str) -> List[Context]:
        contexts: List[Context] = []
        for key in await self.store.list_keys(prefix):
            ctx = await self.load(id_from_key(key))
            if ctx is None:
                logger.debug(f"Skipping stale index entry {key}")
                continue
            contexts.append(ctx)
        return contexts

    async def list(
        self,
        chitty_id: str,
        context_type: Optional[ContextType | str] = None,
        status: Optional[ContextStatus | str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> List[Context]:
        """
        List a principal's contexts, most recent first.

        Args:
            chitty_id: Owning principal
            context_type: Restrict to one type (scans the type index)
            status: Restrict to one status
            limit: Maximum number of contexts to return

        Returns:
            Contexts sorted by created_at descending
        """
        if context_type is not None:
            prefix = type_index_prefix(context_type)
        else:
            prefix = principal_index_prefix(chitty_id)
        wanted_status = ContextStatus(status) if status is not None else None

        contexts = [
            ctx
            for ctx in await self._resolve(prefix)
            if ctx.chitty_id == chitty_id
            and (wanted_status is None or ctx.status == wanted_status)
        ]
        contexts.sort(key=lambda ctx: ctx.created_at, reverse=True)
        return contexts[: max(limit, 0)]

    async def list_by_session(
        self, session_id: str, limit: int = DEFAULT_LIST_LIMIT
    ) -> List[Context]:
        """List contexts correlated to one session, most recent first."""
        contexts = await self._resolve(session_index_prefix(session_id))
        contexts.sort(key=lambda ctx: ctx.created_at, reverse=True)
        return contexts[: max(limit, 0)]

    async def get_active(
        self, chitty_id: str, context_type: ContextType | str
    ) -> Optional[Context]:
        """
        Get the principal's active context of a given type.

        The loaded record's owner and status are re-checked, so a marker
        that outlived its context's active phase is ignored.

        Returns:
            First active context of that type, or None
        """
        wanted_type = ContextType(context_type)
        for key in await self.store.list_keys(active_marker_prefix(chitty_id)):
            ctx = await self.load(id_from_key(key))
            if (
                ctx is not None
                and ctx.chitty_id == chitty_id
                and ctx.type == wanted_type
                and ctx.status == ContextStatus.ACTIVE
            ):
                return ctx
        return None

    async def get_conversation(
        self, chitty_id: str, conversation_id: str
    ) -> Optional[ConversationContext]:
        """
        Get the principal's context for a conversation.

        Returns:
            The ConversationContext last saved for ``conversation_id`` by
            ``chitty_id``, or None
        """
        context_id = await self.store.get(conversation_key(chitty_id, conversation_id))
        if context_id is None:
            return None
        ctx = await self.load(context_id)
        if (
            isinstance(ctx, ConversationContext)
            and ctx.chitty_id == chitty_id
            and ctx.conversation_id == conversation_id
        ):
            return ctx
        return None
