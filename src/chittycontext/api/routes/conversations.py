"""
Conversation API routes.

Messages are stored under the conversation resolved from ``conversationId``
/ ``X-Conversation-ID`` (or a fresh id, echoed in the response header).
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Request, status

from chittycontext.api.dependencies import get_context_repository, get_message_repository
from chittycontext.api.guards import configured_rate_limit, get_chitty_context, with_conversation
from chittycontext.api.schemas import MessageCreate
from chittycontext.db.repositories import ContextRepository, MessageRepository
from chittycontext.lifecycle import track_message
from chittycontext.models.context import Context, ConversationContext, ConversationMessage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.post(
    "/messages",
    response_model=ConversationMessage,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(configured_rate_limit)],
    summary="Store a conversation message",
)
async def store_message(
    body: MessageCreate,
    request: Request,
    conversation: ConversationContext = Depends(with_conversation()),
    messages: MessageRepository = Depends(get_message_repository),
    contexts: ContextRepository = Depends(get_context_repository),
) -> ConversationMessage:
    """
    Store a message and account for it on the caller's conversation context.

    The first message of a conversation persists the request's context as
    the conversation context; later messages accumulate on that record.
    """
    stored = await contexts.get_conversation(
        conversation.chitty_id, conversation.conversation_id
    )
    if stored is not None:
        conversation = stored

    message = await messages.store_message(
        conversation,
        body.role,
        body.content,
        provider=body.provider,
        model=body.model,
        token_count=body.token_count,
        tool_calls=body.tool_calls,
    )
    tracked = track_message(conversation, message)
    request.state.chitty_context = tracked
    await contexts.save(tracked)
    return message


@router.get(
    "/{conversation_id}/messages",
    response_model=List[ConversationMessage],
    summary="List conversation messages",
)
async def list_messages(
    conversation_id: str,
    limit: int = Query(50, ge=1, le=500),
    caller: Context = Depends(get_chitty_context),
    messages: MessageRepository = Depends(get_message_repository),
) -> List[ConversationMessage]:
    """
    Get the most recent messages of a conversation, oldest first.

    Only messages stored by the caller are returned.
    """
    return await messages.get_messages(
        conversation_id, limit=limit, chitty_id=caller.chitty_id
    )
