"""
Per-route guards over the request's runtime context.

Each guard is a FastAPI dependency. A guard that rejects a request raises
ContextAccessError, which the application renders as
``{"error", "message", "code", "retryAfter"}`` with the guard's status code.

Example:
    >>> @router.post("/contexts/{context_id}/promote")
    >>> async def promote(
    ...     context_id: str,
    ...     ctx: Context = Depends(require_chitty_group(["A", "S"])),
    ... ):
    ...     ...
"""

import logging
from typing import Callable, Iterable, Optional

from fastapi import Depends, Header, Query, Request, Response

from chittycontext.api.middleware import identity_required
from chittycontext.chittyid import GROUPS, is_system_chitty_id, parse_chitty_id
from chittycontext.exceptions import ContextAccessError
from chittycontext.lifecycle import as_conversation, new_id
from chittycontext.models.context import Context, ConversationContext
from chittycontext.store.base import KeyValueStore

logger = logging.getLogger(__name__)

CONVERSATION_HEADER = "X-Conversation-ID"


def rate_limit_key(chitty_id: str) -> str:
    return f"ratelimit:{chitty_id}"


def get_chitty_context(request: Request) -> Context:
    """
    FastAPI dependency returning the context attached by the middleware.

    Raises:
        ContextAccessError(401): If no context is attached to the request
    """
    ctx = getattr(request.state, "chitty_context", None)
    if ctx is None:
        raise identity_required()
    return ctx


def require_chitty_group(allowed_groups: Iterable[str]) -> Callable[..., Context]:
    """
    Build a dependency admitting only principals of the given groups.

    Groups may be given as letters (``"A"``) or names (``"admin"``).
    """
    allowed = frozenset(allowed_groups)
    allowed_display = ", ".join(sorted(allowed))

    def dependency(ctx: Context = Depends(get_chitty_context)) -> Context:
        parsed = parse_chitty_id(ctx.chitty_id)
        group = parsed.group if parsed is not None else None
        if group is None or (group not in allowed and GROUPS.get(group) not in allowed):
            logger.info(f"Group {group} of {ctx.chitty_id} not in [{allowed_display}]")
            raise ContextAccessError(
                status_code=403,
                error="Unauthorized group",
                code="UNAUTHORIZED_GROUP",
                message=f"Requires ChittyID group: {allowed_display}",
            )
        return ctx

    return dependency


def require_authenticated() -> Callable[..., Context]:
    """Build a dependency rejecting the system identity."""

    def dependency(ctx: Context = Depends(get_chitty_context)) -> Context:
        if is_system_chitty_id(ctx.chitty_id):
            raise ContextAccessError(
                status_code=401,
                error="Authentication required",
                code="AUTH_REQUIRED",
                message="This route is not available to the system identity",
            )
        return ctx

    return dependency


async def check_rate_limit(
    request: Request, max_requests: int, window_seconds: int
) -> Optional[int]:
    """
    Count this request against the caller's fixed window.

    Requests without an attached context, or on an application without a
    store, are not counted.

    Returns:
        The post-increment count, or None if the request was not counted

    Raises:
        ContextAccessError(429): Once the count exceeds ``max_requests``
    """
    ctx: Optional[Context] = getattr(request.state, "chitty_context", None)
    store: Optional[KeyValueStore] = getattr(request.app.state, "store", None)
    if ctx is None or store is None:
        return None

    count = await store.increment(rate_limit_key(ctx.chitty_id), window_seconds)
    if count > max_requests:
        logger.info(
            f"Rate limit exceeded for {ctx.chitty_id}: {count}/{max_requests} "
            f"in {window_seconds}s"
        )
        raise ContextAccessError(
            status_code=429,
            error="Rate limit exceeded",
            code="RATE_LIMIT_EXCEEDED",
            message=f"Maximum {max_requests} requests per {window_seconds} seconds",
            retry_after=window_seconds,
        )
    return count


def rate_limit_by_chitty_id(
    max_requests: int, window_seconds: int
) -> Callable[..., object]:
    """Build a dependency enforcing a fixed per-ChittyID request window."""

    async def dependency(request: Request) -> None:
        await check_rate_limit(request, max_requests, window_seconds)

    return dependency


async def configured_rate_limit(request: Request) -> None:
    """Rate limit using the window configured on the application settings."""
    settings = request.app.state.settings
    await check_rate_limit(
        request, settings.rate_limit_max_requests, settings.rate_limit_window_seconds
    )


def with_conversation() -> Callable[..., ConversationContext]:
    """
    Build a dependency lifting the request context into a conversation.

    The conversation id comes from the ``conversationId`` query parameter,
    then the ``X-Conversation-ID`` header, else a fresh id. The id is echoed
    back in the ``X-Conversation-ID`` response header.
    """

    def dependency(
        request: Request,
        response: Response,
        conversation_id: Optional[str] = Query(None, alias="conversationId"),
        header_conversation_id: Optional[str] = Header(None, alias=CONVERSATION_HEADER),
    ) -> ConversationContext:
        ctx = get_chitty_context(request)
        resolved = conversation_id or header_conversation_id or new_id()
        conversation = as_conversation(ctx, resolved)
        request.state.chitty_context = conversation
        response.headers[CONVERSATION_HEADER] = resolved
        return conversation

    return dependency
