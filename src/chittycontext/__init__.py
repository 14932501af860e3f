"""ChittyContext - runtime context tracking for ChittyID principals."""

from chittycontext.lifecycle import (
    complete_context,
    create_child_context,
    create_context,
    create_from_request,
    demote_context,
    promote_context,
    record_outcome,
)
from chittycontext.models.context import Context, ContextGrade, ContextStatus, ContextType
from chittycontext.routing import get_context_routing

__version__ = "0.1.0"

__all__ = [
    "Context",
    "ContextGrade",
    "ContextStatus",
    "ContextType",
    "complete_context",
    "create_child_context",
    "create_context",
    "create_from_request",
    "demote_context",
    "get_context_routing",
    "promote_context",
    "record_outcome",
]
