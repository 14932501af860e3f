"""
Repository layer for context persistence.

Provides a clean API over the key-value store for contexts, audit events,
DNA pattern links and conversation messages.
"""

from chittycontext.db.repositories.audit import AuditRepository
from chittycontext.db.repositories.base import BaseRepository
from chittycontext.db.repositories.context import ContextRepository
from chittycontext.db.repositories.message import MessageRepository
from chittycontext.db.repositories.pattern import PatternRepository

__all__ = [
    "AuditRepository",
    "BaseRepository",
    "ContextRepository",
    "MessageRepository",
    "PatternRepository",
]
