"""
FastAPI dependencies resolving the application's store, channel and repositories.

All of them read from ``request.app.state``, populated by ``create_app``.
"""

from typing import Optional

from fastapi import Request

from chittycontext.config import Settings
from chittycontext.db.repositories import (
    AuditRepository,
    ContextRepository,
    MessageRepository,
    PatternRepository,
)
from chittycontext.store.base import KeyValueStore
from chittycontext.tasks import TaskChannel


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> KeyValueStore:
    return request.app.state.store


def get_channel(request: Request) -> Optional[TaskChannel]:
    return getattr(request.app.state, "channel", None)


def get_context_repository(request: Request) -> ContextRepository:
    return ContextRepository(get_store(request), get_channel(request))


def get_audit_repository(request: Request) -> AuditRepository:
    return AuditRepository(get_store(request), get_channel(request))


def get_message_repository(request: Request) -> MessageRepository:
    return MessageRepository(get_store(request), get_channel(request))


def get_pattern_repository(request: Request) -> PatternRepository:
    return PatternRepository(get_store(request), get_channel(request))


def get_audit_log(request: Request) -> Optional[AuditRepository]:
    """Audit repository for route-level events, or None when auditing is off."""
    if not get_settings(request).enable_audit_log:
        return None
    return get_audit_repository(request)
