"""
Audit event repository.
"""

import logging
from typing import List

from chittycontext.db.repositories.base import (
    AUDIT_TTL,
    BaseRepository,
    id_from_key,
    key_part,
)
from chittycontext.models.context import AuditEvent

logger = logging.getLogger(__name__)


def audit_key(context_id: str, audit_id: str) -> str:
    return f"{audit_prefix(context_id)}{key_part(audit_id)}"


def audit_prefix(context_id: str) -> str:
    return f"audit:{key_part(context_id)}:"


class AuditRepository(BaseRepository[AuditEvent]):
    """Append-only audit records keyed by context."""

    async def log(self, event: AuditEvent) -> None:
        """Write the audit record, then enqueue an ``audit.event`` notification."""
        await self._write(audit_key(event.context_id, event.id), event, AUDIT_TTL)
        logger.debug(
            f"Audit {event.event_type} {event.action} {event.resource} "
            f"-> {event.status.value} (context {event.context_id})"
        )
        await self._notify("audit.event", event)

    async def list_for_context(self, context_id: str, limit: int = 50) -> List[AuditEvent]:
        """
        Get audit events recorded against a context, newest first.

        Args:
            context_id: Context the events reference
            limit: Maximum number of events to return

        Returns:
            List of audit events
        """
        events: List[AuditEvent] = []
        for key in await self.store.list_keys(audit_prefix(context_id)):
            event = await self._read(audit_key(context_id, id_from_key(key)), AuditEvent)
            if event is not None:
                events.append(event)
        events.sort(key=lambda event: event.timestamp, reverse=True)
        return events[: max(limit, 0)]
