"""
AUDIT DISPATCHER

RESPONSIBILITIES:
- Consume AuditEvent lists emitted at the end of each computation stage
- Hand every event to a sink (database by default)
- Swallow and log sink failures

RULES:
❌ No business decisions here
❌ Never raise into the caller
✅ One failed event never prevents the next from being written
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Iterable, Protocol

from basket_yield.domain.models import AuditEvent
from basket_yield.infrastructure.db.repositories.audit_repository import AuditEventRepository

logger = logging.getLogger(__name__)


def payload_hash(payload: Any) -> str:
    """Deterministic sha256 of a JSON-serializable payload"""
    serialized = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


class AuditSink(Protocol):
    async def record(self, event: AuditEvent) -> None:
        ...


class DatabaseAuditSink:
    """Writes each event to the audit_event table in its own transaction"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def record(self, event: AuditEvent) -> None:
        async with self.session_factory() as session:
            await AuditEventRepository(session).create(event, payload_hash(event.payload))
            await session.commit()


class AuditDispatcher:
    def __init__(self, sink: AuditSink):
        self.sink = sink

    async def dispatch(self, events: Iterable[AuditEvent]) -> int:
        """Record events in order; returns how many were written"""
        written = 0
        for event in events:
            if await self.record(event):
                written += 1
        return written

    async def record(self, event: AuditEvent) -> bool:
        try:
            await self.sink.record(event)
        except Exception as exc:
            logger.warning("Audit write failed for %s: %s", event.event_type.value, exc)
            return False
        logger.debug("Audit event recorded: %s", event.message)
        return True

