"""
Audit sink for security events.

Usage:
    from authguard.services.audit import DatabaseAuditSink, record_best_effort
    sink = DatabaseAuditSink(async_session_maker, clock)
    await record_best_effort(sink, AuditEvent(...))
"""
import logging
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authguard.core.clock import Clock, SystemClock
from authguard.core.exceptions import AuditWriteError
from authguard.models.audit_log import AuditLog
from authguard.schemas.audit import AuditEvent

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    async def record(self, event: AuditEvent) -> None: ...


class DatabaseAuditSink:
    """Writes audit events to the audit_logs table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], clock: Clock | None = None):
        self.session_maker = session_maker
        self.clock = clock or SystemClock()

    async def record(self, event: AuditEvent) -> None:
        log = AuditLog(
            user_id=event.user_id,
            action=event.action.value,
            resource_type=event.resource_type.value,
            resource_id=event.resource_id,
            success=event.success,
            severity=event.severity.value,
            ip_address=event.ip_address,
            user_agent=event.user_agent[:512] if event.user_agent else None,
            details=dict(event.metadata) if event.metadata else None,
            timestamp=self.clock.now(),
        )
        try:
            async with self.session_maker() as session:
                session.add(log)
                await session.commit()
        except SQLAlchemyError as e:
            raise AuditWriteError(event.action.value, str(e)) from e


async def record_best_effort(sink: AuditSink, event: AuditEvent) -> bool:
    """
    Record an audit event without letting a sink failure escape.

    Missing audit coverage is reported on the operational log instead.

    Returns:
        True if the sink accepted the event
    """
    try:
        await sink.record(event)
        return True
    except Exception as e:
        # Don't fail the authentication decision if audit logging fails
        logger.error(
            "Failed to write audit event %s for user %s: %s",
            event.action.value,
            event.user_id,
            e,
        )
        return False
