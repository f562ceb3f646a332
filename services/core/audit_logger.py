"""
AUDIT SINK
==========

Append-only writer for AuditEvent rows.

The sink is bound to the caller's session, so a mutation and its success
audit commit (or roll back) together. Rows are never read back here.

Author: AA-OS Core Team
Date: 2026-02-11
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from clock import Clock, utc_now
from logging_config import get_logger, log_governance_block
from models import AuditEvent, AuditEventType

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuditRecord:
    """One structural audit entry (never semantic content)"""
    event_type: AuditEventType
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


class AuditSink:
    """
    Usage:
        async with UnitOfWork(session_factory) as uow:
            await uow.audit.append(AuditRecord(AuditEventType.SESSION_OPENED, user_id=...))
    """

    def __init__(self, session: AsyncSession, clock: Clock = utc_now):
        self._session = session
        self._clock = clock

    async def append(self, record: AuditRecord) -> AuditEvent:
        event = AuditEvent(
            user_id=record.user_id,
            session_id=record.session_id,
            event_type=record.event_type,
            meta=dict(record.meta),
            timestamp=self._clock(),
        )
        self._session.add(event)
        await self._session.flush()

        logger.info(
            "audit_event",
            event_type=record.event_type.value,
            user_id=record.user_id,
            session_id=record.session_id,
            audit_id=event.id,
        )
        return event


@dataclass(frozen=True)
class ProjectionAccessAudit:
    """Access record the projection executor emits exactly once per run"""
    user_id: str
    projection: str
    inputs_hash: str
    sources: Sequence[str]
    occurred_at: datetime
    session_id: Optional[str] = None


class ProjectionAuditService:
    """
    Records projection access as a PROJECTION_ACCESSED event.

    Pure audit write: no inference, no transitions.
    """

    async def record_projection_access(self, sink: AuditSink, access: ProjectionAccessAudit) -> AuditEvent:
        return await sink.append(AuditRecord(
            event_type=AuditEventType.PROJECTION_ACCESSED,
            user_id=access.user_id,
            session_id=access.session_id,
            meta={
                "projection": access.projection,
                "inputsHash": access.inputs_hash,
                "sources": list(access.sources),
                "occurredAt": access.occurred_at.isoformat(),
            },
        ))


projection_audit_service = ProjectionAuditService()


async def block_mutation(
    uow,
    exc: Exception,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    event_type: AuditEventType = AuditEventType.MUTATION_BLOCKED,
    **meta: Any,
) -> None:
    """
    Audit a policy block, commit the audit row, then raise exc.

    The commit keeps the block record when the caller's UnitOfWork rolls
    back on the way out.
    """
    reason = getattr(exc, "message", str(exc))
    await uow.audit.append(AuditRecord(
        event_type=event_type,
        user_id=user_id,
        session_id=session_id,
        meta={"reason": reason, **meta},
    ))
    await uow.commit()

    log_governance_block(event_type.value, user_id, reason, session_id=session_id, meta=meta)
    raise exc
