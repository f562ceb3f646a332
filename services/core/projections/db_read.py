"""
Read-only database surface for projections.

Structural guarantee: projections receive only a DbReadContext. It holds
closures over the AsyncSession, never the session itself, and exposes only
find_unique / find_first / find_many / count / aggregate. A write method
that is not exposed cannot be called.

Returned rows are detached from the session, so changing an attribute on
them can never be flushed back.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import (
    AuditEvent,
    ConfidenceState,
    ControlFlag,
    IdentityModelVersion,
    ModelSet,
    PressureState,
    Session,
    User,
    UserContext,
)
from projections.types import SourceModelKey


@dataclass(frozen=True)
class ReadMethods:
    find_unique: Callable[[Any], Awaitable[Optional[Any]]]
    find_first: Callable[..., Awaitable[Optional[Any]]]
    find_many: Callable[..., Awaitable[List[Any]]]
    count: Callable[..., Awaitable[int]]
    aggregate: Callable[..., Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class DbReadContext:
    user: ReadMethods
    session: ReadMethods
    user_context: ReadMethods
    model_set: ReadMethods
    identity_model_version: ReadMethods
    confidence_state: ReadMethods
    pressure_state: ReadMethods
    control_flag: ReadMethods
    audit_event: ReadMethods

    def for_source(self, key: SourceModelKey) -> ReadMethods:
        return getattr(self, _SOURCE_FIELDS[SourceModelKey(key)])


_SOURCE_MODELS = {
    SourceModelKey.USER: ("user", User),
    SourceModelKey.SESSION: ("session", Session),
    SourceModelKey.USER_CONTEXT: ("user_context", UserContext),
    SourceModelKey.MODEL_SET: ("model_set", ModelSet),
    SourceModelKey.IDENTITY_MODEL_VERSION: ("identity_model_version", IdentityModelVersion),
    SourceModelKey.CONFIDENCE_STATE: ("confidence_state", ConfidenceState),
    SourceModelKey.PRESSURE_STATE: ("pressure_state", PressureState),
    SourceModelKey.CONTROL_FLAG: ("control_flag", ControlFlag),
    SourceModelKey.AUDIT_EVENT: ("audit_event", AuditEvent),
}

_SOURCE_FIELDS = {key: field_name for key, (field_name, _) in _SOURCE_MODELS.items()}


def _pick_read_methods(session: AsyncSession, model) -> ReadMethods:

    def _detach(rows):
        for row in rows:
            session.expunge(row)
        return rows

    async def find_unique(entity_id):
        row = await session.get(model, entity_id)
        if row is not None:
            _detach([row])
        return row

    async def find_first(*criteria, order_by: Sequence = ()):
        stmt = select(model).where(*criteria).order_by(*order_by).limit(1)
        row = (await session.execute(stmt)).scalars().first()
        if row is not None:
            _detach([row])
        return row

    async def find_many(*criteria, order_by: Sequence = (), limit: Optional[int] = None):
        stmt = select(model).where(*criteria).order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        return _detach(list((await session.execute(stmt)).scalars().all()))

    async def count(*criteria) -> int:
        stmt = select(func.count()).select_from(model).where(*criteria)
        return int((await session.execute(stmt)).scalar_one())

    async def aggregate(where: Sequence = (), **aggregates) -> Dict[str, Any]:
        """
        Usage:
            await db.pressure_state.aggregate(
                where=[PressureState.user_id == user_id],
                max_dpi=func.max(PressureState.dpi),
            )
        """
        if not aggregates:
            raise ValueError("aggregate() needs at least one labelled expression")
        stmt = (
            select(*(expr.label(label) for label, expr in aggregates.items()))
            .select_from(model)
            .where(*where)
        )
        return dict((await session.execute(stmt)).mappings().one())

    return ReadMethods(find_unique, find_first, find_many, count, aggregate)


def create_db_read_context(session: AsyncSession) -> DbReadContext:
    return DbReadContext(**{
        field_name: _pick_read_methods(session, model)
        for field_name, model in _SOURCE_MODELS.values()
    })
