"""
Projection framework: read-only, audited, recomputable views.

create_projection_executor() is the composition root:
- projections receive the read-only DbReadContext, never a session
- the guard gets the pause extension (Control Plane, latest-flag-wins)
  and the ownership extension (session / model set must belong to user)
- access audits go through the same unit of work as the reads; the
  writer stays with the executor, projections only get the read context
"""
from contextlib import asynccontextmanager
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from audit_logger import projection_audit_service
from clock import Clock, utc_now
from control_plane import ControlPlane, control_plane as default_control_plane
from infrastructure.uow import UnitOfWork
from projections.contract import ProjectionContext, ProjectionContract
from projections.db_read import create_db_read_context
from projections.definitions import PROJECTION_DEFINITIONS
from projections.executor import ProjectionExecutor
from projections.guard import ProjectionGuardService
from projections.registry import ProjectionRegistry
from projections.types import ProjectionInput, ProjectionName, SourceModelKey, TimeRange


def create_projection_executor(
    session_factory: async_sessionmaker[AsyncSession],
    clock: Clock = utc_now,
    control_plane: ControlPlane = None,
    definitions: Optional[Iterable[ProjectionContract]] = None,
) -> ProjectionExecutor:
    control_plane = control_plane or default_control_plane
    registry = ProjectionRegistry(PROJECTION_DEFINITIONS if definitions is None else definitions)

    async def pause_check(user_id: str):
        async with UnitOfWork(session_factory, clock) as uow:
            return await control_plane.get_effective_pause(uow, user_id)

    async def ownership_check(input: ProjectionInput) -> Optional[str]:
        async with UnitOfWork(session_factory, clock) as uow:
            if input.session_id is not None:
                session = await uow.sessions.get(input.session_id)
                if session is None or session.user_id != input.user_id:
                    return "Session does not belong to user."
            if input.model_set_id is not None:
                model_set = await uow.model_sets.get(input.model_set_id)
                if model_set is None or model_set.user_id != input.user_id:
                    return "ModelSet does not belong to user."
        return None

    @asynccontextmanager
    async def ctx_factory(user_id: str):
        async with UnitOfWork(session_factory, clock) as uow:

            async def emit(access):
                await projection_audit_service.record_projection_access(uow.audit, access)

            yield ProjectionContext(db=create_db_read_context(uow.session), now=clock), emit

    guard = ProjectionGuardService(pause_check=pause_check, ownership_check=ownership_check)
    return ProjectionExecutor(registry, guard, ctx_factory)


__all__ = [
    "ProjectionExecutor",
    "ProjectionInput",
    "ProjectionName",
    "ProjectionRegistry",
    "SourceModelKey",
    "TimeRange",
    "create_projection_executor",
]
