"""
ProjectionExecutor - the ONLY entry point for running projections.

Execution order (fixed):
  1) resolve the projection from the immutable registry
  2) guard checks (structure, pause, ownership)
  3) projection-specific validate(input)
  4) projection.run(ctx, input) with the read-only context
  5) access audit, exactly once, only after 1-4 succeeded

A failure at any step raises and emits no audit.
"""
from contextlib import AbstractAsyncContextManager
from typing import Any, Callable

from audit_logger import ProjectionAccessAudit
from exceptions import ProjectionBlocked
from logging_config import get_logger
from projections.contract import AuditEmitter, ProjectionContext
from projections.guard import ProjectionGuardService
from projections.hashing import fingerprint
from projections.registry import ProjectionRegistry
from projections.types import ProjectionInput, ProjectionName, SourceModelKey

logger = get_logger(__name__)

# user_id -> async context manager yielding (ProjectionContext, AuditEmitter)
ContextFactory = Callable[[str], AbstractAsyncContextManager]


class ProjectionExecutor:
    """
    Holds no mutable state; safe to share between concurrent requests.
    Each execution gets its own context (and unit of work) from ctx_factory.
    """

    def __init__(self, registry: ProjectionRegistry, guard: ProjectionGuardService, ctx_factory: ContextFactory):
        self.registry = registry
        self.guard = guard
        self.ctx_factory = ctx_factory

    async def execute(self, name, input: ProjectionInput) -> Any:
        projection = self.registry.get(name)
        projection_name = ProjectionName(projection.name).value

        result = await self.guard.check(projection, input)
        if not result.ok:
            logger.warning(
                "projection_blocked",
                projection=projection_name,
                code=result.code.value,
                user_id=getattr(input, "user_id", None),
            )
            raise ProjectionBlocked(result.code.value, result.message, projection_name)

        projection.validate(input)

        ctx: ProjectionContext
        emit: AuditEmitter
        async with self.ctx_factory(input.user_id) as (ctx, emit):
            output = await projection.run(ctx, input)

            await emit(ProjectionAccessAudit(
                user_id=input.user_id,
                session_id=input.session_id,
                projection=projection_name,
                inputs_hash=fingerprint(input),
                sources=[SourceModelKey(source).value for source in projection.sources],
                occurred_at=ctx.now(),
            ))

        logger.info("projection_executed", projection=projection_name, user_id=input.user_id)
        return output
