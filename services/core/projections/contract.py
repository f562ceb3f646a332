"""
Projection contract: one read-only, deterministic, recomputable view.

- Read-only: uses ctx.db only (read-only by construction).
- Deterministic: output is a pure function of (input, source records).
- No side effects: no writes, no transitions, no interpretation.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, ClassVar, Tuple

from audit_logger import ProjectionAccessAudit
from projections.db_read import DbReadContext
from projections.types import ProjectionInput, ProjectionName, SourceModelKey

__all__ = ["AuditEmitter", "ProjectionAccessAudit", "ProjectionContext", "ProjectionContract"]


@dataclass(frozen=True)
class ProjectionContext:
    """What run() sees: reads and the clock, no write capability"""
    db: DbReadContext
    now: Callable[[], datetime]


# Access-audit writer; held by the executor, never handed to a projection
AuditEmitter = Callable[[ProjectionAccessAudit], Awaitable[None]]


class ProjectionContract(ABC):
    """
    name:    closed-set ProjectionName
    sources: exact source models the projection reads (recorded in the audit)
    """

    name: ClassVar[ProjectionName]
    sources: ClassVar[Tuple[SourceModelKey, ...]]

    @abstractmethod
    def validate(self, input: ProjectionInput) -> None:
        """
        Projection-specific shape rules. Ownership and pause belong to the
        guard, not here. Must raise on invalid input.
        """

    @abstractmethod
    async def run(self, ctx: ProjectionContext, input: ProjectionInput) -> Any:
        """Compute the view using ctx.db only"""
