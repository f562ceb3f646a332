"""
ProjectionGuardService

Decides whether a projection may execute. Runs before any
projection-specific logic.

- Pure validation: no side effects, no inference, no transitions.
- Never raises for an expected policy block; returns a tagged result.
- Projection-specific shape checks belong to ProjectionContract.validate.
- Auditing belongs to the executor.

Pause and ownership are extension points, injected by the composition root
so the guard itself holds no storage handle.
"""
import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional

from clock import as_utc
from logging_config import get_logger
from projections.contract import ProjectionContract
from projections.types import ProjectionInput

logger = get_logger(__name__)


class ProjectionGuardErrorCode(str, enum.Enum):
    PAUSED = "PAUSED"
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_INPUT = "INVALID_INPUT"
    UNKNOWN_PROJECTION = "UNKNOWN_PROJECTION"


@dataclass(frozen=True)
class ProjectionGuardResult:
    ok: bool
    code: Optional[ProjectionGuardErrorCode] = None
    message: Optional[str] = None


def guard_ok() -> ProjectionGuardResult:
    return ProjectionGuardResult(ok=True)


def guard_fail(code: ProjectionGuardErrorCode, message: str) -> ProjectionGuardResult:
    return ProjectionGuardResult(ok=False, code=ProjectionGuardErrorCode(code), message=message)


# user_id -> object with .is_paused / .reason (control_plane.PauseState)
PauseCheck = Callable[[str], Awaitable[object]]
# input -> None when every referenced entity is owned, else a structural message
OwnershipCheck = Callable[[ProjectionInput], Awaitable[Optional[str]]]


class ProjectionGuardService:

    def __init__(self, pause_check: PauseCheck = None, ownership_check: OwnershipCheck = None):
        self.pause_check = pause_check
        self.ownership_check = ownership_check

    async def check(self, projection: ProjectionContract, input: ProjectionInput) -> ProjectionGuardResult:
        result = self._check_structure(input)
        if not result.ok:
            return result

        if self.pause_check is not None:
            pause = await self.pause_check(input.user_id)
            if pause.is_paused:
                return guard_fail(ProjectionGuardErrorCode.PAUSED, pause.reason or "System is paused.")

        if self.ownership_check is not None:
            problem = await self.ownership_check(input)
            if problem:
                return guard_fail(ProjectionGuardErrorCode.UNAUTHORIZED, problem)

        return guard_ok()

    @staticmethod
    def _check_structure(input: ProjectionInput) -> ProjectionGuardResult:
        user_id = getattr(input, "user_id", None)
        if not user_id or not isinstance(user_id, str):
            return guard_fail(ProjectionGuardErrorCode.INVALID_INPUT, "Missing or invalid userId.")

        for field_name in ("session_id", "model_set_id"):
            value = getattr(input, field_name, None)
            if value is not None and (not isinstance(value, str) or not value):
                return guard_fail(ProjectionGuardErrorCode.INVALID_INPUT, f"{field_name} must be a non-empty string.")

        time_range = getattr(input, "time_range", None)
        if time_range is not None:
            start = getattr(time_range, "start", None)
            end = getattr(time_range, "end", None)
            if not isinstance(start, datetime) or not isinstance(end, datetime):
                return guard_fail(
                    ProjectionGuardErrorCode.INVALID_INPUT,
                    "timeRange.from and timeRange.to must be datetimes.",
                )
            if as_utc(start) > as_utc(end):
                return guard_fail(
                    ProjectionGuardErrorCode.INVALID_INPUT,
                    "timeRange.from must be <= timeRange.to.",
                )

        return guard_ok()
