"""
Pressure State Service

Tracks the Developmental Pressure Index (DPI) over time.

DPI is descriptive, not diagnostic; it is a later gating signal, not an
output. Rows are append-only and the level is derived deterministically
from dpi:

    dpi < 25 → LOW, < 50 → MODERATE, < 75 → HIGH, else CRITICAL
"""
from typing import Optional

import governance_config
from audit_logger import AuditRecord, block_mutation
from domain.bounds import is_bounded_number, printable
from exceptions import BoundsViolation, OwnershipViolation, UserNotFound
from logging_config import get_logger
from models import AuditEventType, PressureLevel, PressureState

logger = get_logger(__name__)

BLOCKED = AuditEventType.PRESSURE_MUTATION_BLOCKED


def _dpi_bounds_violation(dpi) -> BoundsViolation:
    low, high = governance_config.DPI_BOUNDS
    return BoundsViolation(
        f"DPI must be between {low} and {high}.",
        field="dpi", value=printable(dpi), bounds=(low, high),
    )


def derive_level(dpi) -> PressureLevel:
    """
    Pure bucket function.

    Raises:
        BoundsViolation: dpi outside [0, 100] or not a finite number
    """
    if not is_bounded_number(dpi, governance_config.DPI_BOUNDS):
        raise _dpi_bounds_violation(dpi)

    for upper, level in governance_config.PRESSURE_LEVEL_THRESHOLDS:
        if dpi < upper:
            return PressureLevel(level)
    return PressureLevel(governance_config.PRESSURE_LEVEL_CEILING)


class PressureStateService:

    async def record_pressure(
        self,
        uow,
        user_id: str,
        dpi: float,
        reason: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> PressureState:
        if await uow.users.get(user_id) is None:
            raise UserNotFound(user_id)

        if not is_bounded_number(dpi, governance_config.DPI_BOUNDS):
            await block_mutation(
                uow, _dpi_bounds_violation(dpi),
                user_id=user_id, session_id=session_id, event_type=BLOCKED,
            )

        if session_id is not None:
            session = await uow.sessions.get(session_id)
            if session is None or session.user_id != user_id:
                await block_mutation(
                    uow,
                    OwnershipViolation(
                        "Session does not belong to user; cannot record pressure.",
                        user_id=user_id, entity_id=session_id,
                    ),
                    user_id=user_id, session_id=session_id, event_type=BLOCKED,
                )

        level = derive_level(dpi)

        created = await uow.pressure_states.add(PressureState(
            user_id=user_id,
            dpi=float(dpi),
            level=level,
            reason=reason,
            session_id=session_id,
            created_at=uow.clock(),
        ))

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.PRESSURE_RECORDED,
            user_id=user_id,
            session_id=session_id,
            meta={"dpi": float(dpi), "level": level.value, "reason": reason},
        ))
        logger.info("pressure_recorded", user_id=user_id, dpi=float(dpi), level=level.value)
        return created

    async def get_latest_pressure(self, uow, user_id: str) -> Optional[PressureState]:
        return await uow.pressure_states.latest(PressureState.user_id == user_id)


pressure_state_service = PressureStateService()
