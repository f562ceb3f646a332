"""
TRANSITION GUARD SERVICE
========================

One place to block dangerous or invalid actions. Only structural
prerequisites and safety overrides, no "smart" behaviour.

Every function returns a GuardResult and never raises for an expected
policy outcome; callers decide whether to audit and raise.

Author: AA-OS Core Team
Date: 2026-02-13
"""
from dataclasses import dataclass
from typing import Optional

from control_plane import ControlPlane, control_plane as default_control_plane
from domain.system_state import pause_blocks_transition
from logging_config import get_logger
from models import IdentityModelVersion, SystemState

logger = get_logger(__name__)


@dataclass(frozen=True)
class GuardResult:
    ok: bool
    reason: Optional[str] = None


GUARD_OK = GuardResult(ok=True)


def guard_blocked(reason: str) -> GuardResult:
    return GuardResult(ok=False, reason=reason)


class TransitionGuardService:
    """
    Composes the Control Plane, the system state machine's pause rule and
    the structural model prerequisites into yes/no decisions.
    """

    def __init__(self, control_plane: ControlPlane = None):
        self.control_plane = control_plane or default_control_plane

    async def can_enter_insight_delivery(self, uow, user_id: str) -> GuardResult:
        """
        Checks, in order (first failure wins):
        not paused → UserContext exists → active model set → ≥1 identity version
        """
        pause = await self.control_plane.get_effective_pause(uow, user_id)
        if pause.is_paused:
            return guard_blocked("User is paused; cannot enter INSIGHT_DELIVERY.")

        ctx = await uow.user_contexts.get_by_user(user_id)
        if ctx is None:
            return guard_blocked("UserContext missing; cannot enter INSIGHT_DELIVERY.")

        if not ctx.active_model_set_id:
            return guard_blocked("No active ModelSet; cannot enter INSIGHT_DELIVERY.")

        versions = await uow.identity_versions.count(
            IdentityModelVersion.model_set_id == ctx.active_model_set_id
        )
        if versions == 0:
            return guard_blocked(
                "Active ModelSet has no identity versions; cannot enter INSIGHT_DELIVERY."
            )

        return GUARD_OK

    def can_interpret(self, state) -> GuardResult:
        """Interpretation is blocked during ASSESSING"""
        if SystemState(state) == SystemState.ASSESSING:
            return guard_blocked("Interpretation is blocked during ASSESSING.")
        return GUARD_OK

    async def can_transition(self, uow, user_id: str, from_state, to_state) -> GuardResult:
        """
        While paused only entry into PAUSED is allowed.

        from_state is not consulted: pause short-circuits the state table.
        """
        pause = await self.control_plane.get_effective_pause(uow, user_id)
        if pause_blocks_transition(pause.is_paused, to_state):
            logger.info(
                "transition_guard_blocked",
                user_id=user_id,
                from_state=str(from_state),
                to_state=str(to_state),
            )
            return guard_blocked("User is paused; transitions are blocked.")
        return GUARD_OK

    async def has_models(self, uow, user_id: str) -> bool:
        """Active model set with at least one identity version"""
        ctx = await uow.user_contexts.get_by_user(user_id)
        if ctx is None or not ctx.active_model_set_id:
            return False
        versions = await uow.identity_versions.count(
            IdentityModelVersion.model_set_id == ctx.active_model_set_id
        )
        return versions > 0


transition_guard_service = TransitionGuardService()
