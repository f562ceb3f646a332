"""
System State Machine - Чистый доменный слой
==========================================

Transitions are explicit; implicit transitions create hidden pathways to
action. Pause is a hard override that supersedes the table.

The pause rule lives in pause_blocks_transition() and is shared with the
transition guard service, so there is exactly one definition of it.
"""
from dataclasses import dataclass
from typing import Dict, FrozenSet

from exceptions import StateTransitionBlocked
from models import SystemState


ALLOWED_STATE_TRANSITIONS: Dict[SystemState, FrozenSet[SystemState]] = {
    SystemState.UNINITIALIZED: frozenset({SystemState.ASSESSING, SystemState.PAUSED}),
    SystemState.ASSESSING: frozenset({SystemState.MODELED, SystemState.PAUSED}),
    SystemState.MODELED: frozenset({
        SystemState.INSIGHT_DELIVERY,
        SystemState.LONGITUDINAL_TRACKING,
        SystemState.PAUSED,
    }),
    SystemState.INSIGHT_DELIVERY: frozenset({SystemState.LONGITUDINAL_TRACKING, SystemState.PAUSED}),
    SystemState.LONGITUDINAL_TRACKING: frozenset({SystemState.ASSESSING, SystemState.PAUSED}),
    SystemState.PAUSED: frozenset({SystemState.UNINITIALIZED}),
}


class TransitionRule:
    PAUSED = "PAUSED"
    MODELS_REQUIRED = "MODELS_REQUIRED"
    INVALID_TRANSITION = "INVALID_TRANSITION"


@dataclass(frozen=True)
class StateContext:
    """
    has_models: identity models exist under the active model set
    is_paused:  effective pause for the acting user
    """
    has_models: bool
    is_paused: bool


def pause_blocks_transition(is_paused: bool, to_state) -> bool:
    """While paused, the only permitted target is PAUSED itself."""
    return is_paused and SystemState(to_state) != SystemState.PAUSED


def can_transition(from_state, to_state) -> bool:
    """Pure table lookup"""
    try:
        from_state = SystemState(from_state)
        to_state = SystemState(to_state)
    except ValueError:
        return False
    return to_state in ALLOWED_STATE_TRANSITIONS.get(from_state, frozenset())


def assert_transition_allowed(from_state, to_state, ctx: StateContext) -> None:
    """
    Order matters: pause → models prerequisite → table.

    Raises:
        StateTransitionBlocked: with .rule naming the violated check
    """
    from_label = _label(from_state)
    to_label = _label(to_state)

    try:
        target = SystemState(to_state)
    except ValueError:
        raise StateTransitionBlocked(
            f"Invalid transition: {from_label} -> {to_label}",
            TransitionRule.INVALID_TRANSITION, from_label, to_label,
        )

    if pause_blocks_transition(ctx.is_paused, target):
        raise StateTransitionBlocked(
            "System is paused; transitions are blocked.",
            TransitionRule.PAUSED, from_label, to_label,
        )

    if target == SystemState.INSIGHT_DELIVERY and not ctx.has_models:
        raise StateTransitionBlocked(
            "Cannot enter INSIGHT_DELIVERY without identity models.",
            TransitionRule.MODELS_REQUIRED, from_label, to_label,
        )

    if not can_transition(from_state, target):
        raise StateTransitionBlocked(
            f"Invalid transition: {from_label} -> {to_label}",
            TransitionRule.INVALID_TRANSITION, from_label, to_label,
        )


def _label(state) -> str:
    return state.value if isinstance(state, SystemState) else str(state)
