"""
Session Lifecycle Rules - Чистый доменный слой
=============================================

OPENING → ENGAGEMENT → SYNTHESIS → CLOSURE

Explicit table, not "next enum member": adding a phase means adding its
row here first. No route or service writes Session.phase without passing
through assert_phase_advance_allowed.
"""
from typing import Dict, FrozenSet

from exceptions import InvalidPhaseTransition
from models import SessionPhase


ALLOWED_PHASE_TRANSITIONS: Dict[SessionPhase, FrozenSet[SessionPhase]] = {
    SessionPhase.OPENING: frozenset({SessionPhase.ENGAGEMENT}),
    SessionPhase.ENGAGEMENT: frozenset({SessionPhase.SYNTHESIS}),
    SessionPhase.SYNTHESIS: frozenset({SessionPhase.CLOSURE}),
    SessionPhase.CLOSURE: frozenset(),
}


def can_advance_phase(from_phase, to_phase) -> bool:
    try:
        from_phase = SessionPhase(from_phase)
        to_phase = SessionPhase(to_phase)
    except ValueError:
        return False
    return to_phase in ALLOWED_PHASE_TRANSITIONS.get(from_phase, frozenset())


def assert_phase_advance_allowed(from_phase, to_phase) -> None:
    """
    Raises:
        InvalidPhaseTransition: pair not in the table
    """
    if not can_advance_phase(from_phase, to_phase):
        raise InvalidPhaseTransition(_label(from_phase), _label(to_phase))


def is_session_closed(session) -> bool:
    """CLOSED = phase CLOSURE and closed_at recorded"""
    return session.phase == SessionPhase.CLOSURE and session.closed_at is not None


def can_close(session) -> bool:
    return session.phase == SessionPhase.CLOSURE


def _label(phase) -> str:
    return phase.value if isinstance(phase, SessionPhase) else str(phase)
