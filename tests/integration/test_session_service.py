"""
SESSION SERVICE + TRANSITION GUARD TESTS
========================================

Phase lifecycle, idempotent closing, system state transitions, and the
pause lock, all against a real (in-memory) database.
"""
import pytest

from control_plane import control_plane
from exceptions import (
    ActionPaused,
    InvalidGovernanceInput,
    InvalidPhaseTransition,
    OwnershipViolation,
    SessionAlreadyClosed,
    SessionNotFound,
    SessionNotInClosure,
    StateTransitionBlocked,
    UserNotFound,
)
from identity_version_service import identity_version_service
from models import AuditEventType, Session, SessionPhase, SessionType, SystemState
from session_service import session_service
from transition_guard import transition_guard_service
from user_context_service import user_context_service

pytestmark = pytest.mark.asyncio(loop_scope="function")


async def _open(new_uow, user_id, **kwargs) -> str:
    async with new_uow() as uow:
        session = await session_service.open_session(uow, user_id, **kwargs)
        return session.id


async def _advance(new_uow, user_id, session_id, *phases):
    for phase in phases:
        async with new_uow() as uow:
            await session_service.advance_phase(uow, user_id, session_id, phase)


async def _transition(new_uow, user_id, session_id, *states):
    session = None
    for state in states:
        async with new_uow() as uow:
            session = await session_service.transition_state(uow, user_id, session_id, state)
    return session


async def _load(new_uow, session_id) -> Session:
    async with new_uow() as uow:
        return await uow.sessions.get(session_id)


async def _give_models(new_uow, user_id):
    """Active model set with one identity version"""
    async with new_uow() as uow:
        model_set = await identity_version_service.create_model_set(uow, user_id)
        await identity_version_service.create_version(uow, user_id, model_set.id, "CIM", {})
    async with new_uow() as uow:
        await user_context_service.activate_model_set(uow, user_id, model_set.id)


# =============================================================================
# OPEN / BOOTSTRAP
# =============================================================================

class TestOpenSession:

    async def test_open_defaults(self, new_uow, user_id, fetch_audit):
        session_id = await _open(new_uow, user_id)

        session = await _load(new_uow, session_id)
        assert session.phase == SessionPhase.OPENING
        assert session.state == SystemState.UNINITIALIZED
        assert session.type == SessionType.ASSESSMENT
        assert session.closed_at is None

        [opened] = await fetch_audit(AuditEventType.SESSION_OPENED)
        assert opened.session_id == session_id
        assert opened.meta == {"type": "ASSESSMENT", "purpose": "New session"}

    async def test_open_ensures_user_context(self, new_uow, user_id, fetch_audit):
        await _open(new_uow, user_id, type_="REFLECTION", purpose="weekly")
        async with new_uow() as uow:
            ctx = await uow.user_contexts.get_by_user(user_id)
        assert ctx is not None
        assert ctx.last_closed_session_id is None
        assert len(await fetch_audit(AuditEventType.USER_CONTEXT_CREATED)) == 1

    async def test_open_does_not_touch_last_closed_session(self, new_uow, user_id):
        first = await _open(new_uow, user_id)
        await _advance(new_uow, user_id, first, "ENGAGEMENT", "SYNTHESIS", "CLOSURE")
        async with new_uow() as uow:
            await session_service.close_session(uow, user_id, first)
        async with new_uow() as uow:
            await user_context_service.set_last_closed_session(uow, user_id, first)

        await _open(new_uow, user_id)

        async with new_uow() as uow:
            ctx = await uow.user_contexts.get_by_user(user_id)
        assert ctx.last_closed_session_id == first

    async def test_unknown_user(self, new_uow):
        with pytest.raises(UserNotFound):
            await _open(new_uow, "nobody")

    async def test_unknown_type(self, new_uow, user_id):
        with pytest.raises(InvalidGovernanceInput):
            await _open(new_uow, user_id, type_="THERAPY")

    async def test_bootstrap(self, new_uow, fetch_audit):
        async with new_uow() as uow:
            user, session = await session_service.bootstrap(uow)

        loaded = await _load(new_uow, session.id)
        assert loaded.user_id == user.id
        assert loaded.purpose == "Bootstrap test session"
        [event] = await fetch_audit(AuditEventType.BOOTSTRAP_CREATED)
        assert event.user_id == user.id
        assert event.session_id == session.id


# =============================================================================
# PHASE
# =============================================================================

class TestAdvancePhase:

    async def test_full_lifecycle(self, new_uow, user_id, fetch_audit):
        session_id = await _open(new_uow, user_id)
        await _advance(new_uow, user_id, session_id, "ENGAGEMENT", "SYNTHESIS", "CLOSURE")

        assert (await _load(new_uow, session_id)).phase == SessionPhase.CLOSURE
        advanced = await fetch_audit(AuditEventType.SESSION_PHASE_ADVANCED)
        assert [(e.meta["from"], e.meta["to"]) for e in advanced] == [
            ("OPENING", "ENGAGEMENT"),
            ("ENGAGEMENT", "SYNTHESIS"),
            ("SYNTHESIS", "CLOSURE"),
        ]

    async def test_skip_rejected(self, new_uow, user_id):
        session_id = await _open(new_uow, user_id)
        with pytest.raises(InvalidPhaseTransition):
            await _advance(new_uow, user_id, session_id, "SYNTHESIS")
        assert (await _load(new_uow, session_id)).phase == SessionPhase.OPENING

    async def test_unknown_phase_rejected(self, new_uow, user_id):
        session_id = await _open(new_uow, user_id)
        with pytest.raises(InvalidPhaseTransition):
            await _advance(new_uow, user_id, session_id, "DONE")

    async def test_missing_session(self, new_uow, user_id):
        with pytest.raises(SessionNotFound):
            await _advance(new_uow, user_id, "missing", "ENGAGEMENT")

    async def test_foreign_session(self, new_uow, user_id, other_user_id, fetch_audit):
        session_id = await _open(new_uow, other_user_id)
        with pytest.raises(OwnershipViolation):
            await _advance(new_uow, user_id, session_id, "ENGAGEMENT")

        [blocked] = await fetch_audit(AuditEventType.MUTATION_BLOCKED)
        assert blocked.user_id == user_id
        assert blocked.meta["reason"] == "Session does not belong to user."

    async def test_closed_session_rejected(self, new_uow, user_id):
        session_id = await _open(new_uow, user_id)
        await _advance(new_uow, user_id, session_id, "ENGAGEMENT", "SYNTHESIS", "CLOSURE")
        async with new_uow() as uow:
            await session_service.close_session(uow, user_id, session_id)

        with pytest.raises(SessionAlreadyClosed):
            await _advance(new_uow, user_id, session_id, "CLOSURE")

    async def test_paused_blocks_and_audits(self, new_uow, user_id, fetch_audit):
        """
        SCENARIO: user paused, then tries to advance

        EXPECTED: ActionPaused, ACTION_BLOCKED_PAUSED committed, phase unchanged
        """
        session_id = await _open(new_uow, user_id)
        async with new_uow() as uow:
            await control_plane.pause_user(uow, user_id)

        with pytest.raises(ActionPaused) as exc_info:
            await _advance(new_uow, user_id, session_id, "ENGAGEMENT")

        assert exc_info.value.message == "System is paused; session phase advance blocked."
        [blocked] = await fetch_audit(AuditEventType.ACTION_BLOCKED_PAUSED)
        assert blocked.session_id == session_id
        assert blocked.meta["action"] == "SESSION_ADVANCE"
        assert blocked.meta["attemptedPhase"] == "ENGAGEMENT"
        assert (await _load(new_uow, session_id)).phase == SessionPhase.OPENING

    async def test_resume_unblocks(self, new_uow, user_id):
        session_id = await _open(new_uow, user_id)
        async with new_uow() as uow:
            await control_plane.pause_system(uow)
        async with new_uow() as uow:
            await control_plane.resume_system(uow)

        await _advance(new_uow, user_id, session_id, "ENGAGEMENT")
        assert (await _load(new_uow, session_id)).phase == SessionPhase.ENGAGEMENT


class TestCloseSession:

    async def test_close_requires_closure_phase(self, new_uow, user_id):
        session_id = await _open(new_uow, user_id)
        await _advance(new_uow, user_id, session_id, "ENGAGEMENT")

        with pytest.raises(SessionNotInClosure) as exc_info:
            async with new_uow() as uow:
                await session_service.close_session(uow, user_id, session_id)
        assert exc_info.value.details["current_phase"] == "ENGAGEMENT"

    async def test_close_is_idempotent(self, new_uow, user_id, fetch_audit):
        session_id = await _open(new_uow, user_id)
        await _advance(new_uow, user_id, session_id, "ENGAGEMENT", "SYNTHESIS", "CLOSURE")

        async with new_uow() as uow:
            first = await session_service.close_session(uow, user_id, session_id)
            closed_at = first.closed_at
        async with new_uow() as uow:
            second = await session_service.close_session(uow, user_id, session_id)

        assert closed_at is not None
        assert second.closed_at is not None
        assert len(await fetch_audit(AuditEventType.SESSION_CLOSED)) == 1

    async def test_close_foreign_session(self, new_uow, user_id, other_user_id):
        session_id = await _open(new_uow, other_user_id)
        with pytest.raises(OwnershipViolation):
            async with new_uow() as uow:
                await session_service.close_session(uow, user_id, session_id)


# =============================================================================
# SYSTEM STATE
# =============================================================================

class TestTransitionState:

    async def test_happy_path(self, new_uow, user_id, fetch_audit):
        session_id = await _open(new_uow, user_id)
        await _give_models(new_uow, user_id)

        session = await _transition(
            new_uow, user_id, session_id,
            "ASSESSING", "MODELED", "INSIGHT_DELIVERY", "LONGITUDINAL_TRACKING",
        )

        assert session.state == SystemState.LONGITUDINAL_TRACKING
        transitions = await fetch_audit(AuditEventType.SYSTEM_STATE_TRANSITION)
        assert [e.meta["to"] for e in transitions] == [
            "ASSESSING", "MODELED", "INSIGHT_DELIVERY", "LONGITUDINAL_TRACKING",
        ]
        assert transitions[0].meta["from"] == "UNINITIALIZED"

    async def test_insight_delivery_without_models(self, new_uow, user_id, fetch_audit):
        session_id = await _open(new_uow, user_id)
        await _transition(new_uow, user_id, session_id, "ASSESSING", "MODELED")

        with pytest.raises(StateTransitionBlocked) as exc_info:
            await _transition(new_uow, user_id, session_id, "INSIGHT_DELIVERY")

        assert exc_info.value.rule == "MODELS_REQUIRED"
        [blocked] = await fetch_audit(AuditEventType.MUTATION_BLOCKED)
        assert blocked.meta["rule"] == "MODELS_REQUIRED"
        assert blocked.meta["from"] == "MODELED"
        assert blocked.meta["attemptedTo"] == "INSIGHT_DELIVERY"
        assert (await _load(new_uow, session_id)).state == SystemState.MODELED

    async def test_table_violation(self, new_uow, user_id):
        session_id = await _open(new_uow, user_id)
        with pytest.raises(StateTransitionBlocked) as exc_info:
            await _transition(new_uow, user_id, session_id, "MODELED")
        assert exc_info.value.rule == "INVALID_TRANSITION"

    async def test_unknown_state(self, new_uow, user_id):
        session_id = await _open(new_uow, user_id)
        with pytest.raises(InvalidGovernanceInput):
            await _transition(new_uow, user_id, session_id, "DREAMING")

    async def test_paused_blocks_and_audits(self, new_uow, user_id, fetch_audit):
        session_id = await _open(new_uow, user_id)
        async with new_uow() as uow:
            await control_plane.pause_system(uow)

        with pytest.raises(ActionPaused):
            await _transition(new_uow, user_id, session_id, "ASSESSING")

        [blocked] = await fetch_audit(AuditEventType.ACTION_BLOCKED_PAUSED)
        assert blocked.meta["action"] == "SYSTEM_TRANSITION"
        assert blocked.meta["attemptedTo"] == "ASSESSING"
        assert (await _load(new_uow, session_id)).state == SystemState.UNINITIALIZED

    async def test_entering_paused_allowed_while_paused(self, new_uow, user_id):
        session_id = await _open(new_uow, user_id)
        async with new_uow() as uow:
            await control_plane.pause_user(uow, user_id)

        session = await _transition(new_uow, user_id, session_id, "PAUSED")
        assert session.state == SystemState.PAUSED

    async def test_paused_state_returns_to_uninitialized(self, new_uow, user_id):
        session_id = await _open(new_uow, user_id)
        await _transition(new_uow, user_id, session_id, "ASSESSING", "PAUSED")
        session = await _transition(new_uow, user_id, session_id, "UNINITIALIZED")
        assert session.state == SystemState.UNINITIALIZED

    async def test_foreign_session(self, new_uow, user_id, other_user_id):
        session_id = await _open(new_uow, other_user_id)
        with pytest.raises(OwnershipViolation):
            await _transition(new_uow, user_id, session_id, "ASSESSING")


# =============================================================================
# TRANSITION GUARD
# =============================================================================

class TestTransitionGuard:

    async def test_insight_delivery_checks_in_order(self, new_uow, user_id, make_model_set):
        async with new_uow() as uow:
            result = await transition_guard_service.can_enter_insight_delivery(uow, user_id)
        assert result.reason == "UserContext missing; cannot enter INSIGHT_DELIVERY."

        async with new_uow() as uow:
            await user_context_service.ensure_user_context(uow, user_id)
        async with new_uow() as uow:
            result = await transition_guard_service.can_enter_insight_delivery(uow, user_id)
        assert result.reason == "No active ModelSet; cannot enter INSIGHT_DELIVERY."

        model_set_id = await make_model_set(user_id)
        async with new_uow() as uow:
            await user_context_service.activate_model_set(uow, user_id, model_set_id)
        async with new_uow() as uow:
            result = await transition_guard_service.can_enter_insight_delivery(uow, user_id)
        assert result.reason == "Active ModelSet has no identity versions; cannot enter INSIGHT_DELIVERY."

        async with new_uow() as uow:
            await identity_version_service.create_version(uow, user_id, model_set_id, "FIM", {})
        async with new_uow() as uow:
            result = await transition_guard_service.can_enter_insight_delivery(uow, user_id)
            assert result.ok
            assert await transition_guard_service.has_models(uow, user_id)

    async def test_insight_delivery_blocked_while_paused(self, new_uow, user_id):
        await _give_models(new_uow, user_id)
        async with new_uow() as uow:
            await control_plane.pause_user(uow, user_id)

        async with new_uow() as uow:
            result = await transition_guard_service.can_enter_insight_delivery(uow, user_id)
        assert not result.ok
        assert result.reason == "User is paused; cannot enter INSIGHT_DELIVERY."

    async def test_can_transition_follows_pause(self, new_uow, user_id):
        async with new_uow() as uow:
            assert (await transition_guard_service.can_transition(uow, user_id, "MODELED", "ASSESSING")).ok

        async with new_uow() as uow:
            await control_plane.pause_user(uow, user_id)

        async with new_uow() as uow:
            blocked = await transition_guard_service.can_transition(uow, user_id, "MODELED", "ASSESSING")
            allowed = await transition_guard_service.can_transition(uow, user_id, "MODELED", "PAUSED")
        assert blocked.reason == "User is paused; transitions are blocked."
        assert allowed.ok

    async def test_can_interpret(self):
        assert not transition_guard_service.can_interpret(SystemState.ASSESSING).ok
        assert transition_guard_service.can_interpret("MODELED").ok
