"""
SESSION SERVICE - Session lifecycle + system state transitions
==============================================================

The only writer of Session.phase, Session.state and Session.closed_at.

- Phase moves only along the lifecycle table (domain.session_lifecycle).
- State moves only through assert_transition_allowed (domain.system_state).
- Pause is a hard lock: blocked attempts are audited as ACTION_BLOCKED_PAUSED.
- Only the owning user can mutate a session.
- Closing is idempotent and requires phase CLOSURE.
- Opening never touches UserContext.last_closed_session_id.

Author: AA-OS Core Team
Date: 2026-02-16
"""
from typing import Optional, Tuple

import governance_config
from audit_logger import AuditRecord, block_mutation
from control_plane import ControlPlane, control_plane as default_control_plane
from domain.session_lifecycle import assert_phase_advance_allowed, can_close
from domain.system_state import (
    StateContext,
    assert_transition_allowed,
    pause_blocks_transition,
)
from exceptions import (
    ActionPaused,
    InvalidGovernanceInput,
    OwnershipViolation,
    SessionAlreadyClosed,
    SessionNotFound,
    SessionNotInClosure,
    StateTransitionBlocked,
    UserNotFound,
)
from logging_config import get_logger
from models import AuditEventType, Session, SessionPhase, SessionType, SystemState, User
from transition_guard import TransitionGuardService, transition_guard_service as default_guard
from user_context_service import UserContextService, user_context_service as default_user_context

logger = get_logger(__name__)


class SessionService:

    def __init__(
        self,
        control_plane: ControlPlane = None,
        guard: TransitionGuardService = None,
        user_contexts: UserContextService = None,
    ):
        self.control_plane = control_plane or default_control_plane
        self.guard = guard or default_guard
        self.user_contexts = user_contexts or default_user_context

    # =========================================================================
    # OPEN / BOOTSTRAP
    # =========================================================================

    async def open_session(
        self,
        uow,
        user_id: str,
        type_=None,
        purpose: Optional[str] = None,
    ) -> Session:
        if await uow.users.get(user_id) is None:
            raise UserNotFound(user_id)

        session_type = _coerce(SessionType, type_ or governance_config.DEFAULT_SESSION_TYPE, "type")
        session = await self._create_session(
            uow, user_id, session_type, purpose or governance_config.DEFAULT_SESSION_PURPOSE
        )
        await self.user_contexts.ensure_user_context(uow, user_id)

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.SESSION_OPENED,
            user_id=user_id,
            session_id=session.id,
            meta={"type": session.type.value, "purpose": session.purpose},
        ))
        logger.info("session_opened", user_id=user_id, session_id=session.id)
        return session

    async def bootstrap(self, uow) -> Tuple[User, Session]:
        """Minimal user + OPENING session for end-to-end checks. Not onboarding."""
        user = await uow.users.add(User(created_at=uow.clock()))
        session = await self._create_session(
            uow, user.id, SessionType.ASSESSMENT, governance_config.BOOTSTRAP_SESSION_PURPOSE
        )
        await self.user_contexts.ensure_user_context(uow, user.id)

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.BOOTSTRAP_CREATED,
            user_id=user.id,
            session_id=session.id,
            meta={"note": "Created test user + session"},
        ))
        logger.info("bootstrap_created", user_id=user.id, session_id=session.id)
        return user, session

    async def _create_session(self, uow, user_id: str, session_type: SessionType, purpose: str) -> Session:
        now = uow.clock()
        return await uow.sessions.add(Session(
            user_id=user_id,
            type=session_type,
            phase=SessionPhase.OPENING,
            state=SystemState.UNINITIALIZED,
            purpose=purpose,
            created_at=now,
            updated_at=now,
        ))

    # =========================================================================
    # PHASE
    # =========================================================================

    async def advance_phase(self, uow, user_id: str, session_id: str, to_phase) -> Session:
        """
        not found → ownership → closed → pause → lifecycle table

        Raises:
            SessionNotFound, OwnershipViolation, SessionAlreadyClosed,
            ActionPaused, InvalidPhaseTransition
        """
        session = await self._get_owned_session(uow, user_id, session_id)

        if session.closed_at is not None:
            raise SessionAlreadyClosed(session_id)

        pause = await self.control_plane.get_effective_pause(uow, user_id)
        if pause.is_paused:
            await block_mutation(
                uow,
                ActionPaused(
                    "System is paused; session phase advance blocked.",
                    user_id=user_id, action="SESSION_ADVANCE",
                ),
                user_id=user_id, session_id=session_id,
                event_type=AuditEventType.ACTION_BLOCKED_PAUSED,
                action="SESSION_ADVANCE", attemptedPhase=str(_value(to_phase)),
            )

        assert_phase_advance_allowed(session.phase, to_phase)

        from_phase = session.phase
        target = SessionPhase(to_phase)
        session = await uow.sessions.update(session, phase=target, updated_at=uow.clock())

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.SESSION_PHASE_ADVANCED,
            user_id=user_id,
            session_id=session_id,
            meta={"from": from_phase.value, "to": target.value},
        ))
        logger.info(
            "session_phase_advanced",
            user_id=user_id,
            session_id=session_id,
            from_phase=from_phase.value,
            to_phase=target.value,
        )
        return session

    async def close_session(self, uow, user_id: str, session_id: str) -> Session:
        """Idempotent: an already-closed session is returned unchanged"""
        session = await self._get_owned_session(uow, user_id, session_id)

        if session.closed_at is not None:
            return session

        if not can_close(session):
            raise SessionNotInClosure(session_id, session.phase.value)

        closed_at = uow.clock()
        session = await uow.sessions.update(session, closed_at=closed_at, updated_at=closed_at)

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.SESSION_CLOSED,
            user_id=user_id,
            session_id=session_id,
            meta={"closedAt": closed_at.isoformat()},
        ))
        logger.info("session_closed", user_id=user_id, session_id=session_id)
        return session

    # =========================================================================
    # SYSTEM STATE
    # =========================================================================

    async def transition_state(self, uow, user_id: str, session_id: str, to_state) -> Session:
        """
        from is always the stored Session.state, never caller-supplied.

        Raises:
            ActionPaused: paused and target is not PAUSED
            StateTransitionBlocked: models prerequisite or table violation
        """
        session = await self._get_owned_session(uow, user_id, session_id)
        from_state = session.state

        pause = await self.control_plane.get_effective_pause(uow, user_id)
        if pause_blocks_transition(pause.is_paused, _coerce(SystemState, to_state, "to")):
            await block_mutation(
                uow,
                ActionPaused(
                    "System is paused; transition blocked.",
                    user_id=user_id, action="SYSTEM_TRANSITION",
                ),
                user_id=user_id, session_id=session_id,
                event_type=AuditEventType.ACTION_BLOCKED_PAUSED,
                action="SYSTEM_TRANSITION", attemptedTo=str(_value(to_state)),
            )

        ctx = StateContext(
            has_models=await self.guard.has_models(uow, user_id),
            is_paused=pause.is_paused,
        )

        try:
            assert_transition_allowed(from_state, to_state, ctx)
        except StateTransitionBlocked as exc:
            await block_mutation(
                uow, exc,
                user_id=user_id, session_id=session_id,
                rule=exc.rule, attemptedTo=str(_value(to_state)), **{"from": from_state.value},
            )

        target = SystemState(to_state)
        session = await uow.sessions.update(session, state=target, updated_at=uow.clock())

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.SYSTEM_STATE_TRANSITION,
            user_id=user_id,
            session_id=session_id,
            meta={"from": from_state.value, "to": target.value},
        ))
        logger.info(
            "system_state_transition",
            user_id=user_id,
            session_id=session_id,
            from_state=from_state.value,
            to_state=target.value,
        )
        return session

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _get_owned_session(self, uow, user_id: str, session_id: str) -> Session:
        """Row-locked read + ownership; wrong owner is audited as MUTATION_BLOCKED"""
        session = await uow.sessions.get_for_update(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        if session.user_id != user_id:
            await block_mutation(
                uow,
                OwnershipViolation("Session does not belong to user.", user_id=user_id, entity_id=session_id),
                user_id=user_id, session_id=session_id,
            )
        return session


def _value(member):
    return member.value if hasattr(member, "value") else member


def _coerce(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidGovernanceInput(f"Unknown {enum_cls.__name__}: {value}", field=field, value=str(value))


session_service = SessionService()
