"""
USER CONTEXT SERVICE
====================

Minimal, resettable continuity per user. The context stores references
only (ids), never content or derived traits.

Guard order for every mutation except reset:
    effective pause → ownership → structural invariant

A failed guard writes MUTATION_BLOCKED (reason + attempted id), commits
that row and raises. A successful mutation and its audit share the
caller's unit of work.

reset_user_context() is exempt from the pause guard: a user must always
be able to reset, even while paused.

Author: AA-OS Core Team
Date: 2026-02-14
"""
from typing import Optional

from sqlalchemy.exc import IntegrityError

from audit_logger import AuditRecord, block_mutation
from control_plane import ControlPlane, control_plane as default_control_plane
from domain.session_lifecycle import is_session_closed
from exceptions import (
    InvariantViolation,
    ModelSetNotFound,
    OwnershipViolation,
    PauseActive,
    SessionNotFound,
    UserNotFound,
)
from logging_config import get_logger
from models import AuditEventType, UserContext

logger = get_logger(__name__)


class UserContextService:

    def __init__(self, control_plane: ControlPlane = None):
        self.control_plane = control_plane or default_control_plane

    async def ensure_user_context(self, uow, user_id: str) -> UserContext:
        """
        Idempotent get-or-create.

        Returns the existing row untouched; otherwise creates it with
        context_version=1 and audits USER_CONTEXT_CREATED. A concurrent
        insert for the same user loses on the unique constraint and
        re-reads the winner's row.

        Raises:
            UserNotFound: no context yet and the user does not exist
        """
        existing = await uow.user_contexts.get_by_user(user_id)
        if existing is not None:
            return existing

        if await uow.users.get(user_id) is None:
            raise UserNotFound(user_id)

        try:
            async with uow.session.begin_nested():
                created = await uow.user_contexts.add(
                    UserContext(user_id=user_id, context_version=1, created_at=uow.clock())
                )
        except IntegrityError:
            existing = await uow.user_contexts.get_by_user(user_id)
            if existing is None:
                raise
            return existing

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.USER_CONTEXT_CREATED,
            user_id=user_id,
            meta={"contextVersion": created.context_version},
        ))
        logger.info("user_context_created", user_id=user_id)
        return created

    async def set_last_closed_session(self, uow, user_id: str, session_id: str) -> UserContext:
        """
        Point the context at a CLOSED session owned by the user.

        The session row is locked for the rest of the transaction so it
        cannot be reopened between the check and the commit.
        """
        await self._check_pause(uow, user_id, "cannot set lastClosedSessionId", session_id=session_id)

        session = await uow.sessions.get_for_update(session_id)
        if session is None:
            await block_mutation(
                uow, SessionNotFound(session_id, "Session not found; cannot set lastClosedSessionId."),
                user_id=user_id, session_id=session_id,
            )

        if session.user_id != user_id:
            await block_mutation(
                uow,
                OwnershipViolation(
                    "Session does not belong to user; cannot set lastClosedSessionId.",
                    user_id=user_id, entity_id=session_id,
                ),
                user_id=user_id, session_id=session_id,
            )

        if not is_session_closed(session):
            await block_mutation(
                uow,
                InvariantViolation(
                    "Session is not CLOSED; cannot set lastClosedSessionId.",
                    invariant="last_closed_session_is_closed",
                    session_id=session_id,
                ),
                user_id=user_id, session_id=session_id,
            )

        ctx = await self.ensure_user_context(uow, user_id)
        ctx = await uow.user_contexts.update(ctx, last_closed_session_id=session_id, updated_at=uow.clock())

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.USER_CONTEXT_LAST_SESSION_SET,
            user_id=user_id,
            session_id=session_id,
            meta={"contextVersion": ctx.context_version},
        ))
        logger.info("user_context_last_session_set", user_id=user_id, session_id=session_id)
        return ctx

    async def activate_model_set(self, uow, user_id: str, model_set_id: str) -> UserContext:
        await self._check_pause(uow, user_id, "cannot activate ModelSet", modelSetId=model_set_id)

        model_set = await uow.model_sets.get(model_set_id)
        if model_set is None:
            await block_mutation(
                uow, ModelSetNotFound(model_set_id, "ModelSet not found; cannot activate ModelSet."),
                user_id=user_id, modelSetId=model_set_id,
            )

        if model_set.user_id != user_id:
            await block_mutation(
                uow,
                OwnershipViolation(
                    "ModelSet does not belong to user; cannot activate ModelSet.",
                    user_id=user_id, entity_id=model_set_id,
                ),
                user_id=user_id, modelSetId=model_set_id,
            )

        ctx = await self.ensure_user_context(uow, user_id)
        ctx = await uow.user_contexts.update(ctx, active_model_set_id=model_set_id, updated_at=uow.clock())

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.USER_CONTEXT_MODELSET_ACTIVATED,
            user_id=user_id,
            meta={"modelSetId": model_set_id, "contextVersion": ctx.context_version},
        ))
        logger.info("user_context_model_set_activated", user_id=user_id, model_set_id=model_set_id)
        return ctx

    async def clear_active_model_set(self, uow, user_id: str) -> UserContext:
        await self._check_pause(uow, user_id, "cannot clear active ModelSet")

        ctx = await self.ensure_user_context(uow, user_id)
        ctx = await uow.user_contexts.update(ctx, active_model_set_id=None, updated_at=uow.clock())

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.USER_CONTEXT_MODELSET_CLEARED,
            user_id=user_id,
            meta={"contextVersion": ctx.context_version},
        ))
        logger.info("user_context_model_set_cleared", user_id=user_id)
        return ctx

    async def reset_user_context(self, uow, user_id: str) -> UserContext:
        # No pause check here.
        ctx = await self.ensure_user_context(uow, user_id)
        ctx = await uow.user_contexts.increment_version(
            ctx,
            last_closed_session_id=None,
            active_model_set_id=None,
            updated_at=uow.clock(),
        )

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.USER_CONTEXT_RESET,
            user_id=user_id,
            meta={"contextVersion": ctx.context_version},
        ))
        logger.info("user_context_reset", user_id=user_id, context_version=ctx.context_version)
        return ctx

    async def _check_pause(self, uow, user_id: str, action: str, session_id: Optional[str] = None, **meta):
        pause = await self.control_plane.get_effective_pause(uow, user_id)
        if pause.is_paused:
            await block_mutation(
                uow,
                PauseActive(pause.reason or f"User is paused; {action}.", user_id=user_id),
                user_id=user_id, session_id=session_id, **meta,
            )


user_context_service = UserContextService()
