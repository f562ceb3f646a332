"""
CONTROL PLANE - Pause / Kill-switch
===================================

A single, auditable control surface that can override all system behaviour.

- Flags are append-only: resume is a new paused=False row, never an update.
- Latest flag per (scope, scope_id) wins.
- scope=SYSTEM uses scope_id=None; scope=USER uses scope_id=user id.
- SYSTEM pause overrides everything at USER scope.

Author: AA-OS Core Team
Date: 2026-02-12
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

import governance_config
from audit_logger import AuditRecord
from exceptions import InvalidGovernanceInput
from logging_config import get_logger
from models import AuditEventType, ControlFlag, ControlScope

logger = get_logger(__name__)


@dataclass(frozen=True)
class PauseState:
    is_paused: bool
    reason: Optional[str] = None


NOT_PAUSED = PauseState(is_paused=False)


class ControlPlane:
    """Append-only pause flags + effective pause resolution"""

    async def set_flag(
        self,
        uow,
        scope: ControlScope,
        paused: bool,
        scope_id: Optional[str] = None,
        reason: Optional[str] = None,
        audit_user_id: Optional[str] = None,
    ) -> ControlFlag:
        """
        Append a new flag and audit it.

        Raises:
            InvalidGovernanceInput: USER scope without scope_id
        """
        scope = _coerce_scope(scope)
        scope_id = None if scope == ControlScope.SYSTEM else scope_id

        if scope == ControlScope.USER and not scope_id:
            raise InvalidGovernanceInput("scope_id is required for USER scope.", scope=scope.value)

        flag = await uow.control_flags.add(ControlFlag(
            scope=scope,
            scope_id=scope_id,
            paused=bool(paused),
            reason=reason,
            created_at=uow.clock(),
        ))

        await uow.audit.append(AuditRecord(
            event_type=AuditEventType.SYSTEM_PAUSED if paused else AuditEventType.SYSTEM_RESUMED,
            user_id=audit_user_id or (scope_id if scope == ControlScope.USER else None),
            meta={
                "scope": scope.value,
                "scopeId": scope_id,
                "paused": bool(paused),
                "reason": reason,
            },
        ))

        logger.info(
            "control_flag_set",
            scope=scope.value,
            scope_id=scope_id,
            paused=bool(paused),
            reason=reason,
        )
        return flag

    async def get_latest_flag(self, uow, scope: ControlScope, scope_id: Optional[str] = None) -> Optional[ControlFlag]:
        scope = _coerce_scope(scope)
        effective_scope_id = None if scope == ControlScope.SYSTEM else scope_id
        return await uow.control_flags.latest_for(scope, effective_scope_id)

    async def get_effective_pause(self, uow, user_id: str) -> PauseState:
        """
        SYSTEM is checked first and wins unconditionally.
        No flags at all = not paused.
        """
        system = await self.get_latest_flag(uow, ControlScope.SYSTEM)
        if system is not None and system.paused:
            return PauseState(True, system.reason or governance_config.DEFAULT_SYSTEM_PAUSE_REASON)

        user = await self.get_latest_flag(uow, ControlScope.USER, user_id)
        if user is not None and user.paused:
            return PauseState(True, user.reason or governance_config.DEFAULT_USER_PAUSE_REASON)

        return NOT_PAUSED

    # -------------------------------------------------------------------------
    # Convenience surface used by the control routes
    # -------------------------------------------------------------------------

    async def pause_user(self, uow, user_id: str, reason: Optional[str] = None) -> ControlFlag:
        return await self.set_flag(
            uow, ControlScope.USER, True, scope_id=user_id,
            reason=reason or governance_config.DEFAULT_USER_PAUSE_REQUEST_REASON,
        )

    async def resume_user(self, uow, user_id: str, reason: Optional[str] = None) -> ControlFlag:
        return await self.set_flag(
            uow, ControlScope.USER, False, scope_id=user_id,
            reason=reason or governance_config.DEFAULT_USER_RESUME_REQUEST_REASON,
        )

    async def pause_system(self, uow, reason: Optional[str] = None, audit_user_id: Optional[str] = None) -> ControlFlag:
        return await self.set_flag(uow, ControlScope.SYSTEM, True, reason=reason, audit_user_id=audit_user_id)

    async def resume_system(self, uow, reason: Optional[str] = None, audit_user_id: Optional[str] = None) -> ControlFlag:
        return await self.set_flag(uow, ControlScope.SYSTEM, False, reason=reason, audit_user_id=audit_user_id)

    async def get_status(self, uow, user_id: str) -> Dict[str, Any]:
        """Observable governance state for a user, read-only"""
        effective = await self.get_effective_pause(uow, user_id)
        user_flag = await self.get_latest_flag(uow, ControlScope.USER, user_id)
        system_flag = await self.get_latest_flag(uow, ControlScope.SYSTEM)

        return {
            "user_id": user_id,
            "paused": effective.is_paused,
            "reason": effective.reason,
            "user_flag": _flag_summary(user_flag),
            "system_flag": _flag_summary(system_flag),
        }


def _coerce_scope(scope) -> ControlScope:
    try:
        return ControlScope(scope.upper() if isinstance(scope, str) else scope)
    except ValueError:
        raise InvalidGovernanceInput(f"Unknown control scope: {scope}", scope=str(scope))


def _flag_summary(flag: Optional[ControlFlag]) -> Optional[Dict[str, Any]]:
    if flag is None:
        return None
    return {
        "paused": flag.paused,
        "reason": flag.reason,
        "created_at": flag.created_at.isoformat() if flag.created_at else None,
    }


control_plane = ControlPlane()
