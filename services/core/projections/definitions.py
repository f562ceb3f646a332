"""
Projection Definitions

The single collection point for every ProjectionContract.
Outputs are structural (ids, enums, numbers, timestamps), never payload
content or interpretation. Order of PROJECTION_DEFINITIONS carries no
meaning; the registry keys by name.
"""
from typing import Any, Dict, List

from sqlalchemy import func

from clock import as_utc
from exceptions import InvalidGovernanceInput
from models import (
    AuditEvent,
    AuditEventType,
    ConfidenceDomain,
    ConfidenceState,
    ControlFlag,
    ControlScope,
    IdentityModelType,
    IdentityModelVersion,
    PressureState,
)
from projections.contract import ProjectionContext, ProjectionContract
from projections.types import ProjectionInput, ProjectionName, SourceModelKey


def _iso(moment):
    return as_utc(moment).isoformat() if moment is not None else None


def _within(column, input: ProjectionInput) -> List[Any]:
    if input.time_range is None:
        return []
    return [
        column >= as_utc(input.time_range.start),
        column <= as_utc(input.time_range.end),
    ]


def _require(input: ProjectionInput, field: str, projection: ProjectionName) -> None:
    if not getattr(input, field):
        raise InvalidGovernanceInput(
            f"{projection.value} requires {field}.",
            projection=projection.value,
            field=field,
        )


def _check_param(input: ProjectionInput, name: str, enum_cls) -> None:
    value = input.params.get(name)
    if value is None:
        return
    try:
        enum_cls(value)
    except ValueError:
        raise InvalidGovernanceInput(f"Unknown {name}: {value}", field=name, value=str(value))


class SessionTimelineProjection(ProjectionContract):
    """One session's structural state plus its audit trail"""

    name = ProjectionName.SESSION_TIMELINE
    sources = (SourceModelKey.SESSION, SourceModelKey.AUDIT_EVENT)

    def validate(self, input: ProjectionInput) -> None:
        _require(input, "session_id", self.name)

    async def run(self, ctx: ProjectionContext, input: ProjectionInput) -> Dict[str, Any]:
        session = await ctx.db.session.find_unique(input.session_id)
        events = await ctx.db.audit_event.find_many(
            AuditEvent.session_id == input.session_id,
            *_within(AuditEvent.timestamp, input),
            order_by=(AuditEvent.timestamp.asc(), AuditEvent.id.asc()),
        )
        return {
            "sessionId": input.session_id,
            "phase": session.phase.value if session else None,
            "state": session.state.value if session else None,
            "openedAt": _iso(session.created_at) if session else None,
            "closedAt": _iso(session.closed_at) if session else None,
            "events": [
                {"eventType": e.event_type.value, "timestamp": _iso(e.timestamp)}
                for e in events
            ],
        }


class IdentityVersionTimelineProjection(ProjectionContract):
    """Version numbers per model type inside one model set; payloads excluded"""

    name = ProjectionName.IDENTITY_VERSION_TIMELINE
    sources = (SourceModelKey.MODEL_SET, SourceModelKey.IDENTITY_MODEL_VERSION)

    def validate(self, input: ProjectionInput) -> None:
        _require(input, "model_set_id", self.name)
        _check_param(input, "type", IdentityModelType)

    async def run(self, ctx: ProjectionContext, input: ProjectionInput) -> Dict[str, Any]:
        model_set = await ctx.db.model_set.find_unique(input.model_set_id)
        criteria = [IdentityModelVersion.model_set_id == input.model_set_id]
        if input.params.get("type"):
            criteria.append(IdentityModelVersion.type == IdentityModelType(input.params["type"]))

        versions = await ctx.db.identity_model_version.find_many(
            *criteria,
            *_within(IdentityModelVersion.created_at, input),
            order_by=(IdentityModelVersion.created_at.asc(), IdentityModelVersion.id.asc()),
        )
        return {
            "modelSetId": input.model_set_id,
            "status": model_set.status.value if model_set else None,
            "versions": [
                {"type": v.type.value, "version": v.version, "createdAt": _iso(v.created_at)}
                for v in versions
            ],
        }


class ConfidenceSeriesProjection(ProjectionContract):
    name = ProjectionName.CONFIDENCE_SERIES
    sources = (SourceModelKey.CONFIDENCE_STATE,)

    def validate(self, input: ProjectionInput) -> None:
        _check_param(input, "domain", ConfidenceDomain)

    async def run(self, ctx: ProjectionContext, input: ProjectionInput) -> Dict[str, Any]:
        criteria = [ConfidenceState.user_id == input.user_id]
        if input.params.get("domain"):
            criteria.append(ConfidenceState.domain == ConfidenceDomain(input.params["domain"]))
        if input.params.get("key"):
            criteria.append(ConfidenceState.key == input.params["key"])
        if input.model_set_id:
            criteria.append(ConfidenceState.model_set_id == input.model_set_id)
        if input.session_id:
            criteria.append(ConfidenceState.session_id == input.session_id)

        rows = await ctx.db.confidence_state.find_many(
            *criteria,
            *_within(ConfidenceState.created_at, input),
            order_by=(ConfidenceState.created_at.asc(), ConfidenceState.id.asc()),
        )
        return {
            "points": [
                {
                    "domain": r.domain.value,
                    "key": r.key,
                    "value": r.value,
                    "createdAt": _iso(r.created_at),
                }
                for r in rows
            ],
        }


class PressureSeriesProjection(ProjectionContract):
    name = ProjectionName.PRESSURE_SERIES
    sources = (SourceModelKey.PRESSURE_STATE,)

    def validate(self, input: ProjectionInput) -> None:
        pass

    async def run(self, ctx: ProjectionContext, input: ProjectionInput) -> Dict[str, Any]:
        criteria = [PressureState.user_id == input.user_id]
        if input.session_id:
            criteria.append(PressureState.session_id == input.session_id)
        criteria.extend(_within(PressureState.created_at, input))

        rows = await ctx.db.pressure_state.find_many(
            *criteria,
            order_by=(PressureState.created_at.asc(), PressureState.id.asc()),
        )
        stats = await ctx.db.pressure_state.aggregate(
            where=criteria,
            max_dpi=func.max(PressureState.dpi),
            min_dpi=func.min(PressureState.dpi),
        )
        return {
            "points": [
                {
                    "dpi": r.dpi,
                    "level": r.level.value,
                    "sessionId": r.session_id,
                    "createdAt": _iso(r.created_at),
                }
                for r in rows
            ],
            "count": len(rows),
            "maxDpi": stats["max_dpi"],
            "minDpi": stats["min_dpi"],
        }


class ControlFlagsTimelineProjection(ProjectionContract):
    """SYSTEM flags plus this user's USER flags, oldest first"""

    name = ProjectionName.CONTROL_FLAGS_TIMELINE
    sources = (SourceModelKey.CONTROL_FLAG,)

    def validate(self, input: ProjectionInput) -> None:
        pass

    async def run(self, ctx: ProjectionContext, input: ProjectionInput) -> Dict[str, Any]:
        flags = await ctx.db.control_flag.find_many(
            (ControlFlag.scope == ControlScope.SYSTEM)
            | ((ControlFlag.scope == ControlScope.USER) & (ControlFlag.scope_id == input.user_id)),
            *_within(ControlFlag.created_at, input),
            order_by=(ControlFlag.created_at.asc(), ControlFlag.id.asc()),
        )
        return {
            "flags": [
                {
                    "scope": f.scope.value,
                    "paused": f.paused,
                    "reason": f.reason,
                    "createdAt": _iso(f.created_at),
                }
                for f in flags
            ],
        }


class SystemStateTimelineProjection(ProjectionContract):
    """Recorded SYSTEM_STATE_TRANSITION events, optionally for one session"""

    name = ProjectionName.SYSTEM_STATE_TIMELINE
    sources = (SourceModelKey.SESSION, SourceModelKey.AUDIT_EVENT)

    def validate(self, input: ProjectionInput) -> None:
        pass

    async def run(self, ctx: ProjectionContext, input: ProjectionInput) -> Dict[str, Any]:
        criteria = [
            AuditEvent.user_id == input.user_id,
            AuditEvent.event_type == AuditEventType.SYSTEM_STATE_TRANSITION,
        ]
        current_state = None
        if input.session_id:
            criteria.append(AuditEvent.session_id == input.session_id)
            session = await ctx.db.session.find_unique(input.session_id)
            current_state = session.state.value if session else None

        events = await ctx.db.audit_event.find_many(
            *criteria,
            *_within(AuditEvent.timestamp, input),
            order_by=(AuditEvent.timestamp.asc(), AuditEvent.id.asc()),
        )
        return {
            "currentState": current_state,
            "transitions": [
                {
                    "sessionId": e.session_id,
                    "from": (e.meta or {}).get("from"),
                    "to": (e.meta or {}).get("to"),
                    "timestamp": _iso(e.timestamp),
                }
                for e in events
            ],
        }


PROJECTION_DEFINITIONS = (
    SessionTimelineProjection(),
    IdentityVersionTimelineProjection(),
    ConfidenceSeriesProjection(),
    PressureSeriesProjection(),
    ControlFlagsTimelineProjection(),
    SystemStateTimelineProjection(),
)
