"""
Projection types: closed name set, source allow-list, explicit input.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


class ProjectionName(str, enum.Enum):
    """Closed set. No ad-hoc projection identifiers."""
    SESSION_TIMELINE = "session.timeline"
    IDENTITY_VERSION_TIMELINE = "identity.versionTimeline"
    CONFIDENCE_SERIES = "confidence.series"
    PRESSURE_SERIES = "pressure.series"
    CONTROL_FLAGS_TIMELINE = "controlFlags.timeline"
    SYSTEM_STATE_TIMELINE = "systemState.timeline"


class SourceModelKey(str, enum.Enum):
    """Source models projections may read. Anything else is unreachable."""
    USER = "User"
    SESSION = "Session"
    USER_CONTEXT = "UserContext"
    MODEL_SET = "ModelSet"
    IDENTITY_MODEL_VERSION = "IdentityModelVersion"
    CONFIDENCE_STATE = "ConfidenceState"
    PRESSURE_STATE = "PressureState"
    CONTROL_FLAG = "ControlFlag"
    AUDIT_EVENT = "AuditEvent"


@dataclass(frozen=True)
class TimeRange:
    """Closed window; both bounds explicit, never inferred"""
    start: datetime
    end: datetime


@dataclass(frozen=True)
class ProjectionInput:
    """
    Every projection input is explicit: no ambient parameters.

    session_id / model_set_id ownership is enforced by the guard.
    params carries projection-specific filters (e.g. confidence domain/key);
    it is not part of the audited fingerprint.
    """
    user_id: str
    session_id: Optional[str] = None
    model_set_id: Optional[str] = None
    time_range: Optional[TimeRange] = None
    params: Dict[str, Any] = field(default_factory=dict)
