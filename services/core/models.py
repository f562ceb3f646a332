from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Text, Float, Integer, JSON, Boolean,
    UniqueConstraint, Index, Enum,
)
from sqlalchemy.orm import relationship
import uuid
import enum

from clock import utc_now
from database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


# =============================================================================
# CLOSED ENUMERATIONS
# =============================================================================

class SessionPhase(str, enum.Enum):
    """
    Structural stage of one bounded interaction arc.

    OPENING → ENGAGEMENT → SYNTHESIS → CLOSURE (terminal)
    """
    OPENING = "OPENING"
    ENGAGEMENT = "ENGAGEMENT"
    SYNTHESIS = "SYNTHESIS"
    CLOSURE = "CLOSURE"


class SystemState(str, enum.Enum):
    """Interpretive-process state carried by a session"""
    UNINITIALIZED = "UNINITIALIZED"
    ASSESSING = "ASSESSING"
    MODELED = "MODELED"
    INSIGHT_DELIVERY = "INSIGHT_DELIVERY"
    LONGITUDINAL_TRACKING = "LONGITUDINAL_TRACKING"
    PAUSED = "PAUSED"


class SessionType(str, enum.Enum):
    ASSESSMENT = "ASSESSMENT"
    REFLECTION = "REFLECTION"


class ControlScope(str, enum.Enum):
    SYSTEM = "SYSTEM"
    USER = "USER"


class ModelSetStatus(str, enum.Enum):
    """Informational only; not enforced beyond ownership"""
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class IdentityModelType(str, enum.Enum):
    CIM = "CIM"
    FIM = "FIM"


class ConfidenceDomain(str, enum.Enum):
    IDENTITY_MODEL = "IDENTITY_MODEL"
    SESSION = "SESSION"
    SYSTEM = "SYSTEM"


class PressureLevel(str, enum.Enum):
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AuditEventType(str, enum.Enum):
    BOOTSTRAP_CREATED = "BOOTSTRAP_CREATED"
    SESSION_OPENED = "SESSION_OPENED"
    SESSION_PHASE_ADVANCED = "SESSION_PHASE_ADVANCED"
    SESSION_CLOSED = "SESSION_CLOSED"
    SYSTEM_STATE_TRANSITION = "SYSTEM_STATE_TRANSITION"
    SYSTEM_PAUSED = "SYSTEM_PAUSED"
    SYSTEM_RESUMED = "SYSTEM_RESUMED"
    ACTION_BLOCKED_PAUSED = "ACTION_BLOCKED_PAUSED"
    USER_CONTEXT_CREATED = "USER_CONTEXT_CREATED"
    USER_CONTEXT_LAST_SESSION_SET = "USER_CONTEXT_LAST_SESSION_SET"
    USER_CONTEXT_MODELSET_ACTIVATED = "USER_CONTEXT_MODELSET_ACTIVATED"
    USER_CONTEXT_MODELSET_CLEARED = "USER_CONTEXT_MODELSET_CLEARED"
    USER_CONTEXT_RESET = "USER_CONTEXT_RESET"
    MUTATION_BLOCKED = "MUTATION_BLOCKED"
    MODEL_SET_CREATED = "MODEL_SET_CREATED"
    IDENTITY_VERSION_CREATED = "IDENTITY_VERSION_CREATED"
    CONFIDENCE_RECORDED = "CONFIDENCE_RECORDED"
    CONFIDENCE_MUTATION_BLOCKED = "CONFIDENCE_MUTATION_BLOCKED"
    PRESSURE_RECORDED = "PRESSURE_RECORDED"
    PRESSURE_MUTATION_BLOCKED = "PRESSURE_MUTATION_BLOCKED"
    PROJECTION_ACCESSED = "PROJECTION_ACCESSED"


def _enum(enum_cls, name):
    return Enum(enum_cls, name=name, native_enum=False, length=32)


# =============================================================================
# ENTITIES
# =============================================================================

class User(Base):
    __tablename__ = "users"
    id = Column(String(36), primary_key=True, default=_uuid)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class Session(Base):
    """
    One bounded interaction arc, owned by one user.

    🔒 phase / state / closed_at are mutated ONLY through session_service.
    """
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(_enum(SessionType, "session_type"), nullable=False, default=SessionType.ASSESSMENT)
    phase = Column(_enum(SessionPhase, "session_phase"), nullable=False, default=SessionPhase.OPENING)
    state = Column(_enum(SystemState, "system_state"), nullable=False, default=SystemState.UNINITIALIZED)
    purpose = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
    closed_at = Column(DateTime(timezone=True), nullable=True)


class UserContext(Base):
    """
    Single mutable anchor per user. References only, no content.

    last_closed_session_id must only ever point to a CLOSED session.
    """
    __tablename__ = "user_contexts"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True)
    active_model_set_id = Column(String(36), ForeignKey("model_sets.id"), nullable=True)
    last_closed_session_id = Column(String(36), ForeignKey("sessions.id"), nullable=True)
    context_version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class ModelSet(Base):
    __tablename__ = "model_sets"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(_enum(ModelSetStatus, "model_set_status"), nullable=False, default=ModelSetStatus.DRAFT)
    label = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    versions = relationship("IdentityModelVersion", back_populates="model_set", lazy="raise")


# =============================================================================
# APPEND-ONLY LOGS
# Integer ids give a stable tiebreak when created_at collides.
# =============================================================================

class IdentityModelVersion(Base):
    __tablename__ = "identity_model_versions"
    __table_args__ = (
        UniqueConstraint("model_set_id", "type", "version", name="uq_identity_version"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    model_set_id = Column(String(36), ForeignKey("model_sets.id"), nullable=False)
    type = Column(_enum(IdentityModelType, "identity_model_type"), nullable=False)
    version = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    model_set = relationship("ModelSet", back_populates="versions", lazy="raise")


class ConfidenceState(Base):
    __tablename__ = "confidence_states"
    __table_args__ = (
        Index("ix_confidence_latest", "user_id", "domain", "key", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    domain = Column(_enum(ConfidenceDomain, "confidence_domain"), nullable=False)
    key = Column(String, nullable=False)
    value = Column(Float, nullable=False)
    reason = Column(Text, nullable=True)
    model_set_id = Column(String(36), ForeignKey("model_sets.id"), nullable=True)
    session_id = Column(String(36), ForeignKey("sessions.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class PressureState(Base):
    __tablename__ = "pressure_states"
    __table_args__ = (
        Index("ix_pressure_latest", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    dpi = Column(Float, nullable=False)
    level = Column(_enum(PressureLevel, "pressure_level"), nullable=False)
    reason = Column(Text, nullable=True)
    session_id = Column(String(36), ForeignKey("sessions.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class ControlFlag(Base):
    """
    Pause / resume decision. NEVER updated or deleted.
    scope=SYSTEM → scope_id is NULL; scope=USER → scope_id = user id.
    """
    __tablename__ = "control_flags"
    __table_args__ = (
        Index("ix_control_flag_latest", "scope", "scope_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    scope = Column(_enum(ControlScope, "control_scope"), nullable=False)
    scope_id = Column(String(36), nullable=True)
    paused = Column(Boolean, nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class AuditEvent(Base):
    """Structural record of what happened and why it was allowed / blocked"""
    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_user_time", "user_id", "timestamp"),
        Index("ix_audit_session_time", "session_id", "timestamp"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=True)
    session_id = Column(String(36), nullable=True)
    event_type = Column(_enum(AuditEventType, "audit_event_type"), nullable=False)
    meta = Column(JSON, nullable=False, default=dict)
    timestamp = Column(DateTime(timezone=True), default=utc_now, nullable=False)
