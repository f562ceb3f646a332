from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


# =============================================================================
# Control plane
# =============================================================================

class PauseRequest(BaseModel):
    """Body for user-scoped pause / resume"""
    user_id: str = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=500)

    class Config:
        json_schema_extra = {
            "example": {
                "user_id": "4f6c1d0e-1b7a-4c5e-9d8f-2a3b4c5d6e7f",
                "reason": "Taking a break"
            }
        }


class SystemPauseRequest(BaseModel):
    """Body for system-scoped pause / resume"""
    reason: Optional[str] = Field(None, max_length=500)
    actor_user_id: Optional[str] = None


class ControlFlagOut(BaseModel):
    id: int
    scope: str
    scope_id: Optional[str] = None
    paused: bool
    reason: Optional[str] = None
    created_at: datetime
    class Config: from_attributes = True


class ControlFlagResponse(BaseModel):
    ok: bool = True
    paused: bool
    flag: ControlFlagOut


class ControlStatusResponse(BaseModel):
    ok: bool = True
    user_id: str
    paused: bool
    reason: Optional[str] = None
    user_flag: Optional[Dict[str, Any]] = None
    system_flag: Optional[Dict[str, Any]] = None


# =============================================================================
# Sessions / system state
# =============================================================================

class SessionOpenRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    type: Optional[str] = Field(None, description="ASSESSMENT | REFLECTION")
    purpose: Optional[str] = Field(None, max_length=1024)


class SessionAdvanceRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1)
    to: str = Field(..., description="Target phase: ENGAGEMENT, SYNTHESIS, CLOSURE")


class SessionCloseRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1)


class SystemTransitionRequest(BaseModel):
    """from is always the stored session state, so it is not accepted here"""
    user_id: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1)
    to: str = Field(..., description="Target SystemState")


class SessionOut(BaseModel):
    id: str
    user_id: str
    type: str
    phase: str
    state: str
    purpose: Optional[str] = None
    created_at: datetime
    closed_at: Optional[datetime] = None
    class Config: from_attributes = True


class SessionResponse(BaseModel):
    ok: bool = True
    session: SessionOut


class BootstrapResponse(BaseModel):
    ok: bool = True
    user_id: str
    session_id: str


# =============================================================================
# User context
# =============================================================================

class UserContextRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class LastClosedSessionRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1)


class ModelSetActivateRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    model_set_id: str = Field(..., min_length=1)


class UserContextOut(BaseModel):
    user_id: str
    active_model_set_id: Optional[str] = None
    last_closed_session_id: Optional[str] = None
    context_version: int
    class Config: from_attributes = True


class UserContextResponse(BaseModel):
    ok: bool = True
    context: UserContextOut


# =============================================================================
# Projections
# =============================================================================

class TimeRangeIn(BaseModel):
    from_: datetime = Field(..., alias="from")
    to: datetime


class ProjectionRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    model_set_id: Optional[str] = None
    time_range: Optional[TimeRangeIn] = None
    params: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "user_id": "4f6c1d0e-1b7a-4c5e-9d8f-2a3b4c5d6e7f",
                "time_range": {"from": "2026-02-01T00:00:00Z", "to": "2026-02-28T23:59:59Z"},
                "params": {"domain": "SYSTEM"}
            }
        }


class ProjectionResponse(BaseModel):
    ok: bool = True
    projection: str
    output: Any


class HealthResponse(BaseModel):
    status: str
    projections: List[str]
