"""
Domain Exceptions for the Governance Core

Hard-failure hierarchy for invariant violations, not-found conditions,
ownership mismatches and blocked mutations.
All exceptions inherit from BaseGovernanceException.

Guard-style outcomes (GuardResult, ProjectionGuardResult) are NOT exceptions
and never appear here.

Author: AA-OS Core Team
Date: 2026-02-06
"""


class BaseGovernanceException(Exception):
    """Base class for every governance failure"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        """Serialize for an API response"""
        return {
            "error": {
                "code": getattr(self, "code", None) or self.__class__.__name__,
                "message": self.message,
                "details": self.details
            }
        }


# =============================================================================
# Input / lookup
# =============================================================================

class InvalidGovernanceInput(BaseGovernanceException):
    """Structurally invalid arguments (missing scope id, unknown enum value, ...)"""

    def __init__(self, message: str, **details):
        super().__init__(message=message, details=details)


class EntityNotFound(BaseGovernanceException):
    """Referenced entity does not exist"""

    entity = "Entity"

    def __init__(self, entity_id: str, message: str = None):
        super().__init__(
            message=message or f"{self.entity} not found.",
            details={"entity": self.entity, "id": entity_id}
        )


class SessionNotFound(EntityNotFound):
    entity = "Session"


class ModelSetNotFound(EntityNotFound):
    entity = "ModelSet"


class UserNotFound(EntityNotFound):
    entity = "User"


# =============================================================================
# Policy blocks (always audited before raising)
# =============================================================================

class OwnershipViolation(BaseGovernanceException):
    """Entity belongs to a different user"""

    def __init__(self, message: str, user_id: str, entity_id: str):
        super().__init__(
            message=message,
            details={"user_id": user_id, "entity_id": entity_id}
        )


class PauseActive(BaseGovernanceException):
    """Mutation attempted while the effective pause is on"""

    def __init__(self, message: str, user_id: str = None):
        super().__init__(message=message, details={"user_id": user_id})


class ActionPaused(PauseActive):
    """Session / state action blocked by the pause lock"""

    def __init__(self, message: str, user_id: str, action: str):
        super().__init__(message=message, user_id=user_id)
        self.details["action"] = action


class BoundsViolation(BaseGovernanceException):
    """Numeric value outside its closed range"""

    def __init__(self, message: str, field: str, value, bounds: tuple):
        super().__init__(
            message=message,
            details={"field": field, "value": value, "bounds": list(bounds)}
        )


class InvariantViolation(BaseGovernanceException):
    """Structural invariant would be broken by the mutation"""

    def __init__(self, message: str, invariant: str, **details):
        super().__init__(message=message, details={"invariant": invariant, **details})


# =============================================================================
# Lifecycle / state machine
# =============================================================================

class InvalidPhaseTransition(BaseGovernanceException):
    """Session phase pair not in the lifecycle table"""

    def __init__(self, from_phase: str, to_phase: str):
        super().__init__(
            message=f"Invalid phase transition: {from_phase} -> {to_phase}",
            details={"from": from_phase, "to": to_phase}
        )


class SessionAlreadyClosed(BaseGovernanceException):
    def __init__(self, session_id: str):
        super().__init__(
            message="Session is already closed.",
            details={"session_id": session_id}
        )


class SessionNotInClosure(BaseGovernanceException):
    def __init__(self, session_id: str, current_phase: str):
        super().__init__(
            message=f"Cannot close session unless phase is CLOSURE (current: {current_phase}).",
            details={"session_id": session_id, "current_phase": current_phase}
        )


class StateTransitionBlocked(BaseGovernanceException):
    """
    System state transition rejected.

    rule is one of PAUSED, MODELS_REQUIRED, INVALID_TRANSITION.
    """

    def __init__(self, message: str, rule: str, from_state: str, to_state: str):
        self.rule = rule
        super().__init__(
            message=message,
            details={"rule": rule, "from": from_state, "to": to_state}
        )


# =============================================================================
# Projections
# =============================================================================

class UnknownProjection(BaseGovernanceException):
    """Name not present in the immutable registry (programmer error, never audited)"""

    code = "UNKNOWN_PROJECTION"

    def __init__(self, name: str):
        super().__init__(
            message=f"Unknown projection: {name}",
            details={"code": self.code, "projection": str(name)}
        )


class ProjectionBlocked(BaseGovernanceException):
    """Projection guard rejected the execution"""

    def __init__(self, code: str, message: str, projection: str):
        self.code = code
        super().__init__(
            message=f"{code}: {message}",
            details={"code": code, "projection": projection}
        )


# =============================================================================
# HTTP Status Mapping
# =============================================================================

# Mapping domain exceptions to HTTP status codes
EXCEPTION_TO_STATUS = {
    InvalidGovernanceInput: 400,
    EntityNotFound: 404,
    SessionNotFound: 404,
    ModelSetNotFound: 404,
    UserNotFound: 404,
    OwnershipViolation: 403,
    PauseActive: 403,
    ActionPaused: 403,
    BoundsViolation: 400,
    InvariantViolation: 409,
    InvalidPhaseTransition: 400,
    SessionAlreadyClosed: 400,
    SessionNotInClosure: 400,
    StateTransitionBlocked: 400,
    UnknownProjection: 404,
    ProjectionBlocked: 403,
}

# Guard codes that are client input errors rather than refusals
PROJECTION_BLOCK_STATUS = {
    "INVALID_INPUT": 400,
}


def status_for(exc: BaseGovernanceException) -> int:
    """Most specific mapped status for an exception instance"""
    if isinstance(exc, ProjectionBlocked) and exc.code in PROJECTION_BLOCK_STATUS:
        return PROJECTION_BLOCK_STATUS[exc.code]
    for cls in type(exc).__mro__:
        if cls in EXCEPTION_TO_STATUS:
            return EXCEPTION_TO_STATUS[cls]
    return 500
