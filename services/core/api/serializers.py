"""ORM rows → plain dicts for the response schemas"""


def _value(member):
    return member.value if hasattr(member, "value") else member


def session_to_dict(session) -> dict:
    return {
        "id": session.id,
        "user_id": session.user_id,
        "type": _value(session.type),
        "phase": _value(session.phase),
        "state": _value(session.state),
        "purpose": session.purpose,
        "created_at": session.created_at,
        "closed_at": session.closed_at,
    }


def user_context_to_dict(ctx) -> dict:
    return {
        "user_id": ctx.user_id,
        "active_model_set_id": ctx.active_model_set_id,
        "last_closed_session_id": ctx.last_closed_session_id,
        "context_version": ctx.context_version,
    }


def control_flag_to_dict(flag) -> dict:
    return {
        "id": flag.id,
        "scope": _value(flag.scope),
        "scope_id": flag.scope_id,
        "paused": flag.paused,
        "reason": flag.reason,
        "created_at": flag.created_at,
    }
