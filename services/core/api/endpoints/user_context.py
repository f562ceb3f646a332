"""
User Context API Endpoints
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_uow_provider
from api.serializers import user_context_to_dict
from infrastructure.uow import UoWProvider
from schemas import (
    LastClosedSessionRequest,
    ModelSetActivateRequest,
    UserContextRequest,
    UserContextResponse,
)
from user_context_service import user_context_service

router = APIRouter(prefix="/user-context", tags=["user-context"])


@router.post("/reset", response_model=UserContextResponse)
async def reset_user_context(req: UserContextRequest, new_uow: UoWProvider = Depends(get_uow_provider)):
    """Allowed while paused"""
    async with new_uow() as uow:
        ctx = await user_context_service.reset_user_context(uow, req.user_id)
    return {"context": user_context_to_dict(ctx)}


@router.post("/last-closed-session", response_model=UserContextResponse)
async def set_last_closed_session(req: LastClosedSessionRequest, new_uow: UoWProvider = Depends(get_uow_provider)):
    async with new_uow() as uow:
        ctx = await user_context_service.set_last_closed_session(uow, req.user_id, req.session_id)
    return {"context": user_context_to_dict(ctx)}


@router.post("/model-set/activate", response_model=UserContextResponse)
async def activate_model_set(req: ModelSetActivateRequest, new_uow: UoWProvider = Depends(get_uow_provider)):
    async with new_uow() as uow:
        ctx = await user_context_service.activate_model_set(uow, req.user_id, req.model_set_id)
    return {"context": user_context_to_dict(ctx)}


@router.post("/model-set/clear", response_model=UserContextResponse)
async def clear_active_model_set(req: UserContextRequest, new_uow: UoWProvider = Depends(get_uow_provider)):
    async with new_uow() as uow:
        ctx = await user_context_service.clear_active_model_set(uow, req.user_id)
    return {"context": user_context_to_dict(ctx)}
