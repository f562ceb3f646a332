"""
System API Endpoints
State transitions and the development bootstrap.
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_uow_provider
from api.serializers import session_to_dict
from infrastructure.uow import UoWProvider
from schemas import BootstrapResponse, SessionResponse, SystemTransitionRequest
from session_service import session_service

router = APIRouter(prefix="/system", tags=["system"])


@router.post("/transition", response_model=SessionResponse)
async def transition_state(req: SystemTransitionRequest, new_uow: UoWProvider = Depends(get_uow_provider)):
    async with new_uow() as uow:
        session = await session_service.transition_state(uow, req.user_id, req.session_id, req.to)
    return {"session": session_to_dict(session)}


@router.post("/bootstrap", response_model=BootstrapResponse)
async def bootstrap(new_uow: UoWProvider = Depends(get_uow_provider)):
    """Known-good user + session for development. Not an onboarding flow."""
    async with new_uow() as uow:
        user, session = await session_service.bootstrap(uow)
    return {"user_id": user.id, "session_id": session.id}
