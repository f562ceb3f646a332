"""
Session API Endpoints
Open / advance / close. All rules live in session_service.
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_uow_provider
from api.serializers import session_to_dict
from infrastructure.uow import UoWProvider
from schemas import SessionAdvanceRequest, SessionCloseRequest, SessionOpenRequest, SessionResponse
from session_service import session_service

router = APIRouter(prefix="/session", tags=["session"])


@router.post("/open", response_model=SessionResponse)
async def open_session(req: SessionOpenRequest, new_uow: UoWProvider = Depends(get_uow_provider)):
    async with new_uow() as uow:
        session = await session_service.open_session(uow, req.user_id, req.type, req.purpose)
    return {"session": session_to_dict(session)}


@router.post("/advance", response_model=SessionResponse)
async def advance_session(req: SessionAdvanceRequest, new_uow: UoWProvider = Depends(get_uow_provider)):
    async with new_uow() as uow:
        session = await session_service.advance_phase(uow, req.user_id, req.session_id, req.to)
    return {"session": session_to_dict(session)}


@router.post("/close", response_model=SessionResponse)
async def close_session(req: SessionCloseRequest, new_uow: UoWProvider = Depends(get_uow_provider)):
    """Idempotent: closing a closed session returns it unchanged"""
    async with new_uow() as uow:
        session = await session_service.close_session(uow, req.user_id, req.session_id)
    return {"session": session_to_dict(session)}
