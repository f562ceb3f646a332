"""
Control API Endpoints
Pause / resume (user and system scope) and effective status.

Resume never deletes a pause: it appends a paused=False flag.
"""
from fastapi import APIRouter, Depends, Query

from api.dependencies import get_uow_provider
from api.serializers import control_flag_to_dict
from control_plane import control_plane
from infrastructure.uow import UoWProvider
from schemas import ControlFlagResponse, ControlStatusResponse, PauseRequest, SystemPauseRequest

router = APIRouter(prefix="/control", tags=["control"])


@router.post("/pause", response_model=ControlFlagResponse)
async def pause_user(req: PauseRequest, new_uow: UoWProvider = Depends(get_uow_provider)):
    async with new_uow() as uow:
        flag = await control_plane.pause_user(uow, req.user_id, req.reason)
    return {"paused": True, "flag": control_flag_to_dict(flag)}


@router.post("/resume", response_model=ControlFlagResponse)
async def resume_user(req: PauseRequest, new_uow: UoWProvider = Depends(get_uow_provider)):
    async with new_uow() as uow:
        flag = await control_plane.resume_user(uow, req.user_id, req.reason)
    return {"paused": False, "flag": control_flag_to_dict(flag)}


@router.post("/system/pause", response_model=ControlFlagResponse)
async def pause_system(req: SystemPauseRequest, new_uow: UoWProvider = Depends(get_uow_provider)):
    """Kill-switch: overrides every user-scope flag until resumed"""
    async with new_uow() as uow:
        flag = await control_plane.pause_system(uow, req.reason, audit_user_id=req.actor_user_id)
    return {"paused": True, "flag": control_flag_to_dict(flag)}


@router.post("/system/resume", response_model=ControlFlagResponse)
async def resume_system(req: SystemPauseRequest, new_uow: UoWProvider = Depends(get_uow_provider)):
    async with new_uow() as uow:
        flag = await control_plane.resume_system(uow, req.reason, audit_user_id=req.actor_user_id)
    return {"paused": False, "flag": control_flag_to_dict(flag)}


@router.get("/status", response_model=ControlStatusResponse)
async def control_status(
    user_id: str = Query(..., min_length=1),
    new_uow: UoWProvider = Depends(get_uow_provider),
):
    async with new_uow() as uow:
        return await control_plane.get_status(uow, user_id)
