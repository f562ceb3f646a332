"""
FastAPI dependencies.

The app factory stores the UoW provider and the projection executor on
app.state; handlers open their own unit of work so the commit happens
before the response is built.
"""
from fastapi import Request

from infrastructure.uow import UoWProvider
from projections import ProjectionExecutor


def get_uow_provider(request: Request) -> UoWProvider:
    """
    Usage:
        @router.post("/endpoint")
        async def endpoint(new_uow: UoWProvider = Depends(get_uow_provider)):
            async with new_uow() as uow:
                ...
    """
    return request.app.state.uow_provider


def get_projection_executor(request: Request) -> ProjectionExecutor:
    return request.app.state.projection_executor
