"""
Projection API Endpoint
Thin adapter over ProjectionExecutor.execute(name, input).
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_projection_executor
from projections import ProjectionExecutor, ProjectionInput, ProjectionName, TimeRange
from schemas import ProjectionRequest, ProjectionResponse

router = APIRouter(prefix="/projections", tags=["projections"])


@router.post("/{name}", response_model=ProjectionResponse)
async def run_projection(
    name: str,
    req: ProjectionRequest,
    executor: ProjectionExecutor = Depends(get_projection_executor),
):
    time_range = None
    if req.time_range is not None:
        time_range = TimeRange(start=req.time_range.from_, end=req.time_range.to)

    output = await executor.execute(name, ProjectionInput(
        user_id=req.user_id,
        session_id=req.session_id,
        model_set_id=req.model_set_id,
        time_range=time_range,
        params=dict(req.params),
    ))
    return {"projection": ProjectionName(name).value, "output": output}
