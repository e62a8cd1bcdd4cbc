from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from seclog.api.utils import err, ok
from seclog.schemas.common import ErrorResponse, PipelineStatus, PipelineStatusResponse

router = APIRouter()


@router.get("/health")
def health() -> dict[str, object]:
    return ok()


@router.get(
    "/api/v1/pipeline/status",
    response_model=PipelineStatusResponse,
    responses={503: {"model": ErrorResponse}},
)
def pipeline_status(request: Request):
    state = getattr(request.app.state, "pipeline", None)
    if state is None:
        return JSONResponse(status_code=503, content=err("PIPELINE_UNAVAILABLE", "pipeline not initialized"))
    return PipelineStatusResponse(pipeline=PipelineStatus(**state.status()))
