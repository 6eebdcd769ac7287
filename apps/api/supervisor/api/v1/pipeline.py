"""Turn pipeline endpoint."""

from fastapi import APIRouter, Request

from supervisor.core.config import settings
from supervisor.core.deps import PipelineServiceDep
from supervisor.core.rate_limit import limiter
from supervisor.schemas.pipeline import TurnRequest, TurnResponse

router = APIRouter()


@router.post(
    "/pipeline",
    response_model=TurnResponse,
    summary="Run one supervisor turn",
    description="""
    Send a worker utterance for a call and get the supervisor's reply.

    The call's session is created on first use. The endpoint answers 200
    even when the turn fails internally: the reply is then a fixed apology,
    the session is the pre-turn snapshot and `error` is set.
    """,
)
@limiter.limit(settings.pipeline_rate_limit)
async def run_pipeline(
    request: Request,  # noqa: ARG001 (required by slowapi)
    body: TurnRequest,
    service: PipelineServiceDep,
) -> TurnResponse:
    return await service.run_turn(body)
