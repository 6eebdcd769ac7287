"""Voice transport webhook."""

import logging

from fastapi import APIRouter, Request

from supervisor.core.config import settings
from supervisor.core.deps import PipelineServiceDep
from supervisor.core.rate_limit import limiter
from supervisor.schemas.voice import VoiceWebhookEvent, VoiceWebhookResponse

logger = logging.getLogger(__name__)

router = APIRouter()

FUNCTION_CALL_ACK = "Function call handled"


@router.post(
    "/webhook",
    response_model=VoiceWebhookResponse,
    response_model_exclude_none=True,
    summary="Voice call lifecycle events",
)
@limiter.limit(lambda: settings.voice_webhook_rate_limit)
async def voice_webhook(
    request: Request,  # noqa: ARG001 (required by slowapi)
    event: VoiceWebhookEvent,
    service: PipelineServiceDep,
) -> VoiceWebhookResponse:
    """Handle a voice transport event.

    call-start opens a session and greets the worker, transcript runs a
    turn and returns the reply to be spoken, call-end drops the session.
    Other event types are acknowledged.
    """
    call_id = event.call.id
    logger.info("Voice webhook event: type=%s, call_id=%s", event.type, call_id)

    if event.type == "call-start":
        return VoiceWebhookResponse(message=await service.start_call(call_id))

    if event.type == "transcript":
        text = event.transcript.text if event.transcript else ""
        return VoiceWebhookResponse(message=await service.handle_transcript(call_id, text))

    if event.type == "call-end":
        await service.end_call(call_id)
        return VoiceWebhookResponse(success=True)

    if event.type == "function-call":
        return VoiceWebhookResponse(result=FUNCTION_CALL_ACK)

    logger.info("Unhandled voice event type: %s", event.type)
    return VoiceWebhookResponse(success=True)
