"""Pydantic schemas for voice transport webhook events."""

from typing import Any

from pydantic import Field

from supervisor.schemas.common import BaseSchema


class VoiceCall(BaseSchema):
    id: str


class VoiceTranscript(BaseSchema):
    text: str = ""


class VoiceFunctionCall(BaseSchema):
    name: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class VoiceWebhookEvent(BaseSchema):
    """Lifecycle event pushed by the voice transport."""

    type: str
    call: VoiceCall
    transcript: VoiceTranscript | None = None
    function_call: VoiceFunctionCall | None = Field(default=None, alias="functionCall")


class VoiceWebhookResponse(BaseSchema):
    """Reply to the voice transport; ``message`` is spoken aloud."""

    message: str | None = None
    success: bool | None = None
    result: str | None = None
