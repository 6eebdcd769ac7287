"""Pydantic schemas for per-call conversation state."""

import enum
import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import Field

from supervisor.schemas.common import BaseSchema


def utcnow() -> datetime:
    return datetime.now(UTC)


class MessageRole(str, enum.Enum):
    """Conversation message roles."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class SessionStatus(str, enum.Enum):
    """Lifecycle status of a guided procedure session."""

    ACTIVE = "active"
    AWAITING_INPUT = "awaiting_input"
    COMPLETED = "completed"
    ESCALATED = "escalated"


class ConversationMessage(BaseSchema):
    """A single utterance in the conversation history."""

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class DecisionRecord(BaseSchema):
    """A disposition reached at a procedure step."""

    step: int
    decision: str
    timestamp: datetime = Field(default_factory=utcnow)


class ActionRecord(BaseSchema):
    """A measurement tool invocation and its outcome.

    ``result`` is None when the tool call failed.
    """

    tool_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=utcnow)


class ConversationState(BaseSchema):
    """Everything the supervisor knows about one call.

    Instances are never edited in place by callers; all changes go through
    the session store's named mutations so ``timestamp_last_update`` stays
    monotonic.
    """

    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    call_id: str
    worker_name: str
    station: str

    current_document_id: str | None = None
    current_step: int | None = None

    measurements: dict[str, Any] = Field(default_factory=dict)
    decision_history: list[DecisionRecord] = Field(default_factory=list)
    actions_executed: list[ActionRecord] = Field(default_factory=list)
    conversation_history: list[ConversationMessage] = Field(default_factory=list)

    status: SessionStatus = SessionStatus.ACTIVE

    timestamp_start: datetime = Field(default_factory=utcnow)
    timestamp_last_update: datetime = Field(default_factory=utcnow)


class SessionListResponse(BaseSchema):
    """All live sessions."""

    sessions: list[ConversationState]
    count: int
