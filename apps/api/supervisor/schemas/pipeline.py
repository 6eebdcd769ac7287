"""Pydantic schemas for the five-stage turn pipeline."""

import enum
from typing import Any

from pydantic import Field, field_validator

from supervisor.schemas.common import BaseSchema
from supervisor.schemas.session import ConversationState

NO_DOCUMENT_ID = "NONE"
MAX_UTTERANCE_LENGTH = 4000


# === Intent Classification ===


class Intent(str, enum.Enum):
    """Closed set of worker intents."""

    QUALITY_ISSUE = "quality_issue"
    PROCEDURE_QUERY = "procedure_query"
    EQUIPMENT_ISSUE = "equipment_issue"
    GENERAL_QUESTION = "general_question"
    CONFIRMATION = "confirmation"


class IntentResult(BaseSchema):
    """Classifier output."""

    intent: Intent
    confidence: float = Field(ge=0.0, le=1.0)
    extracted_entities: dict[str, Any] = Field(default_factory=dict)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        return min(1.0, max(0.0, float(value)))


# === Retrieval ===


class RetrievedChunk(BaseSchema):
    """A procedure fragment selected for the prompt."""

    step_number: int | None = None
    text: str
    chunk_type: str
    similarity: float


class RetrievalResult(BaseSchema):
    """Primary procedure document and its ordered context.

    ``document_id == "NONE"`` means the index had nothing relevant.
    ``fallback`` is set only when the index could not be queried.
    """

    document_id: str
    document_title: str
    ordered_chunks: list[RetrievedChunk] = Field(default_factory=list)
    assembled_context: str = ""
    fallback: bool = False

    @property
    def found(self) -> bool:
        return self.document_id != NO_DOCUMENT_ID


# === Navigation ===


class DecisionOutcome(str, enum.Enum):
    """Terminal dispositions for an inspected part."""

    QUARANTINE = "QUARANTINE"
    ACCEPT = "ACCEPT"
    ESCALATE = "ESCALATE"


class Decision(BaseSchema):
    """A disposition inferred from the navigator reply."""

    outcome: DecisionOutcome
    criteria: str
    reasoning: str


class ToolCallRequest(BaseSchema):
    """A tool invocation requested by the navigator.

    ``arguments`` holds decoded arguments, or the raw encoded string when the
    provider returned something that could not be decoded.
    """

    id: str | None = None
    name: str
    arguments: dict[str, Any] | str = Field(default_factory=dict)


class NavigationResult(BaseSchema):
    """Navigator reply plus the signals derived from it."""

    response_text: str
    next_step: int | None = None
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    decision: Decision | None = None
    requires_user_input: bool = False


# === Action Execution ===


class ToolResult(BaseSchema):
    """Outcome of one tool call."""

    tool_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any] | None = None
    error: bool = False
    message: str | None = None


# === Turn API ===


class TurnRequest(BaseSchema):
    """A worker utterance for a call."""

    utterance: str = Field(..., min_length=1, max_length=MAX_UTTERANCE_LENGTH)
    call_id: str = Field(..., min_length=1, max_length=128)


class TurnResponse(BaseSchema):
    """Composed reply for the worker.

    ``response_text`` is never empty; ``error`` is set when the turn failed
    and the apology text was substituted.
    """

    response_text: str
    session: ConversationState | None = None
    error: str | None = None
