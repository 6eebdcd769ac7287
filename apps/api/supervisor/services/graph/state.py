"""LangGraph turn state definition."""

from typing_extensions import TypedDict

from supervisor.schemas.incident import IncidentLog
from supervisor.schemas.pipeline import IntentResult, NavigationResult, RetrievalResult, ToolResult
from supervisor.schemas.session import ConversationMessage, ConversationState


class TurnState(TypedDict, total=False):
    """State that flows through one pipeline turn.

    Attributes:
        utterance: The worker's input for this turn
        history: Conversation turns recorded before this utterance
        session: Latest staged session snapshot
        intent: Classifier output
        retrieval: Primary procedure document and context
        navigation: Navigator reply and derived signals
        tool_results: Outcomes of the requested tool calls
        response_text: Reply composed so far
        incident: Incident built by the log node, if any
    """

    utterance: str
    history: list[ConversationMessage]
    session: ConversationState
    intent: IntentResult
    retrieval: RetrievalResult
    navigation: NavigationResult
    tool_results: list[ToolResult]
    response_text: str
    incident: IncidentLog | None
