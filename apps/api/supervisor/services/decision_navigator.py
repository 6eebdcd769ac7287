"""Decision navigation: the tool-enabled LLM step that walks the worker through a procedure.

The navigator's reply is free text. Decision outcome, next step and whether
the worker must answer are derived from that text with keyword and regex
heuristics. They are best-effort signals, not a parse: a reply that says
"do not quarantine yet" still reads as QUARANTINE, and a reply that mentions
"step 2" while discussing step 4 moves the session to step 2. Callers must
treat them accordingly.
"""

import asyncio
import json
import logging
import re
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.tools import BaseTool

from supervisor.core.config import settings
from supervisor.schemas.pipeline import (
    Decision,
    DecisionOutcome,
    NavigationResult,
    RetrievalResult,
    ToolCallRequest,
)
from supervisor.schemas.session import ConversationMessage, ConversationState, MessageRole
from supervisor.services.graph.prompts import NAVIGATOR_PROMPT
from supervisor.services.llm import get_chat_model
from supervisor.services.tools.measurement_tools import MEASUREMENT_TOOLS

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 5

NAVIGATOR_FALLBACK_RESPONSE = (
    "I'm having trouble processing that. Could you describe the issue again?"
)

# (outcome, keywords, criteria, reasoning), highest priority first
DECISION_RULES: list[tuple[DecisionOutcome, tuple[str, ...], str, str]] = [
    (
        DecisionOutcome.QUARANTINE,
        ("quarantine", "reject"),
        "Defect exceeds tolerance",
        "Measurements indicate defect exceeds acceptable tolerances",
    ),
    (
        DecisionOutcome.ACCEPT,
        ("accept", "within tolerance"),
        "Defect within tolerance",
        "Measurements indicate defect is within acceptable tolerances",
    ),
    (
        DecisionOutcome.ESCALATE,
        ("escalate", "supervisor"),
        "Requires expert review",
        "Issue requires human supervisor review",
    ),
]

CONFIRMATION_KEYWORDS = ("confirm", "verify", "check", "please", "can you")

STEP_PATTERN = re.compile(r"step (\d+)", re.IGNORECASE)


def extract_decision(text: str) -> Decision | None:
    """First keyword group found in the text decides the outcome."""
    lowered = text.lower()
    for outcome, keywords, criteria, reasoning in DECISION_RULES:
        if any(keyword in lowered for keyword in keywords):
            return Decision(outcome=outcome, criteria=criteria, reasoning=reasoning)
    return None


def extract_next_step(text: str, current_step: int | None) -> int | None:
    match = STEP_PATTERN.search(text)
    if match:
        return int(match.group(1))
    if current_step is not None:
        return current_step + 1
    return None


def requires_user_input(text: str, tool_calls: list[ToolCallRequest]) -> bool:
    # Pending tool results take precedence over asking the worker
    if tool_calls:
        return False
    if "?" in text:
        return True
    lowered = text.lower()
    return any(keyword in lowered for keyword in CONFIRMATION_KEYWORDS)


def extract_tool_calls(message: AIMessage) -> list[ToolCallRequest]:
    """Collect well-formed and malformed tool calls from the model reply."""
    calls = [
        ToolCallRequest(id=tc.get("id"), name=tc["name"], arguments=tc.get("args") or {})
        for tc in message.tool_calls
    ]
    # Calls whose arguments the provider could not decode keep their raw payload
    calls.extend(
        ToolCallRequest(
            id=tc.get("id"),
            name=tc.get("name") or "unknown",
            arguments=tc.get("args") or "",
        )
        for tc in message.invalid_tool_calls
    )
    return calls


def _history_message(message: ConversationMessage) -> BaseMessage:
    if message.role == MessageRole.ASSISTANT:
        return AIMessage(content=message.content)
    if message.role == MessageRole.SYSTEM:
        return SystemMessage(content=message.content)
    return HumanMessage(content=message.content)


def build_system_prompt(retrieval: RetrievalResult, session: ConversationState) -> str:
    return NAVIGATOR_PROMPT.format(
        document_id=retrieval.document_id,
        document_title=retrieval.document_title,
        current_step=session.current_step if session.current_step is not None else "Not started",
        worker_name=session.worker_name,
        station=session.station,
        measurements=json.dumps(session.measurements, indent=2, default=str),
        context=retrieval.assembled_context or "No procedure content available.",
    )


def build_messages(
    utterance: str,
    retrieval: RetrievalResult,
    session: ConversationState,
    history: list[ConversationMessage],
) -> list[BaseMessage]:
    """System prompt, the last few prior turns, then the current utterance."""
    messages: list[BaseMessage] = [SystemMessage(content=build_system_prompt(retrieval, session))]
    messages.extend(_history_message(m) for m in history[-HISTORY_WINDOW:])
    messages.append(HumanMessage(content=utterance))
    return messages


def fallback_navigation() -> NavigationResult:
    return NavigationResult(
        response_text=NAVIGATOR_FALLBACK_RESPONSE,
        tool_calls=[],
        requires_user_input=True,
    )


class DecisionNavigator:
    """Calls the completion provider with the measurement tools bound."""

    def __init__(
        self,
        llm: BaseChatModel | None = None,
        tools: list[BaseTool] | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._llm = llm
        self.tools = list(tools or MEASUREMENT_TOOLS)
        self.timeout_seconds = timeout_seconds or settings.provider_timeout_seconds

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = get_chat_model(
                settings.navigator_model,
                settings.navigator_temperature,
                settings.navigator_max_tokens,
            )
        return self._llm

    async def navigate(
        self,
        utterance: str,
        retrieval: RetrievalResult,
        session: ConversationState,
        history: list[ConversationMessage] | None = None,
    ) -> NavigationResult:
        """Ask the model for the next move.

        Args:
            utterance: The worker's current utterance
            retrieval: Procedure context for the prompt
            session: Session snapshot used for the summary and current step
            history: Prior conversation turns, excluding ``utterance``

        Returns:
            NavigationResult; the fixed fallback if the provider fails
        """
        if history is None:
            history = session.conversation_history
        messages = build_messages(utterance, retrieval, session, history)
        logger.info("Calling decision navigator with %d messages", len(messages))

        try:
            bound_llm: Any = self.llm.bind_tools(self.tools, tool_choice="auto")
            async with asyncio.timeout(self.timeout_seconds):
                response: AIMessage = await bound_llm.ainvoke(messages)
        except Exception:
            logger.exception("Decision navigator provider call failed")
            return fallback_navigation()

        text = response.content if isinstance(response.content, str) else ""
        tool_calls = extract_tool_calls(response)

        result = NavigationResult(
            response_text=text,
            next_step=extract_next_step(text, session.current_step),
            tool_calls=tool_calls,
            decision=extract_decision(text),
            requires_user_input=requires_user_input(text, tool_calls),
        )
        logger.info(
            "Navigator reply: tool_calls=%s, decision=%s, next_step=%s",
            [c.name for c in tool_calls],
            result.decision.outcome.value if result.decision else None,
            result.next_step,
        )
        return result
