"""LangGraph node functions for the turn pipeline.

Nodes only read the staged session from state and write through the
turn's ``SessionTransaction``; nothing reaches storage until the pipeline
commits.
"""

import logging
from typing import Any

from supervisor.schemas.pipeline import DecisionOutcome, Intent, NavigationResult
from supervisor.schemas.session import SessionStatus
from supervisor.services.action_executor import (
    ActionExecutor,
    extract_measurements,
    format_tool_results,
)
from supervisor.services.decision_navigator import NAVIGATOR_FALLBACK_RESPONSE, DecisionNavigator
from supervisor.services.graph.state import TurnState
from supervisor.services.intent_classifier import IntentClassifier
from supervisor.services.interaction_logger import InteractionLogger
from supervisor.services.procedure_retriever import ProcedureRetriever
from supervisor.services.session_store import SessionTransaction

logger = logging.getLogger(__name__)

# Outcomes that park the session until the worker acts on the disposition
AWAITING_INPUT_OUTCOMES = frozenset({DecisionOutcome.QUARANTINE, DecisionOutcome.ACCEPT})


def compose_response(response_text: str, tool_narrative: str = "") -> str:
    """Join navigator text and tool narrative; never returns an empty reply."""
    parts = [p.strip() for p in (response_text, tool_narrative) if p and p.strip()]
    return "\n\n".join(parts) or NAVIGATOR_FALLBACK_RESPONSE


def decision_step(navigation: NavigationResult, current_step: int | None) -> int:
    if navigation.next_step is not None:
        return navigation.next_step
    if current_step is not None:
        return current_step
    return 0


def next_status(
    status: SessionStatus,
    intent: Intent,
    navigation: NavigationResult,
) -> SessionStatus:
    decision = navigation.decision
    if decision is not None:
        if decision.outcome in AWAITING_INPUT_OUTCOMES:
            return SessionStatus.AWAITING_INPUT
        return SessionStatus.ESCALATED
    if intent == Intent.CONFIRMATION and status == SessionStatus.AWAITING_INPUT:
        return SessionStatus.COMPLETED
    return status


async def classify_node(state: TurnState, *, classifier: IntentClassifier) -> dict[str, Any]:
    intent = await classifier.classify(state["utterance"], state["session"])
    return {"intent": intent}


async def retrieve_node(state: TurnState, *, retriever: ProcedureRetriever) -> dict[str, Any]:
    retrieval = await retriever.retrieve(state["utterance"], state["intent"])
    return {"retrieval": retrieval}


async def navigate_node(state: TurnState, *, navigator: DecisionNavigator) -> dict[str, Any]:
    navigation = await navigator.navigate(
        state["utterance"],
        state["retrieval"],
        state["session"],
        history=state.get("history", []),
    )
    return {
        "navigation": navigation,
        "response_text": compose_response(navigation.response_text),
    }


async def execute_node(state: TurnState, *, executor: ActionExecutor) -> dict[str, Any]:
    """Run the requested tools and fold their narrative into the reply."""
    navigation = state["navigation"]
    results = await executor.execute(navigation.tool_calls)
    failures = sum(1 for r in results if r.error)
    logger.info("Executed %d tool calls, %d failed", len(results), failures)
    return {
        "tool_results": results,
        "response_text": compose_response(navigation.response_text, format_tool_results(results)),
    }


async def update_session_node(state: TurnState, *, txn: SessionTransaction) -> dict[str, Any]:
    """Apply the turn's outcome to the staged session."""
    retrieval = state["retrieval"]
    navigation = state["navigation"]
    intent = state["intent"].intent
    session = txn.session

    changes: dict[str, Any] = {}
    if retrieval.found:
        changes["current_document_id"] = retrieval.document_id
    if navigation.next_step is not None:
        changes["current_step"] = navigation.next_step
    status = next_status(session.status, intent, navigation)
    if status != session.status:
        changes["status"] = status
    if changes:
        txn.update(**changes)

    for result in state.get("tool_results", []):
        txn.append_action(result.tool_name, result.parameters, None if result.error else result.result)
        measurements = extract_measurements(result)
        if measurements:
            txn.merge_measurements(measurements)

    if navigation.decision is not None:
        decision = navigation.decision
        txn.append_decision(
            decision_step(navigation, session.current_step),
            f"{decision.outcome.value}: {decision.reasoning}",
        )

    return {"session": txn.session}


async def log_node(state: TurnState, *, interaction_logger: InteractionLogger) -> dict[str, Any]:
    incident = interaction_logger.log_interaction(
        state["session"],
        state["intent"].intent,
        state["retrieval"].document_id,
        state["utterance"],
        state["response_text"],
    )
    return {"incident": incident}
