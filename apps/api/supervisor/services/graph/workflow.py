"""LangGraph workflow definition for one supervisor turn."""

import logging
from typing import Any

from langgraph.graph import END, StateGraph

from supervisor.services.action_executor import ActionExecutor
from supervisor.services.decision_navigator import DecisionNavigator
from supervisor.services.graph.nodes import (
    classify_node,
    execute_node,
    log_node,
    navigate_node,
    retrieve_node,
    update_session_node,
)
from supervisor.services.graph.router import route_after_navigate
from supervisor.services.graph.state import TurnState
from supervisor.services.intent_classifier import IntentClassifier
from supervisor.services.interaction_logger import InteractionLogger
from supervisor.services.procedure_retriever import ProcedureRetriever
from supervisor.services.session_store import SessionTransaction

logger = logging.getLogger(__name__)


def create_turn_graph(
    classifier: IntentClassifier,
    retriever: ProcedureRetriever,
    navigator: DecisionNavigator,
    executor: ActionExecutor,
    interaction_logger: InteractionLogger,
    txn: SessionTransaction,
) -> Any:
    """Build and compile the pipeline for a single turn.

    Args:
        classifier: Intent classifier
        retriever: Procedure retriever
        navigator: Decision navigator
        executor: Tool dispatcher
        interaction_logger: Turn journal and incident builder
        txn: The turn's open session transaction

    Returns:
        Compiled LangGraph workflow
    """

    # Create node functions with bound arguments
    async def _classify_node(state: TurnState) -> dict[str, Any]:
        return await classify_node(state, classifier=classifier)

    async def _retrieve_node(state: TurnState) -> dict[str, Any]:
        return await retrieve_node(state, retriever=retriever)

    async def _navigate_node(state: TurnState) -> dict[str, Any]:
        return await navigate_node(state, navigator=navigator)

    async def _execute_node(state: TurnState) -> dict[str, Any]:
        return await execute_node(state, executor=executor)

    async def _update_session_node(state: TurnState) -> dict[str, Any]:
        return await update_session_node(state, txn=txn)

    async def _log_node(state: TurnState) -> dict[str, Any]:
        return await log_node(state, interaction_logger=interaction_logger)

    graph = StateGraph(TurnState)

    graph.add_node("classify", _classify_node)
    graph.add_node("retrieve", _retrieve_node)
    graph.add_node("navigate", _navigate_node)
    graph.add_node("execute", _execute_node)
    graph.add_node("update_session", _update_session_node)
    graph.add_node("log", _log_node)

    graph.set_entry_point("classify")
    graph.add_edge("classify", "retrieve")
    graph.add_edge("retrieve", "navigate")

    # Tools only when the navigator requested them
    graph.add_conditional_edges(
        "navigate",
        route_after_navigate,
        {
            "execute": "execute",
            "update_session": "update_session",
        },
    )

    graph.add_edge("execute", "update_session")
    graph.add_edge("update_session", "log")
    graph.add_edge("log", END)

    return graph.compile()
