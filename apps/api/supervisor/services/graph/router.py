"""LangGraph conditional routing logic."""

from supervisor.services.graph.state import TurnState


def route_after_navigate(state: TurnState) -> str:
    """Run the executor only when the navigator asked for tools.

    Returns:
        The name of the next node to execute.
    """
    navigation = state.get("navigation")
    if navigation is not None and navigation.tool_calls:
        return "execute"
    return "update_session"
