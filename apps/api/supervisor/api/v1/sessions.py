"""Session introspection endpoints."""

from fastapi import APIRouter

from supervisor.core.deps import SessionStoreDep
from supervisor.schemas.session import ConversationState, SessionListResponse
from supervisor.services.session_store import SessionNotFoundError

router = APIRouter()


@router.get("", response_model=SessionListResponse, summary="List live sessions")
async def list_sessions(store: SessionStoreDep) -> SessionListResponse:
    sessions = await store.list_all()
    return SessionListResponse(sessions=sessions, count=len(sessions))


@router.get("/{call_id}", response_model=ConversationState, summary="Get a session")
async def get_session(call_id: str, store: SessionStoreDep) -> ConversationState:
    session = await store.get(call_id)
    if session is None:
        raise SessionNotFoundError(call_id)
    return session
