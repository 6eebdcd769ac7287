"""Turn journal and quality incident records."""

import asyncio
import logging
import secrets
import time
from typing import Any

from supervisor.schemas.incident import IncidentLog
from supervisor.schemas.pipeline import Intent
from supervisor.schemas.session import ConversationState, MessageRole, SessionStatus, utcnow

logger = logging.getLogger(__name__)

DEFAULT_ISSUE_DESCRIPTION = "Quality issue reported"


class IncidentIndex:
    """Append-only, in-process collection of incident logs."""

    def __init__(self) -> None:
        self._logs: list[IncidentLog] = []
        self._by_id: dict[str, IncidentLog] = {}
        self._lock = asyncio.Lock()

    async def append(self, incident: IncidentLog) -> None:
        async with self._lock:
            if incident.log_id in self._by_id:
                raise ValueError(f"Incident already recorded: {incident.log_id}")
            self._logs.append(incident)
            self._by_id[incident.log_id] = incident

    async def get(self, log_id: str) -> IncidentLog | None:
        return self._by_id.get(log_id)

    async def list_all(self) -> list[IncidentLog]:
        return list(self._logs)


def generate_log_id() -> str:
    return f"INC-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def first_user_message(session: ConversationState) -> str:
    for message in session.conversation_history:
        if message.role == MessageRole.USER:
            return message.content
    return DEFAULT_ISSUE_DESCRIPTION


def measurements_snapshot(session: ConversationState) -> dict[str, Any]:
    """Flatten successful action results into ``<tool>.<field>`` keys."""
    snapshot: dict[str, Any] = {}
    for action in session.actions_executed:
        if not action.result:
            continue
        for field, value in action.result.items():
            snapshot[f"{action.tool_name}.{field}"] = value
    return snapshot


def resolution_time_seconds(session: ConversationState) -> int:
    elapsed = session.timestamp_last_update - session.timestamp_start
    return max(0, int(elapsed.total_seconds()))


def should_create_incident(intent: Intent, session: ConversationState) -> bool:
    return intent == Intent.QUALITY_ISSUE and bool(session.decision_history)


def build_incident(session: ConversationState, document_id: str) -> IncidentLog:
    return IncidentLog(
        log_id=generate_log_id(),
        session_id=session.session_id,
        timestamp=utcnow(),
        worker_name=session.worker_name,
        station=session.station,
        document_used=document_id,
        issue_description=first_user_message(session),
        measurements_snapshot=measurements_snapshot(session),
        decision=session.decision_history[-1].decision,
        actions_taken=tuple(a.tool_name for a in session.actions_executed),
        resolution_time_seconds=resolution_time_seconds(session),
        all_steps_completed=session.status == SessionStatus.COMPLETED,
        documentation_complete=True,
    )


class InteractionLogger:
    """Journals each turn and builds incident records for dispositions.

    Building and recording are separate: the pipeline builds the incident
    while the turn is staged and records it only once the session commit
    has gone through.
    """

    def __init__(self, index: IncidentIndex) -> None:
        self.index = index

    def log_interaction(
        self,
        session: ConversationState,
        intent: Intent,
        document_id: str,
        utterance: str,
        response_text: str,
    ) -> IncidentLog | None:
        """Journal the turn and return an incident if one is due.

        Args:
            session: The fully updated session for this turn
            intent: Classified intent of the utterance
            document_id: Document the turn was answered from
            utterance: Worker input
            response_text: Composed reply

        Returns:
            IncidentLog for a quality issue with a recorded decision, else None
        """
        logger.info(
            "Turn completed",
            extra={
                "session_id": session.session_id,
                "worker_name": session.worker_name,
                "station": session.station,
                "intent": intent.value,
                "document_id": document_id,
                "current_step": session.current_step,
                "status": session.status.value,
                "utterance": utterance,
                "response_text": response_text,
                "measurements": session.measurements,
            },
        )

        if not should_create_incident(intent, session):
            return None

        incident = build_incident(session, document_id)
        logger.info(
            "Incident created: log_id=%s, decision=%s",
            incident.log_id,
            incident.decision,
        )
        return incident

    async def record(self, incident: IncidentLog) -> None:
        await self.index.append(incident)
