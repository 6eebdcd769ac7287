"""Pipeline service orchestrating one supervisor turn per worker utterance."""

import logging

from supervisor.core.logging_config import call_id_var
from supervisor.schemas.incident import IncidentLog
from supervisor.schemas.pipeline import MAX_UTTERANCE_LENGTH, TurnRequest, TurnResponse
from supervisor.schemas.session import ConversationState, MessageRole
from supervisor.services.action_executor import ActionExecutor
from supervisor.services.decision_navigator import DecisionNavigator
from supervisor.services.graph.workflow import create_turn_graph
from supervisor.services.intent_classifier import IntentClassifier
from supervisor.services.interaction_logger import InteractionLogger
from supervisor.services.procedure_retriever import ProcedureRetriever
from supervisor.services.session_store import SessionExistsError, SessionStore

logger = logging.getLogger(__name__)

PIPELINE_FAILURE_RESPONSE = (
    "I'm experiencing technical difficulties. Let me connect you with a supervisor."
)
EMPTY_TRANSCRIPT_RESPONSE = "I didn't catch that. Could you repeat?"
CALL_START_GREETING = (
    "Hi, this is your AI Supervisor. I'm here to help you with any questions about "
    "procedures, quality issues, or equipment. What can I help you with today?"
)


class PipelineService:
    """Runs turns through the LangGraph pipeline and commits them atomically."""

    def __init__(
        self,
        store: SessionStore,
        interaction_logger: InteractionLogger,
        classifier: IntentClassifier | None = None,
        retriever: ProcedureRetriever | None = None,
        navigator: DecisionNavigator | None = None,
        executor: ActionExecutor | None = None,
    ) -> None:
        self.store = store
        self.interaction_logger = interaction_logger
        self.classifier = classifier or IntentClassifier()
        self.retriever = retriever or ProcedureRetriever()
        self.navigator = navigator or DecisionNavigator()
        self.executor = executor or ActionExecutor()

    async def run_turn(self, request: TurnRequest) -> TurnResponse:
        """Process one utterance and return the composed reply.

        This is the main entry point for a turn. It:
        1. Gets or creates the call's session
        2. Opens a session transaction for the whole turn
        3. Appends the utterance and runs classify → retrieve → navigate
           → (execute) → update_session → log
        4. Appends the reply and commits
        5. Records any incident once the commit has succeeded

        Never raises. On failure the staged changes are discarded and the
        apology is returned with the pre-turn session.

        Args:
            request: Utterance and call id

        Returns:
            TurnResponse with the reply and updated session
        """
        call_id_var.set(request.call_id)
        snapshot: ConversationState | None = None
        try:
            snapshot = await self.store.get_or_create(request.call_id)
            async with self.store.transaction(request.call_id) as txn:
                snapshot = txn.session.model_copy(deep=True)

                # History BEFORE the new utterance goes in
                history = list(txn.session.conversation_history)
                txn.append_message(MessageRole.USER, request.utterance)

                graph = create_turn_graph(
                    classifier=self.classifier,
                    retriever=self.retriever,
                    navigator=self.navigator,
                    executor=self.executor,
                    interaction_logger=self.interaction_logger,
                    txn=txn,
                )
                final_state = await graph.ainvoke(
                    {
                        "utterance": request.utterance,
                        "history": history,
                        "session": txn.session,
                        "tool_results": [],
                        "response_text": "",
                        "incident": None,
                    }
                )

                response_text: str = final_state["response_text"]
                txn.append_message(MessageRole.ASSISTANT, response_text)
        except Exception as e:
            logger.exception("Pipeline turn failed for call %s", request.call_id)
            return TurnResponse(
                response_text=PIPELINE_FAILURE_RESPONSE,
                session=snapshot,
                error=str(e) or type(e).__name__,
            )

        incident: IncidentLog | None = final_state.get("incident")
        if incident is not None:
            await self._record_incident(incident)

        return TurnResponse(response_text=response_text, session=txn.session)

    async def _record_incident(self, incident: IncidentLog) -> None:
        # The turn is already committed at this point
        try:
            await self.interaction_logger.record(incident)
        except Exception:
            logger.exception("Failed to record incident %s", incident.log_id)

    # --- Voice call lifecycle ---

    async def start_call(self, call_id: str) -> str:
        """Open a session for a new call and return the greeting."""
        call_id_var.set(call_id)
        try:
            await self.store.create(call_id)
        except SessionExistsError:
            logger.info("Call %s already has a session, keeping it", call_id)
        return CALL_START_GREETING

    async def handle_transcript(self, call_id: str, text: str) -> str:
        """Run a turn for a transcribed utterance and return the reply text."""
        utterance = text.strip()
        if not utterance:
            return EMPTY_TRANSCRIPT_RESPONSE
        response = await self.run_turn(
            TurnRequest(utterance=utterance[:MAX_UTTERANCE_LENGTH], call_id=call_id)
        )
        return response.response_text

    async def end_call(self, call_id: str) -> bool:
        """Drop the call's session. Returns False if there was none."""
        call_id_var.set(call_id)
        return await self.store.delete(call_id)
