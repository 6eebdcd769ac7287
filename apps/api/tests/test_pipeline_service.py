"""Tests for the pipeline service: full turns, atomic commits, and call lifecycle."""

from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.messages import AIMessage

from supervisor.schemas.pipeline import TurnRequest
from supervisor.schemas.session import MessageRole, SessionStatus
from supervisor.services.interaction_logger import IncidentIndex
from supervisor.services.pipeline_service import (
    CALL_START_GREETING,
    EMPTY_TRANSCRIPT_RESPONSE,
    PIPELINE_FAILURE_RESPONSE,
    PipelineService,
)
from supervisor.services.session_store import SessionStore

TEST_CALL_ID = "call-test-001"
BRAKE_ROTOR_UTTERANCE = "I'm seeing scratches on these brake rotors from Line 3"


class TestRunTurn:
    """Tests for a single supervisor turn."""

    @pytest.mark.asyncio
    async def test_brake_rotor_scenario(
        self,
        pipeline_factory: Callable[..., PipelineService],
        quality_issue_reply: str,
        search_provider: MagicMock,
    ) -> None:
        """A fresh call reporting scratches is guided into the procedure."""
        service = pipeline_factory(
            classifier_replies=[quality_issue_reply],
            navigator_replies=[
                "Thanks Jake. Let's start with Step 1: visually inspect the rotor face. "
                "Where exactly are the scratches?"
            ],
        )

        response = await service.run_turn(
            TurnRequest(utterance=BRAKE_ROTOR_UTTERANCE, call_id=TEST_CALL_ID)
        )

        assert response.error is None
        assert response.response_text
        session = response.session
        assert session is not None
        assert session.current_document_id == "SOP-QC-015"
        assert session.current_document_id != "NONE"
        assert session.current_step == 1
        assert [m.role for m in session.conversation_history] == [
            MessageRole.USER,
            MessageRole.ASSISTANT,
        ]
        assert session.conversation_history[0].content == BRAKE_ROTOR_UTTERANCE
        search_provider.search.assert_awaited_once()
        assert "brake rotor" in search_provider.search.call_args.args[0]

    @pytest.mark.asyncio
    async def test_step_progresses_from_undefined(
        self,
        pipeline_factory: Callable[..., PipelineService],
        session_store: SessionStore,
        quality_issue_reply: str,
    ) -> None:
        service = pipeline_factory(
            classifier_replies=[quality_issue_reply, quality_issue_reply],
            navigator_replies=["Tell me more about the part.", "Step 2: measure the depth."],
        )

        first = await service.run_turn(TurnRequest(utterance=BRAKE_ROTOR_UTTERANCE, call_id="call-x"))
        assert first.session is not None
        assert first.session.current_step is None

        second = await service.run_turn(TurnRequest(utterance="It's on the edge", call_id="call-x"))
        assert second.session is not None
        assert second.session.current_step == 2

        stored = await session_store.get("call-x")
        assert stored is not None
        assert len(stored.conversation_history) == 4

    @pytest.mark.asyncio
    async def test_history_excludes_current_utterance(
        self,
        pipeline_factory: Callable[..., PipelineService],
        quality_issue_reply: str,
    ) -> None:
        service = pipeline_factory(
            classifier_replies=[quality_issue_reply, quality_issue_reply],
            navigator_replies=["First reply.", "Second reply."],
        )
        await service.run_turn(TurnRequest(utterance="first", call_id="call-h"))

        await service.run_turn(TurnRequest(utterance="second", call_id="call-h"))

        messages = service.navigator.llm.ainvoke.call_args.args[0]
        assert [m.content for m in messages[1:]] == ["first", "First reply.", "second"]

    @pytest.mark.asyncio
    async def test_tool_turn_updates_measurements(
        self,
        pipeline_factory: Callable[..., PipelineService],
        quality_issue_reply: str,
    ) -> None:
        reply = AIMessage(
            content="Measuring the depth and checking the pattern now.",
            tool_calls=[
                {"id": "t1", "name": "measureDefectDepth", "args": {"location": "edge", "defect_type": "pit"}},
                {"id": "t2", "name": "analyzeDefectPattern", "args": {"defect_description": "random pitting"}},
                {"id": "t3", "name": "checkSurfaceRoughness", "args": {}},
            ],
        )
        service = pipeline_factory(classifier_replies=[quality_issue_reply], navigator_replies=[reply])

        response = await service.run_turn(TurnRequest(utterance="pits on the edge", call_id="call-t"))

        session = response.session
        assert session is not None
        assert len(session.actions_executed) == 3
        assert session.actions_executed[2].result is None
        assert set(session.measurements) == {"defect_depth", "defect_pattern"}
        assert session.measurements["defect_pattern"] == "random"
        assert "Error executing checkSurfaceRoughness" in response.response_text
        assert response.response_text.startswith("Measuring the depth")

    @pytest.mark.asyncio
    async def test_provider_outage_still_answers(
        self,
        pipeline_factory: Callable[..., PipelineService],
    ) -> None:
        """Classifier and navigator outages degrade to fallbacks, not errors."""
        provider = MagicMock()
        provider.search = AsyncMock(side_effect=ConnectionError("index down"))
        service = pipeline_factory(
            classifier_replies=[ConnectionError("llm down")],
            navigator_replies=[ConnectionError("llm down")],
            provider=provider,
        )

        response = await service.run_turn(TurnRequest(utterance="scratches", call_id="call-o"))

        assert response.error is None
        assert response.response_text == (
            "I'm having trouble processing that. Could you describe the issue again?"
        )
        assert response.session is not None
        assert response.session.current_document_id == "SOP-QC-015"


class TestIncidents:
    """Tests for incident materialization through full turns."""

    @pytest.mark.asyncio
    async def test_no_incident_until_decision(
        self,
        pipeline_factory: Callable[..., PipelineService],
        incident_index: IncidentIndex,
        quality_issue_reply: str,
    ) -> None:
        service = pipeline_factory(
            classifier_replies=[quality_issue_reply, quality_issue_reply],
            navigator_replies=[
                "Step 1: where are the scratches?",
                "At 0.025mm this exceeds the limit. Quarantine the rotor, Step 5.",
            ],
        )

        await service.run_turn(TurnRequest(utterance=BRAKE_ROTOR_UTTERANCE, call_id="call-i"))
        assert await incident_index.list_all() == []

        response = await service.run_turn(TurnRequest(utterance="It's 0.025mm deep", call_id="call-i"))

        incidents = await incident_index.list_all()
        assert len(incidents) == 1
        incident = incidents[0]
        assert incident.decision.startswith("QUARANTINE: ")
        assert incident.issue_description == BRAKE_ROTOR_UTTERANCE
        assert incident.resolution_time_seconds >= 0
        assert incident.document_used == "SOP-QC-015"
        assert response.session is not None
        assert response.session.status == SessionStatus.AWAITING_INPUT
        assert response.session.decision_history[0].step == 5

    @pytest.mark.asyncio
    async def test_confirmation_completes_session(
        self,
        pipeline_factory: Callable[..., PipelineService],
        quality_issue_reply: str,
        classification_reply_factory: Callable[..., str],
    ) -> None:
        service = pipeline_factory(
            classifier_replies=[quality_issue_reply, classification_reply_factory("confirmation")],
            navigator_replies=["Quarantine the rotor.", "Thanks, logged as done."],
        )
        await service.run_turn(TurnRequest(utterance="0.03mm deep", call_id="call-c"))

        response = await service.run_turn(TurnRequest(utterance="Done, it's tagged", call_id="call-c"))

        assert response.session is not None
        assert response.session.status == SessionStatus.COMPLETED


class TestTurnFailure:
    """Tests for the all-or-nothing turn commit."""

    @pytest.mark.asyncio
    async def test_failure_returns_apology_and_pre_turn_snapshot(
        self,
        pipeline_factory: Callable[..., PipelineService],
        session_store: SessionStore,
        incident_index: IncidentIndex,
        quality_issue_reply: str,
    ) -> None:
        service = pipeline_factory(
            classifier_replies=[quality_issue_reply, quality_issue_reply],
            navigator_replies=["Step 1: where?", "Quarantine it."],
        )
        first = await service.run_turn(TurnRequest(utterance="scratches", call_id="call-f"))
        assert first.session is not None

        with patch.object(
            service.interaction_logger,
            "log_interaction",
            side_effect=RuntimeError("journal unavailable"),
        ):
            response = await service.run_turn(TurnRequest(utterance="0.03mm", call_id="call-f"))

        assert response.response_text == PIPELINE_FAILURE_RESPONSE
        assert response.error == "journal unavailable"
        assert response.session == first.session

        stored = await session_store.get("call-f")
        assert stored == first.session
        assert stored is not None
        assert stored.decision_history == []
        assert await incident_index.list_all() == []

    @pytest.mark.asyncio
    async def test_failure_on_new_call_keeps_empty_session(
        self,
        pipeline_factory: Callable[..., PipelineService],
        session_store: SessionStore,
    ) -> None:
        service = pipeline_factory()

        with patch.object(service.retriever, "retrieve", side_effect=RuntimeError("boom")):
            response = await service.run_turn(TurnRequest(utterance="hello", call_id="call-n"))

        assert response.error == "boom"
        assert response.session is not None
        assert response.session.conversation_history == []
        stored = await session_store.get("call-n")
        assert stored is not None
        assert stored.conversation_history == []


class TestCallLifecycle:
    """Tests for voice call start, transcript, and end."""

    @pytest.mark.asyncio
    async def test_start_call_creates_session(
        self,
        pipeline_factory: Callable[..., PipelineService],
        session_store: SessionStore,
    ) -> None:
        service = pipeline_factory()

        greeting = await service.start_call("call-v")

        assert greeting == CALL_START_GREETING
        assert await session_store.get("call-v") is not None

    @pytest.mark.asyncio
    async def test_start_call_keeps_existing_session(
        self,
        pipeline_factory: Callable[..., PipelineService],
        session_store: SessionStore,
    ) -> None:
        service = pipeline_factory()
        existing = await session_store.get_or_create("call-v")

        await service.start_call("call-v")

        session = await session_store.get("call-v")
        assert session is not None
        assert session.session_id == existing.session_id

    @pytest.mark.asyncio
    async def test_empty_transcript(
        self,
        pipeline_factory: Callable[..., PipelineService],
        session_store: SessionStore,
    ) -> None:
        service = pipeline_factory()

        assert await service.handle_transcript("call-v", "   ") == EMPTY_TRANSCRIPT_RESPONSE
        assert await session_store.get("call-v") is None

    @pytest.mark.asyncio
    async def test_transcript_runs_turn(
        self,
        pipeline_factory: Callable[..., PipelineService],
        quality_issue_reply: str,
    ) -> None:
        service = pipeline_factory(
            classifier_replies=[quality_issue_reply],
            navigator_replies=["Step 1: inspect the face. What do you see?"],
        )

        reply = await service.handle_transcript("call-v", BRAKE_ROTOR_UTTERANCE)

        assert reply == "Step 1: inspect the face. What do you see?"

    @pytest.mark.asyncio
    async def test_end_call_deletes_session(
        self,
        pipeline_factory: Callable[..., PipelineService],
        session_store: SessionStore,
    ) -> None:
        service = pipeline_factory()
        await service.start_call("call-v")

        assert await service.end_call("call-v") is True
        assert await session_store.get("call-v") is None
        assert await service.end_call("call-v") is False
