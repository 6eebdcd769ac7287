"""Pytest configuration and fixtures for the QC Supervisor API test suite.

Provides:
- In-memory session store and incident index per test
- Mock Redis (fakeredis)
- Mock chat models (LangChain AIMessage replies) and similarity search
- A pipeline service wired to the mocks
- An httpx client with the app's singletons overridden
- Disabled rate limiting
"""

import json
import os
from collections.abc import AsyncGenerator, Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import fakeredis.aioredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from langchain_core.messages import AIMessage

# The OpenAI SDK rejects an empty API key at client construction; tests never
# reach the network, so provide a placeholder before settings are loaded.
os.environ.setdefault("OPENAI_API_KEY", "test-key")

from supervisor.core.database import get_async_session
from supervisor.core.deps import get_incident_index, get_pipeline_service, get_session_store
from supervisor.core.rate_limit import limiter
from supervisor.main import app
from supervisor.services.action_executor import ActionExecutor
from supervisor.services.decision_navigator import DecisionNavigator
from supervisor.services.intent_classifier import IntentClassifier
from supervisor.services.interaction_logger import IncidentIndex, InteractionLogger
from supervisor.services.pipeline_service import PipelineService
from supervisor.services.procedure_retriever import ProcedureRetriever
from supervisor.services.search_provider import SearchHit
from supervisor.services.session_store import SessionStore

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False


# ---------------------------------------------------------------------------
# Fake Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


# ---------------------------------------------------------------------------
# Session store & incident index
# ---------------------------------------------------------------------------


@pytest.fixture
def session_store() -> SessionStore:
    """Fresh in-memory session store."""
    return SessionStore()


@pytest.fixture
def incident_index() -> IncidentIndex:
    return IncidentIndex()


@pytest.fixture
def interaction_logger(incident_index: IncidentIndex) -> InteractionLogger:
    return InteractionLogger(incident_index)


# ---------------------------------------------------------------------------
# Chat model mocks
# ---------------------------------------------------------------------------


@pytest.fixture
def chat_model_factory() -> Callable[..., MagicMock]:
    """Build a mock chat model that answers with the given replies in order.

    Each reply is an AIMessage, a plain string (wrapped in an AIMessage), or
    an exception to raise. ``bind_tools`` returns the same mock so the tool-
    bound and plain models share the reply queue.

    Usage:
        llm = chat_model_factory("first reply", AIMessage(content="second"))
    """

    def _factory(*replies: Any) -> MagicMock:
        side_effect = [AIMessage(content=r) if isinstance(r, str) else r for r in replies]
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=side_effect)
        llm.bind_tools = MagicMock(return_value=llm)
        return llm

    return _factory


def classification_reply(intent: str = "quality_issue", confidence: float = 0.92) -> str:
    return json.dumps(
        {
            "intent": intent,
            "confidence": confidence,
            "extracted_entities": {
                "part_type": "brake rotor",
                "issue_type": "scratches",
                "location": "Line 3",
            },
        }
    )


@pytest.fixture
def quality_issue_reply() -> str:
    """Classifier JSON for a brake rotor quality issue."""
    return classification_reply()


@pytest.fixture
def classification_reply_factory() -> Callable[..., str]:
    return classification_reply


# ---------------------------------------------------------------------------
# Similarity search mocks
# ---------------------------------------------------------------------------


@pytest.fixture
def surface_defect_hits() -> list[SearchHit]:
    """Provider results: three chunks of SOP-QC-015 out of order, one stray document."""
    return [
        SearchHit("SOP-QC-015", "Surface Defect Evaluation", "Measure depth with the gauge.", "step", 2, 0.12),
        SearchHit("SOP-QC-007", "Rotor Handling", "Wear gloves when handling rotors.", "warning", None, 0.18),
        SearchHit("SOP-QC-015", "Surface Defect Evaluation", "Visually inspect the rotor face.", "step", 1, 0.2),
        SearchHit("SOP-QC-015", "Surface Defect Evaluation", "Quarantine if depth exceeds 0.02mm.", "decision", 3, 0.25),
    ]


@pytest.fixture
def search_provider(surface_defect_hits: list[SearchHit]) -> MagicMock:
    provider = MagicMock()
    provider.search = AsyncMock(return_value=surface_defect_hits)
    return provider


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


@pytest.fixture
def pipeline_factory(
    session_store: SessionStore,
    interaction_logger: InteractionLogger,
    search_provider: MagicMock,
    chat_model_factory: Callable[..., MagicMock],
) -> Callable[..., PipelineService]:
    """Build a pipeline service over mocks.

    Usage:
        service = pipeline_factory(
            classifier_replies=[quality_issue_reply],
            navigator_replies=["Step 1: inspect the rotor. What do you see?"],
        )
    """

    def _factory(
        classifier_replies: list[Any] | None = None,
        navigator_replies: list[Any] | None = None,
        provider: Any = None,
    ) -> PipelineService:
        return PipelineService(
            store=session_store,
            interaction_logger=interaction_logger,
            classifier=IntentClassifier(llm=chat_model_factory(*(classifier_replies or []))),
            retriever=ProcedureRetriever(provider=provider or search_provider),
            navigator=DecisionNavigator(llm=chat_model_factory(*(navigator_replies or []))),
            executor=ActionExecutor(),
        )

    return _factory


# ---------------------------------------------------------------------------
# Test clients
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_db_session() -> MagicMock:
    """Database session whose queries succeed."""
    db = MagicMock()
    db.execute = AsyncMock(return_value=None)
    return db


@pytest_asyncio.fixture
async def client_factory(
    session_store: SessionStore,
    incident_index: IncidentIndex,
    mock_db_session: MagicMock,
) -> AsyncGenerator[Callable[[PipelineService], AsyncClient], None]:
    """Yield a factory producing clients bound to a given pipeline service."""
    clients: list[AsyncClient] = []

    async def _override_session() -> AsyncGenerator[MagicMock, None]:
        yield mock_db_session

    def _factory(service: PipelineService) -> AsyncClient:
        app.dependency_overrides[get_session_store] = lambda: session_store
        app.dependency_overrides[get_incident_index] = lambda: incident_index
        app.dependency_overrides[get_pipeline_service] = lambda: service
        app.dependency_overrides[get_async_session] = _override_session
        ac = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(ac)
        return ac

    yield _factory

    for ac in clients:
        await ac.aclose()
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
