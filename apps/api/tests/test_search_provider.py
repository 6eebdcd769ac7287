"""Tests for the pgvector search provider and query embeddings."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from supervisor.models.procedure import EMBEDDING_DIMENSIONS, ChunkType
from supervisor.services.embedding_service import EMBEDDING_MODEL, EmbeddingService
from supervisor.services.search_provider import PgVectorSearchProvider, SearchHit


@pytest.fixture
def mock_embedding() -> list[float]:
    return [0.1] * EMBEDDING_DIMENSIONS


class TestEmbeddingService:
    """Tests for EmbeddingService."""

    @pytest.mark.asyncio
    async def test_generate_embedding(self, mock_embedding: list[float]) -> None:
        service = EmbeddingService()
        service.client = MagicMock()
        service.client.embeddings.create = AsyncMock(
            return_value=SimpleNamespace(data=[SimpleNamespace(embedding=mock_embedding)])
        )

        embedding = await service.generate_embedding("scratches on rotor")

        assert embedding == mock_embedding
        service.client.embeddings.create.assert_awaited_once_with(
            input="scratches on rotor", model=EMBEDDING_MODEL
        )


class TestPgVectorSearchProvider:
    """Tests for row mapping with a mocked database session."""

    @pytest.mark.asyncio
    async def test_maps_rows_to_hits(self, mock_embedding: list[float]) -> None:
        rows = [
            SimpleNamespace(
                document_id="SOP-QC-015",
                document_title="Surface Defect Evaluation",
                text="Measure depth.",
                chunk_type=ChunkType.STEP,
                step_number=2,
                distance=0.125,
            ),
            SimpleNamespace(
                document_id="SOP-QC-015",
                document_title="Surface Defect Evaluation",
                text="Wear gloves.",
                chunk_type=ChunkType.WARNING,
                step_number=None,
                distance=0.3,
            ),
        ]
        db = MagicMock()
        db.execute = AsyncMock(return_value=MagicMock(fetchall=MagicMock(return_value=rows)))
        session_cm = MagicMock()
        session_cm.__aenter__ = AsyncMock(return_value=db)
        session_cm.__aexit__ = AsyncMock(return_value=None)
        session_factory = MagicMock(return_value=session_cm)

        embedding_service = MagicMock()
        embedding_service.generate_embedding = AsyncMock(return_value=mock_embedding)

        provider = PgVectorSearchProvider(session_factory, embedding_service=embedding_service)
        hits = await provider.search("scratches", limit=10)

        assert hits == [
            SearchHit("SOP-QC-015", "Surface Defect Evaluation", "Measure depth.", "step", 2, 0.125),
            SearchHit("SOP-QC-015", "Surface Defect Evaluation", "Wear gloves.", "warning", None, 0.3),
        ]
        embedding_service.generate_embedding.assert_awaited_once_with("scratches")
        db.execute.assert_awaited_once()
