"""Nearest-neighbour search over indexed procedure chunks."""

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supervisor.models.procedure import ProcedureChunk
from supervisor.services.embedding_service import EmbeddingService, get_embedding_service


@dataclass
class SearchHit:
    """A chunk returned by the similarity index, best match first."""

    document_id: str
    document_title: str
    text: str
    chunk_type: str
    step_number: int | None
    distance: float


class SimilaritySearchProvider(Protocol):
    """Black-box nearest-neighbour search."""

    async def search(self, query: str, limit: int) -> list[SearchHit]: ...


class PgVectorSearchProvider:
    """Cosine-distance search using pgvector."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedding_service: EmbeddingService | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.embedding_service = embedding_service or get_embedding_service()

    async def search(self, query: str, limit: int) -> list[SearchHit]:
        """Return the ``limit`` chunks nearest to ``query``.

        Args:
            query: Free-text search query
            limit: Maximum number of chunks to return

        Returns:
            Hits sorted by ascending cosine distance
        """
        query_embedding = await self.embedding_service.generate_embedding(query)
        distance = ProcedureChunk.embedding.cosine_distance(query_embedding)

        stmt = (
            select(
                ProcedureChunk.document_id,
                ProcedureChunk.document_title,
                ProcedureChunk.text,
                ProcedureChunk.chunk_type,
                ProcedureChunk.step_number,
                distance.label("distance"),
            )
            .where(ProcedureChunk.embedding.isnot(None))
            .order_by(distance)
            .limit(limit)
        )

        async with self.session_factory() as db:
            result = await db.execute(stmt)
            rows = result.fetchall()

        return [
            SearchHit(
                document_id=row.document_id,
                document_title=row.document_title,
                text=row.text,
                chunk_type=row.chunk_type.value,
                step_number=row.step_number,
                distance=float(row.distance),
            )
            for row in rows
        ]
