"""Procedure retrieval: pick the primary document and order its chunks."""

import asyncio
import logging
from dataclasses import dataclass, field

from supervisor.core.config import settings
from supervisor.schemas.pipeline import (
    NO_DOCUMENT_ID,
    IntentResult,
    RetrievalResult,
    RetrievedChunk,
)
from supervisor.services.search_provider import SearchHit, SimilaritySearchProvider

logger = logging.getLogger(__name__)

FALLBACK_DOCUMENT_ID = "SOP-QC-015"
FALLBACK_DOCUMENT_TITLE = "Surface Defect Evaluation and Quarantine Protocol"
FALLBACK_CONTEXT = (
    "SOP-QC-015: Surface defect evaluation for brake rotors. Measure defect depth "
    "against the 0.02mm tolerance and surface roughness against Ra 1.6µm. "
    "Quarantine any part that exceeds either limit."
)

# Entity keys appended to the search text
QUERY_ENTITY_KEYS = ("part_type", "issue_type")


@dataclass
class DocumentGroup:
    """Hits that share a parent document, in provider order."""

    document_id: str
    document_title: str
    hits: list[SearchHit] = field(default_factory=list)


def build_search_query(utterance: str, intent: IntentResult) -> str:
    """Enrich the utterance with classifier-extracted entities."""
    parts = [utterance]
    for key in QUERY_ENTITY_KEYS:
        value = intent.extracted_entities.get(key)
        if value:
            parts.append(str(value))
    return " ".join(parts)


def group_by_document(hits: list[SearchHit]) -> list[DocumentGroup]:
    """Group hits by document id, keeping first-seen document order."""
    groups: dict[str, DocumentGroup] = {}
    for hit in hits:
        group = groups.get(hit.document_id)
        if group is None:
            group = groups[hit.document_id] = DocumentGroup(hit.document_id, hit.document_title)
        group.hits.append(hit)
    return list(groups.values())


def select_primary(groups: list[DocumentGroup]) -> DocumentGroup:
    """The document contributing the most chunks wins.

    Volume, not aggregate similarity, decides. On a tie the group seen first
    (the one holding the better-ranked hit) is kept.
    """
    return max(groups, key=lambda g: len(g.hits))


def order_chunks(chunks: list[RetrievedChunk]) -> list[RetrievedChunk]:
    """Stable sort by step number; chunks without a step go last."""
    return sorted(
        chunks,
        key=lambda c: (c.step_number is None, c.step_number if c.step_number is not None else 0),
    )


def assemble_context(chunks: list[RetrievedChunk]) -> str:
    """Render ordered chunks as labelled paragraphs."""
    sections = []
    for index, chunk in enumerate(chunks, 1):
        label = f"Step {chunk.step_number}" if chunk.step_number is not None else f"Section {index}"
        sections.append(f"{label}: {chunk.text}")
    return "\n\n".join(sections)


def no_document_result() -> RetrievalResult:
    return RetrievalResult(
        document_id=NO_DOCUMENT_ID,
        document_title="No relevant procedure found",
    )


def fallback_result() -> RetrievalResult:
    return RetrievalResult(
        document_id=FALLBACK_DOCUMENT_ID,
        document_title=FALLBACK_DOCUMENT_TITLE,
        assembled_context=FALLBACK_CONTEXT,
        fallback=True,
    )


class ProcedureRetriever:
    """Finds the procedure document relevant to an utterance.

    Two distinct non-hit paths: an empty search yields the ``NONE`` sentinel,
    an unreachable index yields the fallback document with ``fallback=True``.
    """

    def __init__(
        self,
        provider: SimilaritySearchProvider | None = None,
        top_k: int | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._provider = provider
        self.top_k = top_k or settings.retrieval_top_k
        self.timeout_seconds = timeout_seconds or settings.provider_timeout_seconds

    @property
    def provider(self) -> SimilaritySearchProvider:
        if self._provider is None:
            from supervisor.core.database import async_session_factory
            from supervisor.services.search_provider import PgVectorSearchProvider

            self._provider = PgVectorSearchProvider(async_session_factory)
        return self._provider

    async def retrieve(self, utterance: str, intent: IntentResult) -> RetrievalResult:
        query = build_search_query(utterance, intent)
        logger.info("Searching procedure index for: %r", query)

        try:
            async with asyncio.timeout(self.timeout_seconds):
                hits = await self.provider.search(query, limit=self.top_k)
        except Exception:
            logger.exception("Procedure search failed, using fallback document")
            return fallback_result()

        if not hits:
            return no_document_result()

        primary = select_primary(group_by_document(hits))
        chunks = order_chunks(
            [
                RetrievedChunk(
                    step_number=hit.step_number,
                    text=hit.text,
                    chunk_type=hit.chunk_type,
                    similarity=1 - hit.distance,
                )
                for hit in primary.hits
            ]
        )

        logger.info(
            "Retrieved procedure: document_id=%s, chunks=%d, candidates=%d",
            primary.document_id,
            len(chunks),
            len(hits),
        )
        return RetrievalResult(
            document_id=primary.document_id,
            document_title=primary.document_title,
            ordered_chunks=chunks,
            assembled_context=assemble_context(chunks),
        )
