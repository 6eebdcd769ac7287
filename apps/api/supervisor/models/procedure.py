"""Indexed procedure document chunks used for similarity search."""

import enum
from typing import Any

from pgvector.sqlalchemy import Vector
from sqlalchemy import Boolean, Enum, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from supervisor.models.base import Base

EMBEDDING_DIMENSIONS = 1536


class ChunkType(str, enum.Enum):
    """Kinds of procedure fragments."""

    STEP = "step"
    WARNING = "warning"
    DECISION = "decision"
    REQUIREMENT = "requirement"
    REFERENCE = "reference"


class ProcedureChunk(Base):
    """A fragment of a quality-control procedure with its embedding.

    Chunks are written by the ingestion tooling; this service only reads them.
    """

    __tablename__ = "procedure_chunks"

    # Parent document
    document_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    document_title: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[str] = mapped_column(String(100), default="Quality Control", nullable=False)

    # Chunk content
    text: Mapped[str] = mapped_column(Text, nullable=False)
    chunk_type: Mapped[ChunkType] = mapped_column(
        Enum(ChunkType, name="chunk_type", values_callable=lambda e: [m.value for m in e]),
        default=ChunkType.STEP,
        nullable=False,
    )
    step_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    page_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Flags used by the procedure authors
    decision_point: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    safety_critical: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Vector embedding for semantic search
    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(EMBEDDING_DIMENSIONS),
        nullable=True,
    )

    # Equipment, measurement references, etc.
    extra_data: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        default=dict,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ProcedureChunk {self.document_id}:{self.step_number}>"
