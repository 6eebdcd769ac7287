"""SQLAlchemy models."""

from supervisor.models.base import Base
from supervisor.models.procedure import ChunkType, ProcedureChunk

__all__ = [
    "Base",
    "ChunkType",
    "ProcedureChunk",
]
