"""Pydantic schemas for request/response validation."""

from supervisor.schemas.common import BaseSchema, HealthResponse

__all__ = [
    "BaseSchema",
    "HealthResponse",
]
