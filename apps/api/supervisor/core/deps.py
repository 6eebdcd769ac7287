"""Dependency injection for FastAPI routes."""

from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends

from supervisor.core.config import settings
from supervisor.services.interaction_logger import IncidentIndex, InteractionLogger
from supervisor.services.pipeline_service import PipelineService
from supervisor.services.session_store import (
    InMemorySessionStorage,
    RedisSessionStorage,
    SessionStorage,
    SessionStore,
)

# Shared Redis connection pool
_redis_pool: aioredis.ConnectionPool | None = None

# Process-wide singletons; sessions and incidents live for the process lifetime
_session_store: SessionStore | None = None
_incident_index: IncidentIndex | None = None
_pipeline_service: PipelineService | None = None


def _get_redis_pool() -> aioredis.ConnectionPool:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(
            str(settings.redis_url), decode_responses=True
        )
    return _redis_pool


def _create_storage() -> SessionStorage:
    if settings.session_backend == "redis":
        return RedisSessionStorage(
            aioredis.Redis(connection_pool=_get_redis_pool()),
            ttl_seconds=settings.session_ttl_seconds,
        )
    return InMemorySessionStorage()


def get_session_store() -> SessionStore:
    """Return the shared session store, creating it on first use."""
    global _session_store  # noqa: PLW0603
    if _session_store is None:
        _session_store = SessionStore(
            _create_storage(),
            default_worker_name=settings.default_worker_name,
            default_station=settings.default_station,
        )
    return _session_store


def get_incident_index() -> IncidentIndex:
    global _incident_index  # noqa: PLW0603
    if _incident_index is None:
        _incident_index = IncidentIndex()
    return _incident_index


def get_pipeline_service() -> PipelineService:
    """Return the shared pipeline service wired to the shared store and index."""
    global _pipeline_service  # noqa: PLW0603
    if _pipeline_service is None:
        _pipeline_service = PipelineService(
            store=get_session_store(),
            interaction_logger=InteractionLogger(get_incident_index()),
        )
    return _pipeline_service


SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]
IncidentIndexDep = Annotated[IncidentIndex, Depends(get_incident_index)]
PipelineServiceDep = Annotated[PipelineService, Depends(get_pipeline_service)]


__all__ = [
    "IncidentIndexDep",
    "PipelineServiceDep",
    "SessionStoreDep",
    "get_incident_index",
    "get_pipeline_service",
    "get_session_store",
]
