"""API v1 router combining all route modules."""

from fastapi import APIRouter

from supervisor.api.v1 import health, logs, pipeline, sessions, voice

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Turn entry point
api_router.include_router(
    pipeline.router,
    prefix="/agent",
    tags=["pipeline"],
)

# Voice transport webhooks
api_router.include_router(
    voice.router,
    prefix="/voice",
    tags=["voice"],
)

# Session introspection
api_router.include_router(
    sessions.router,
    prefix="/sessions",
    tags=["sessions"],
)

# Incident logs
api_router.include_router(
    logs.router,
    prefix="/logs",
    tags=["logs"],
)
