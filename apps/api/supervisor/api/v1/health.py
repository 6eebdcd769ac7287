"""Health check endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from supervisor.core.config import settings
from supervisor.core.database import get_async_session
from supervisor.core.deps import SessionStoreDep
from supervisor.schemas.common import HealthResponse
from supervisor.services.session_store import SessionStore

router = APIRouter(tags=["health"])


async def _check_session_store(store: SessionStore) -> None:
    # Reading a missing key exercises the backend without touching live sessions
    await store.get("__health__")


@router.get("/health", response_model=HealthResponse)
async def health_check(
    store: SessionStoreDep,
    db: AsyncSession = Depends(get_async_session),
) -> HealthResponse:
    """
    Health check endpoint.

    Checks the procedure index database and the session backend.
    """
    overall = "healthy"
    checks: dict[str, str] = {}

    # Procedure index; turns still run on the fallback document without it
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        overall = "degraded"
        checks["database"] = f"unhealthy: {str(e)}"

    try:
        await _check_session_store(store)
        checks["session_store"] = "healthy"
    except Exception as e:
        overall = "unhealthy"
        checks["session_store"] = f"unhealthy: {str(e)}"

    return HealthResponse(
        status=overall,
        version=settings.version,
        environment=settings.environment,
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness probe for Kubernetes/container orchestration.

    Simple check that the service is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(store: SessionStoreDep) -> dict[str, str]:
    """
    Readiness probe for Kubernetes/container orchestration.

    Ready once the session backend answers.
    """
    await _check_session_store(store)

    return {"status": "ready"}
