"""Incident log endpoints."""

from fastapi import APIRouter, HTTPException, status

from supervisor.core.deps import IncidentIndexDep
from supervisor.schemas.incident import IncidentListResponse, IncidentLog

router = APIRouter()


@router.get("", response_model=IncidentListResponse, summary="List incident logs")
async def list_logs(index: IncidentIndexDep) -> IncidentListResponse:
    logs = await index.list_all()
    return IncidentListResponse(logs=logs, count=len(logs))


@router.get("/{log_id}", response_model=IncidentLog, summary="Get an incident log")
async def get_log(log_id: str, index: IncidentIndexDep) -> IncidentLog:
    incident = await index.get(log_id)
    if incident is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Incident log not found",
        )
    return incident
