"""Pydantic schemas for quality incident records."""

from datetime import datetime
from typing import Any

from pydantic import ConfigDict

from supervisor.schemas.common import BaseSchema


class IncidentLog(BaseSchema):
    """Durable record of a quality issue that reached a disposition."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True, frozen=True)

    log_id: str
    session_id: str
    timestamp: datetime

    # Context
    worker_name: str
    station: str
    document_used: str

    # Issue details
    issue_description: str
    measurements_snapshot: dict[str, Any]

    # Outcome
    decision: str
    actions_taken: tuple[str, ...]
    resolution_time_seconds: int

    # Compliance
    all_steps_completed: bool
    documentation_complete: bool = True


class IncidentListResponse(BaseSchema):
    """All recorded incidents."""

    logs: list[IncidentLog]
    count: int
