"""Pydantic response models for the HTTP surface.

WHY: Load balancers poll /health, and in development the /diag endpoints
expose the bot's in-memory state and exercise each Google integration.
Typed response models keep those payloads stable and documented in /docs.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Timestamps are ISO 8601 strings in UTC
- Response models never expose credentials or tokens
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class StatusResponse(BaseModel):
    """Liveness payload for GET /."""

    status: str = Field(description="Always 'healthy' when the process is serving.")
    service: str = Field(description="Service name.")
    timestamp: str = Field(description="Server time (ISO 8601, UTC).")


class HealthResponse(BaseModel):
    """Readiness payload for GET /health.

    RULES:
    - status is 'healthy' only when every service is 'connected'
    - The endpoint returns 503 otherwise
    """

    status: str = Field(description="'healthy' or 'unhealthy'.")
    version: str = Field(description="Bot version string.")
    services: Dict[str, str] = Field(
        description="Per-service state: 'connected' or 'disconnected'.",
    )
    timestamp: str = Field(description="Server time (ISO 8601, UTC).")
    error: Optional[str] = Field(
        default=None,
        description="Failure detail when the probe itself raised.",
    )


class PrintRequestInfo(BaseModel):
    id: str = Field(description="Submission id.")
    requester_id: str = Field(description="Slack user id of the requester.")
    selections: Dict[str, str] = Field(description="Project, printer, material and notes.")
    status: str = Field(description="'awaiting_file' or 'completed'.")
    submitted_at: str = Field(description="Creation time (ISO 8601, UTC).")
    completed_at: Optional[str] = Field(default=None, description="Completion time, if completed.")
    file_id: Optional[str] = Field(default=None, description="Attached Slack file id, if completed.")
    file_name: Optional[str] = Field(default=None, description="Attached file name, if completed.")


class PrintRequestsResponse(BaseModel):
    status: str = Field(description="'success'.")
    requests: List[PrintRequestInfo] = Field(description="All tracked print requests.")
    count: int = Field(description="Number of tracked print requests.")
    pending: int = Field(description="Requests still waiting for a file.")
    completed: int = Field(description="Requests completed within the retention window.")
    pending_uploads: int = Field(description="Stored files waiting for a project.")
    waitlist: int = Field(description="Open wait-list entries.")


class ProjectsResponse(BaseModel):
    status: str = Field(description="'success'.")
    projects: List[str] = Field(description="Project names from the project sheet.")
    count: int = Field(description="Number of projects.")
    sheet_id: str = Field(description="Spreadsheet the projects were read from.")


class DiagnosticResponse(BaseModel):
    status: str = Field(description="'success' or 'error'.")
    message: Optional[str] = Field(default=None, description="Human-readable result.")
    file_id: Optional[str] = Field(default=None, description="Drive file id created by the probe.")
