"""
SympVis Triage Engine – API Schemas
====================================
Pydantic models for the REST API request/response contracts.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from models.session.schema_definition import TriageResult, UserSession
from pipelines.follow_up_controller import FollowUpState


# ── Request Models ──────────────────────────────────────────────────────────


class FollowUpRequest(BaseModel):
    """Second round: the state returned by round one plus the answered session."""
    state: FollowUpState
    session: UserSession


# ── Response Models ─────────────────────────────────────────────────────────


class TriageResponse(BaseModel):
    """Triage round returned by the API."""
    result: TriageResult
    state: FollowUpState
    safety_overrides_applied: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    category: str
    message: str
    retryable: bool


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    backend: str = ""
    urgent_keywords: int = 0
