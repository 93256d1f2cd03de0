"""Pydantic schemas for Web API.

Request bodies for session and promotion operations, plus the response
models with a stable shape. Nested payloads produced by the core
(statistics, assessments, promotion outcomes) pass through as dicts.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


# =============================================================================
# SESSION SCHEMAS
# =============================================================================


class SessionCreateRequest(BaseModel):
    """Request to start a training session."""

    student_id: str = Field(..., min_length=1)
    curriculum: str
    level: str | None = None
    trainer_id: str | None = None
    age_group: str = ""
    session_type: str = "practice"
    custom_settings: dict[str, Any] = Field(default_factory=dict)


class SessionCreatedResponse(BaseModel):
    """Response for a newly created session."""

    session_id: str
    status: str
    curriculum: str
    level: str
    total_questions: int
    exercise: dict[str, Any]
    progress: dict[str, Any]
    settings: dict[str, Any]
    time_remaining: float


class SessionStatusResponse(BaseModel):
    """Live or persisted session status."""

    session_id: str
    student_id: str
    trainer_id: str | None = None
    curriculum: str
    level: str
    status: str
    live: bool
    progress: dict[str, Any]
    statistics: dict[str, Any]
    time_remaining: float
    start_time: str
    end_time: str | None = None
    last_activity: str | None = None
    settings: dict[str, Any]
    result: str | None = None
    completion_reason: str | None = None
    trainer_notes: str | None = None


class ActiveSessionResponse(BaseModel):
    session_id: str
    student_id: str
    trainer_id: str | None = None
    curriculum: str
    level: str
    status: str
    progress: dict[str, Any]
    accuracy: float
    time_remaining: float
    last_activity: str | None = None


class ActiveSessionListResponse(BaseModel):
    sessions: list[ActiveSessionResponse]
    count: int


class AnswerRequest(BaseModel):
    """Answer to the current exercise."""

    answer: str | int | float | None
    time_spent: float = Field(default=0.0, ge=0, allow_inf_nan=False)


class SkipRequest(BaseModel):
    reason: str = Field(default="skipped", max_length=200)


class HintRequest(BaseModel):
    hint_index: int = 0


class PauseRequest(BaseModel):
    reason: str = Field(default="user_request", max_length=200)


class CompleteRequest(BaseModel):
    reason: str = Field(default="manual", max_length=100)


class NotesRequest(BaseModel):
    notes: str = Field(..., min_length=1, max_length=5000)


class CleanupRequest(BaseModel):
    threshold_seconds: float | None = Field(default=None, ge=0)


class CleanupResponse(BaseModel):
    cleaned: int


# =============================================================================
# PROMOTION SCHEMAS
# =============================================================================


class ApproveRequest(BaseModel):
    trainer_id: str = Field(..., min_length=1)
    notes: str | None = Field(default=None, max_length=2000)


class RejectRequest(BaseModel):
    trainer_id: str = Field(..., min_length=1)
    reason: str | None = Field(default=None, max_length=2000)


class PromotionResponse(BaseModel):
    """A recorded promotion."""

    promotion_id: str
    student_id: str
    curriculum: str
    from_level: str
    to_level: str | None = None
    confidence: int
    status: str
    promotion_type: str
    created_at: str
    approved_by: str | None = None
    approved_at: str | None = None
    rejected_by: str | None = None
    rejected_at: str | None = None
    rejection_reason: str | None = None
    trainer_notes: str | None = None
    executed_at: str | None = None
    decision: dict[str, Any]


class PromotionListResponse(BaseModel):
    promotions: list[PromotionResponse]
    count: int


class CriteriaResponse(BaseModel):
    """Promotion criteria and level order of a curriculum."""

    curriculum: str
    progression: list[str]
    levels: dict[str, dict[str, Any]]


# =============================================================================
# HEALTH SCHEMAS
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    live_sessions: int = 0
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
