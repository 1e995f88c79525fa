"""
Pydantic schemas for viewer error reports and operational endpoints.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from talkarchive.models import ErrorReportType


class ErrorReportCreate(BaseModel):
    """Request schema for reporting a transcript problem."""

    category: ErrorReportType = Field(..., description="Kind of problem", examples=["typo"])

    description: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        examples=["The speaker says 'quorum', not 'quarrel', at 12:04"],
    )

    timestamp_seconds: Optional[int] = Field(
        None,
        ge=0,
        description="Position in the video the report refers to",
    )

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Description cannot be empty")
        return v


class ErrorReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category: str
    description: str
    timestamp_seconds: Optional[int] = None
    status: str
    created_at: datetime


class TaskQueuedResponse(BaseModel):
    """Response schema for endpoints that enqueue background work."""

    success: bool = Field(..., description="Whether the task was queued")
    message: str
    task_id: Optional[str] = Field(None, description="Celery task ID for tracking")
