"""
Pydantic schemas for the status API
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List
from datetime import datetime, timezone


class StageProgress(BaseModel):
    """Progress of one migration stage"""
    stage: str
    status: str = Field(..., description="pending, running, completed, partial, skipped, failed")
    outstanding: Optional[int] = None
    dispatched: int = 0
    failed: int = 0


class ProgressResponse(BaseModel):
    """Per-stage progress of the current run"""
    active_stage: Optional[str] = None
    done: bool = False
    stages: List[StageProgress] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response model"""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    running: bool
    done: bool
    active_stage: Optional[str] = None
    error_count: int = 0
    failed_units: int = 0
    status: str = Field("healthy", description="Overall status: healthy, degraded, unhealthy")

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Degraded once any error reached the error sink or any unit failed"""
        if values.get("error_count", 0) == 0 and values.get("failed_units", 0) == 0:
            return "healthy"
        if values.get("error_count", 0) and values.get("done", False):
            return "unhealthy"
        return "degraded"

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "running": True,
                "done": False,
                "active_stage": "ORGANIZATIONS",
                "error_count": 0,
                "failed_units": 0,
            }
        }
