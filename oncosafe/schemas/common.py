"""
Common schemas used across multiple endpoints.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "error": "ValidationError",
                "message": "need at least two drugs",
                "details": {"received": 1},
                "timestamp": "2024-01-15T10:30:00Z"
            }
        }


class HealthResponse(BaseModel):
    """Health check response."""

    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    reference_data: dict[str, Any] = Field(
        default_factory=dict,
        description="Loaded reference snapshot summary"
    )
    lookup_cache: dict[str, Any] = Field(default_factory=dict)
    redis: bool = Field(default=False, description="Redis connection status")
    uptime_seconds: float = Field(default=0, description="Service uptime")
