"""
Health API Response Models
"""

from typing import Any

from pydantic import BaseModel, Field


class HealthReportResponse(BaseModel):
    """Serialized HealthReport."""

    status: str = Field(..., description="healthy | degraded | unhealthy")
    uptime_seconds: float
    memory: dict[str, Any]
    queue: dict[str, Any]
    connection: dict[str, Any]
    backend: dict[str, Any]
    timestamp: str


class DiagnosticCheck(BaseModel):
    name: str
    status: str = Field(..., description="pass | warning | fail")
    message: str


class DiagnosticsResponse(BaseModel):
    overall: str = Field(..., description="pass | warning | fail")
    checks: list[DiagnosticCheck]
    timestamp: str


class LivenessResponse(BaseModel):
    status: str = "alive"
    timestamp: str
