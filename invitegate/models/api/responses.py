from typing import Any

from pydantic import BaseModel, Field


class ApiResponse(BaseModel):
    """Success envelope shared by every route."""

    success: bool = True
    data: Any = None
    message: str | None = None


class LoginData(BaseModel):
    token: str
    user: dict[str, Any]


class HealthData(BaseModel):
    status: str = "OK"
    timestamp: str
    uptime_seconds: float
    environment: str
    version: str


class SecurityStats(BaseModel):
    maps: dict[str, int] = Field(default_factory=dict, description="Live entries per store map")
    content: dict[str, int] = Field(default_factory=dict)
