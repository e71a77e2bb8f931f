"""
Common API models used across different endpoints.
"""

from pydantic import BaseModel, Field
from typing import Dict


class APIError(BaseModel):
    """Error body returned by every failing endpoint; the message is safe to show the user."""
    error: str = Field(..., description="User-facing error message")


class HealthStatus(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    uptime: float = Field(..., description="Uptime in seconds")
    dependencies: Dict[str, str] = Field(..., description="Status of external dependencies")
