"""Response models for application-level endpoints."""

from pydantic import ConfigDict, Field

from ._strict_base import StrictModel


class HealthResponse(StrictModel):
    model_config = ConfigDict(extra="forbid", validate_assignment=True)
    """Response for health check endpoint."""

    status: str = Field(description="Health status")
    service: str = Field(description="Service name")
    environment: str = Field(description="Current environment")
    timestamp: str = Field(description="Current server time (ISO 8601)")
