"""
Pydantic response models for the web front-end.

Usage:
    from api.response_models import StatusResponse

    @router.get("/status", response_model=StatusResponse)
    def status(): ...
"""

from pydantic import BaseModel, Field

from deadman.timer import CheckInResult, TimerStatus


class HealthResponse(BaseModel):
    """Liveness probe."""

    status: str = Field(description="ok while the tick thread is alive, degraded otherwise")
    version: str


class StatusResponse(BaseModel):
    """Current switch phase and countdown."""

    phase: str = Field(description="warning | dead_man | triggered")
    seconds_remaining: float = Field(description="Seconds until the current phase expires")
    percent_remaining: int = Field(description="Share of the current countdown left, 0-100")
    label: str = Field(description="Human-readable countdown")

    @classmethod
    def from_status(cls, status: TimerStatus) -> "StatusResponse":
        return cls(**status.to_dict())


class CheckInResponse(StatusResponse):
    """Result of a successful check-in."""

    source: str
    generation: int

    @classmethod
    def from_result(cls, result: CheckInResult, status: TimerStatus) -> "CheckInResponse":
        return cls(**status.to_dict(), source=result.source, generation=result.generation)


class ErrorResponse(BaseModel):
    """Error body, matching FastAPI's HTTPException shape."""

    detail: str
