from __future__ import annotations

from pydantic import BaseModel, Field


class SolveRequest(BaseModel):
    captcha: str = Field(..., min_length=1, description="Base64 image, optionally as a data: URI")


class SolveResponse(BaseModel):
    solution: str


class ProcessingEventOut(BaseModel):
    """Single pipeline step in the trace."""
    step: str
    status: str
    detail: str | None
    duration_ms: int | None


class SolveDetailResponse(BaseModel):
    solution: str
    confidence: float
    alternatives: list[str] = Field(default_factory=list)
    request_id: str
    processing_ms: int
    events: list[ProcessingEventOut] = Field(default_factory=list)
