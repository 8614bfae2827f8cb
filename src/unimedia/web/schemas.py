"""Pydantic schemas for the plan store Web API.

Serialization models for plans, errors, and health.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from unimedia import __version__
from unimedia.core.plans import PlanDocument


# =============================================================================
# PLAN SCHEMAS
# =============================================================================


class PlanRowSchema(BaseModel):
    """One course row of a plan."""

    codice: str
    denominazione: str
    cfu: int = Field(..., ge=1, le=30)


class PlanResponse(BaseModel):
    """Response for a stored plan."""

    code: str = Field(..., pattern=r"^\d{2}-\d{2}$")
    rows: list[PlanRowSchema]
    updated_at: str | None = None

    @classmethod
    def from_document(cls, plan: PlanDocument) -> PlanResponse:
        return cls(
            code=plan.code,
            rows=[PlanRowSchema(**r.to_dict()) for r in plan.rows],
            updated_at=plan.updated_at,
        )


class PlanCreatedResponse(BaseModel):
    """Response for a successful insert."""

    ok: bool = True
    data: PlanResponse


# =============================================================================
# ERROR SCHEMAS
# =============================================================================


class ErrorResponse(BaseModel):
    """Generic error body."""

    error: str


class ConflictResponse(BaseModel):
    """Body returned when the plan code is already taken."""

    ok: bool = False
    error: str = "Plan already exists"
    code: str


# =============================================================================
# HEALTH SCHEMAS
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = __version__
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
