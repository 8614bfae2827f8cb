"""Plan store endpoints.

GET /api/plans/{code} and POST /api/plans. There is no update or delete:
a plan code, once stored, keeps its rows forever.
"""

import json
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from unimedia.core.plans import PlanStore, create_plan, fetch_plan
from unimedia.web.dependencies import get_plan_store
from unimedia.web.schemas import (
    ConflictResponse,
    ErrorResponse,
    PlanCreatedResponse,
    PlanResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/plans", tags=["plans"])

MAX_BODY_BYTES = 2 * 1024 * 1024


async def _read_json_object(request: Request) -> dict[str, Any]:
    """Parse the request body; anything but a JSON object reads as {}."""
    raw = await request.body()
    if len(raw) > MAX_BODY_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Payload too large",
        )
    try:
        body = json.loads(raw)
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


@router.get(
    "/{code}",
    response_model=PlanResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def get_plan(code: str, store: PlanStore = Depends(get_plan_store)) -> PlanResponse:
    """Get a plan by its XX-YY code."""
    plan = fetch_plan(store, code)
    logger.debug("plans.fetched", code=plan.code, rows=len(plan.rows))
    return PlanResponse.from_document(plan)


@router.post(
    "",
    response_model=PlanCreatedResponse,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ConflictResponse},
        413: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def post_plan(request: Request, store: PlanStore = Depends(get_plan_store)) -> PlanCreatedResponse:
    """Create a plan. Fails with 409 if the code already exists."""
    body = await _read_json_object(request)
    plan = create_plan(store, body.get("code"), body.get("rows"))
    return PlanCreatedResponse(ok=True, data=PlanResponse.from_document(plan))
