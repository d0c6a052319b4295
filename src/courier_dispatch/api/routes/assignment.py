"""Assignment scoring transparency."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...services.assignment.scorer import scoring_config

router = APIRouter(prefix="/assignment", tags=["assignment"])


@router.get("/scoring-config", status_code=status.HTTP_200_OK)
def get_scoring_config() -> dict:
    """Weights, vehicle matrix and distance buckets used to rank couriers."""
    return scoring_config()
