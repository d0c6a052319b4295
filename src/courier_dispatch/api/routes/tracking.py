"""Public tracking endpoints, addressed by tracking token instead of business scope."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...schemas.tracking import PublicRatingRequest, RatingResponse, TrackingResponse
from ...services.orchestrator import AssignmentOrchestrator
from ..dependencies import get_orchestrator
from ..errors import translate_errors

router = APIRouter(prefix="/track", tags=["tracking"])


@router.get("/{tracking_token}", response_model=TrackingResponse, status_code=status.HTTP_200_OK)
def get_tracking_info(
    tracking_token: str,
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> TrackingResponse:
    with translate_errors("load tracking info"):
        return TrackingResponse.from_domain(engine.get_tracking_info(tracking_token))


@router.post("/{tracking_token}/rating", response_model=RatingResponse, status_code=status.HTTP_200_OK)
def rate_by_token(
    tracking_token: str,
    payload: PublicRatingRequest,
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> RatingResponse:
    with translate_errors("rate delivery"):
        delivery = engine.rate_delivery_by_token(tracking_token, payload.rating, payload.feedback)
        return RatingResponse(
            delivery_id=delivery.delivery_id,
            rating=delivery.customer_rating,
            feedback=delivery.customer_feedback,
        )
