"""Delivery lifecycle endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from ...models.domain import BusinessScope
from ...schemas.deliveries import (
    AssignRequest,
    AutoAssignResponse,
    CompleteRequest,
    DeliveryCreateRequest,
    DeliveryModel,
    DeliveryStatsModel,
    IngestResponse,
    LocationReportRequest,
    RatingRequest,
    StatusUpdateRequest,
    SuggestionModel,
    TipRequest,
)
from ...services.orchestrator import AssignmentOrchestrator
from ...services.tracking.tracker import PositionReport
from ..dependencies import get_orchestrator, get_scope
from ..errors import translate_errors

router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@router.post("", response_model=DeliveryModel, status_code=status.HTTP_201_CREATED)
def create_delivery(
    payload: DeliveryCreateRequest,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> DeliveryModel:
    with translate_errors("create delivery"):
        return DeliveryModel.from_domain(engine.create_delivery(scope, payload.to_new_delivery()))


@router.get("", response_model=List[DeliveryModel], status_code=status.HTTP_200_OK)
def list_deliveries(
    active_only: bool = Query(default=False, description="Only deliveries in a non-terminal status"),
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> List[DeliveryModel]:
    with translate_errors("list deliveries"):
        return [DeliveryModel.from_domain(d) for d in engine.list_deliveries(scope, active_only=active_only)]


@router.get("/stats", response_model=DeliveryStatsModel, status_code=status.HTTP_200_OK)
def delivery_stats(
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> DeliveryStatsModel:
    with translate_errors("compute delivery stats"):
        return DeliveryStatsModel.from_domain(engine.delivery_stats(scope))


@router.get("/{delivery_id}", response_model=DeliveryModel, status_code=status.HTTP_200_OK)
def get_delivery(
    delivery_id: str,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> DeliveryModel:
    with translate_errors("load delivery"):
        return DeliveryModel.from_domain(engine.get_delivery(scope, delivery_id))


@router.get("/{delivery_id}/suggestions", response_model=List[SuggestionModel], status_code=status.HTTP_200_OK)
def get_suggestions(
    delivery_id: str,
    limit: int | None = Query(default=None, ge=1, le=50),
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> List[SuggestionModel]:
    with translate_errors("rank couriers"):
        return [SuggestionModel.from_domain(c) for c in engine.get_suggestions(scope, delivery_id, limit)]


@router.post("/{delivery_id}/auto-assign", response_model=AutoAssignResponse, status_code=status.HTTP_200_OK)
def auto_assign(
    delivery_id: str,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> AutoAssignResponse:
    with translate_errors("auto-assign delivery"):
        return AutoAssignResponse.from_domain(engine.auto_assign(scope, delivery_id))


@router.post("/{delivery_id}/assign", response_model=DeliveryModel, status_code=status.HTTP_200_OK)
def assign_courier(
    delivery_id: str,
    payload: AssignRequest,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> DeliveryModel:
    with translate_errors("assign courier"):
        return DeliveryModel.from_domain(engine.manual_assign(scope, delivery_id, payload.courier_id))


@router.patch("/{delivery_id}/status", response_model=DeliveryModel, status_code=status.HTTP_200_OK)
def update_status(
    delivery_id: str,
    payload: StatusUpdateRequest,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> DeliveryModel:
    with translate_errors("update delivery status"):
        delivery = engine.update_status(
            scope,
            delivery_id,
            payload.status,
            reason=payload.reason,
            courier_id=payload.courier_id,
        )
        return DeliveryModel.from_domain(delivery)


@router.post("/{delivery_id}/complete", response_model=DeliveryModel, status_code=status.HTTP_200_OK)
def complete_delivery(
    delivery_id: str,
    payload: CompleteRequest,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> DeliveryModel:
    with translate_errors("complete delivery"):
        return DeliveryModel.from_domain(engine.complete_with_proof(scope, delivery_id, payload.proof_of_delivery))


@router.post("/{delivery_id}/rating", response_model=DeliveryModel, status_code=status.HTTP_200_OK)
def rate_delivery(
    delivery_id: str,
    payload: RatingRequest,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> DeliveryModel:
    with translate_errors("rate delivery"):
        return DeliveryModel.from_domain(engine.rate_delivery(scope, delivery_id, payload.rating, payload.feedback))


@router.patch("/{delivery_id}/tip", response_model=DeliveryModel, status_code=status.HTTP_200_OK)
def update_tip(
    delivery_id: str,
    payload: TipRequest,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> DeliveryModel:
    with translate_errors("update tip"):
        return DeliveryModel.from_domain(engine.update_tip(scope, delivery_id, payload.amount))


@router.post("/{delivery_id}/location", response_model=IngestResponse, status_code=status.HTTP_200_OK)
def report_location(
    delivery_id: str,
    payload: LocationReportRequest,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> IngestResponse:
    with translate_errors("ingest location"):
        report = PositionReport(
            latitude=payload.latitude,
            longitude=payload.longitude,
            heading=payload.heading,
            speed=payload.speed,
            accuracy=payload.accuracy,
        )
        result = engine.ingest_location(scope, delivery_id, report)
        return IngestResponse(
            accepted=result.accepted,
            status=result.status,
            became_nearby=result.became_nearby,
            distance_to_dropoff_meters=result.distance_to_dropoff_meters,
            estimated_arrival=result.eta.estimated_arrival if result.eta else None,
            duration_seconds=result.eta.duration_seconds if result.eta else None,
        )
