"""Courier registry endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, Response, status

from ...models.domain import BusinessScope, CourierStatus
from ...schemas.couriers import (
    CourierCreateRequest,
    CourierEnabledRequest,
    CourierModel,
    CourierStatusRequest,
    ResetCountsResponse,
)
from ...services.orchestrator import AssignmentOrchestrator
from ..dependencies import get_orchestrator, get_scope
from ..errors import translate_errors

router = APIRouter(prefix="/couriers", tags=["couriers"])


@router.post("", response_model=CourierModel, status_code=status.HTTP_201_CREATED)
def register_courier(
    payload: CourierCreateRequest,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> CourierModel:
    with translate_errors("register courier"):
        courier = engine.register_courier(
            scope,
            payload.name,
            payload.vehicle,
            courier_id=payload.courier_id,
            max_concurrent_deliveries=payload.max_concurrent_deliveries,
        )
        return CourierModel.from_domain(courier)


@router.get("", response_model=List[CourierModel], status_code=status.HTTP_200_OK)
def list_couriers(
    courier_status: CourierStatus | None = Query(default=None, alias="status"),
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> List[CourierModel]:
    with translate_errors("list couriers"):
        return [CourierModel.from_domain(c) for c in engine.list_couriers(scope, courier_status)]


@router.post("/reset-daily-counts", response_model=ResetCountsResponse, status_code=status.HTTP_200_OK)
def reset_daily_counts(
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> ResetCountsResponse:
    with translate_errors("reset daily counts"):
        return ResetCountsResponse(reset=engine.reset_daily_counts(scope))


@router.get("/{courier_id}", response_model=CourierModel, status_code=status.HTTP_200_OK)
def get_courier(
    courier_id: str,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> CourierModel:
    with translate_errors("load courier"):
        return CourierModel.from_domain(engine.get_courier(scope, courier_id))


@router.patch("/{courier_id}/status", response_model=CourierModel, status_code=status.HTTP_200_OK)
def update_courier_status(
    courier_id: str,
    payload: CourierStatusRequest,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> CourierModel:
    with translate_errors("update courier status"):
        return CourierModel.from_domain(engine.update_courier_status(scope, courier_id, payload.status))


@router.patch("/{courier_id}/enabled", response_model=CourierModel, status_code=status.HTTP_200_OK)
def set_courier_enabled(
    courier_id: str,
    payload: CourierEnabledRequest,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> CourierModel:
    with translate_errors("update courier"):
        return CourierModel.from_domain(engine.set_courier_enabled(scope, courier_id, payload.enabled))


@router.delete("/{courier_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_courier(
    courier_id: str,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> Response:
    with translate_errors("delete courier"):
        engine.delete_courier(scope, courier_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
