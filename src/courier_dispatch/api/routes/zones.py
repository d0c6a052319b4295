"""Service-zone endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from ...models.domain import BusinessScope
from ...schemas.zones import ZoneCheckRequest, ZoneCheckResponse, ZoneCreateRequest, ZoneModel, ZoneUpdateRequest
from ...services.orchestrator import AssignmentOrchestrator
from ..dependencies import get_orchestrator, get_scope
from ..errors import translate_errors

router = APIRouter(prefix="/zones", tags=["zones"])


@router.post("", response_model=ZoneModel, status_code=status.HTTP_201_CREATED)
def create_zone(
    payload: ZoneCreateRequest,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> ZoneModel:
    with translate_errors("create zone"):
        zone = engine.create_zone(scope, payload.name, payload.shape, payload.base_fee, **payload.zone_options())
        return ZoneModel.from_domain(zone)


@router.get("", response_model=List[ZoneModel], status_code=status.HTTP_200_OK)
def list_zones(
    enabled_only: bool = Query(default=False),
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> List[ZoneModel]:
    with translate_errors("list zones"):
        return [ZoneModel.from_domain(zone) for zone in engine.list_zones(scope, enabled_only=enabled_only)]


@router.post("/check", response_model=ZoneCheckResponse, status_code=status.HTTP_200_OK)
def check_delivery_zone(
    payload: ZoneCheckRequest,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> ZoneCheckResponse:
    """Tell whether a drop-off point is served and what the delivery costs."""
    with translate_errors("check delivery zone"):
        quote = engine.quote_delivery(scope, payload.point.to_point(), payload.order_amount, payload.store_point())
        return ZoneCheckResponse.from_domain(quote)


@router.patch("/{zone_id}", response_model=ZoneModel, status_code=status.HTTP_200_OK)
def update_zone(
    zone_id: str,
    payload: ZoneUpdateRequest,
    scope: BusinessScope = Depends(get_scope),
    engine: AssignmentOrchestrator = Depends(get_orchestrator),
) -> ZoneModel:
    with translate_errors("update zone"):
        return ZoneModel.from_domain(engine.update_zone(scope, zone_id, payload.changes()))
