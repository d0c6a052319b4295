"""FastAPI dependencies: the shared engine and the caller's business scope."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Header, HTTPException, status

from ..db.supabase import get_supabase_client
from ..models.domain import BusinessScope
from ..persistence.database import SupabaseStore
from ..persistence.memory import InMemoryStore
from ..persistence.store import Store
from ..services.orchestrator import AssignmentOrchestrator
from ..services.routing.provider import build_routing_provider


def build_store() -> Store:
    client = get_supabase_client()
    if client is None:
        return InMemoryStore()
    logging.info("Using Supabase-backed store")
    return SupabaseStore(client)


@lru_cache()
def get_orchestrator() -> AssignmentOrchestrator:
    return AssignmentOrchestrator(build_store(), routing=build_routing_provider())


def get_scope(x_business_id: str | None = Header(default=None)) -> BusinessScope:
    if not x_business_id or not x_business_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "missing_business_scope", "message": "X-Business-Id header is required"},
        )
    return BusinessScope(x_business_id.strip())
