"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass(slots=True)
class RouteStep:
    instruction: str
    distance_meters: float
    duration_seconds: float


@dataclass(slots=True)
class RouteResult:
    distance_meters: float
    duration_seconds: float
    polyline: Optional[str] = None
    steps: List[RouteStep] = field(default_factory=list)


@dataclass(slots=True)
class EtaResult:
    estimated_arrival: datetime
    duration_seconds: int
    distance_meters: float
    traffic_condition: str = "unknown"
    confidence: str = "low"
