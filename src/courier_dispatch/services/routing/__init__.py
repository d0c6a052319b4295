"""Route and ETA providers."""

from .models import EtaResult, RouteResult, RouteStep
from .provider import OSRMRoutingProvider, RoutingProvider, StraightLineRoutingProvider, build_routing_provider

__all__ = [
    "EtaResult",
    "OSRMRoutingProvider",
    "RouteResult",
    "RouteStep",
    "RoutingProvider",
    "StraightLineRoutingProvider",
    "build_routing_provider",
]
