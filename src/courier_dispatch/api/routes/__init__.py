"""Route group exports."""

from . import assignment, couriers, deliveries, health, tracking, zones

__all__ = ["assignment", "couriers", "deliveries", "health", "tracking", "zones"]
