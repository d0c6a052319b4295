"""Error taxonomy for dispatch operations."""

from __future__ import annotations


class DispatchError(Exception):
    """Base class for every failure an engine operation can report."""

    code = "dispatch_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class NotFound(DispatchError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} '{entity_id}' not found")
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransition(DispatchError):
    code = "invalid_transition"

    def __init__(self, source: str, target: str) -> None:
        super().__init__(f"Invalid status transition from {source} to {target}")
        self.source = source
        self.target = target


class DriverUnavailable(DispatchError):
    code = "driver_unavailable"

    def __init__(self, courier_id: str, status: str | None = None) -> None:
        detail = f" (status: {status})" if status else ""
        super().__init__(f"Courier '{courier_id}' is not available{detail}")
        self.courier_id = courier_id
        self.status = status


class AlreadyAssigned(DispatchError):
    code = "already_assigned"

    def __init__(self, delivery_id: str, courier_id: str | None = None) -> None:
        detail = f" to courier '{courier_id}'" if courier_id else ""
        super().__init__(f"Delivery '{delivery_id}' is already assigned{detail}")
        self.delivery_id = delivery_id
        self.courier_id = courier_id


class MissingCourier(DispatchError):
    code = "missing_courier"

    def __init__(self) -> None:
        super().__init__("A courier id is required for assignment")


class InvalidRatingRange(DispatchError):
    code = "invalid_rating_range"

    def __init__(self, rating: float) -> None:
        super().__init__(f"Rating must be between 1 and 5, got {rating}")
        self.rating = rating


class AlreadyRated(DispatchError):
    code = "already_rated"

    def __init__(self, delivery_id: str) -> None:
        super().__init__(f"Delivery '{delivery_id}' has already been rated")
        self.delivery_id = delivery_id


class NotYetDelivered(DispatchError):
    code = "not_yet_delivered"

    def __init__(self, delivery_id: str, status: str) -> None:
        super().__init__(f"Delivery '{delivery_id}' cannot be rated while {status}")
        self.delivery_id = delivery_id
        self.status = status


class NegativeAmount(DispatchError):
    code = "negative_amount"

    def __init__(self, field: str, amount: float) -> None:
        super().__init__(f"{field} must be >= 0, got {amount}")
        self.field = field
        self.amount = amount


class MissingCoordinates(DispatchError):
    code = "missing_coordinates"

    def __init__(self, delivery_id: str) -> None:
        super().__init__(f"Delivery '{delivery_id}' has no drop-off coordinates")
        self.delivery_id = delivery_id


class MalformedZone(DispatchError):
    code = "malformed_zone"


class DuplicateDelivery(DispatchError):
    code = "duplicate_delivery"

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Delivery already exists for order '{order_id}'")
        self.order_id = order_id


class CourierBusy(DispatchError):
    code = "courier_busy"


class RoutingError(DispatchError):
    """Raised by routing providers; callers on the ingestion path swallow it."""

    code = "routing_error"
