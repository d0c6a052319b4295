"""Translation of dispatch errors into HTTP responses."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import HTTPException, status

from ..errors import (
    AlreadyAssigned,
    AlreadyRated,
    CourierBusy,
    DispatchError,
    DriverUnavailable,
    DuplicateDelivery,
    InvalidTransition,
    NotFound,
    NotYetDelivered,
)

CONFLICT_ERRORS = (
    InvalidTransition,
    AlreadyAssigned,
    DriverUnavailable,
    AlreadyRated,
    DuplicateDelivery,
    CourierBusy,
    NotYetDelivered,
)


def to_http_error(exc: DispatchError) -> HTTPException:
    if isinstance(exc, NotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, CONFLICT_ERRORS):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail={"code": exc.code, "message": exc.message})


@contextmanager
def translate_errors(action: str) -> Iterator[None]:
    """Map engine failures raised inside the block to HTTP errors."""
    try:
        yield
    except HTTPException:
        raise
    except DispatchError as exc:
        raise to_http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "validation_error", "message": str(exc)},
        ) from exc
    except Exception as exc:
        logging.exception(f"Error while trying to {action}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to {action}",
        ) from exc
