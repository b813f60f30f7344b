"""Domain exception -> HTTP response mapping."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ecoride.domain.exceptions import (
    ActiveRideExists,
    ActiveSubscriptionExists,
    EcoRideError,
    InvalidTransition,
    NotEligible,
    PlanNotFound,
    RatingAlreadySubmitted,
    RideNotFound,
    SubscriptionNotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order; the first matching class wins.
STATUS_CODES: list[tuple[type[EcoRideError], int]] = [
    (InvalidTransition, 409),
    (ActiveRideExists, 409),
    (ActiveSubscriptionExists, 409),
    (RatingAlreadySubmitted, 409),
    (ValidationError, 422),
    (NotEligible, 403),
    (RideNotFound, 404),
    (PlanNotFound, 404),
    (SubscriptionNotFound, 404),
]


def status_for(exc: EcoRideError) -> int:
    for exc_type, status in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status
    return 400


async def domain_error_handler(request: Request, exc: EcoRideError) -> JSONResponse:
    status = status_for(exc)
    logger.info("%s %s -> %d %s: %s", request.method, request.url.path, status,
                type(exc).__name__, exc.message)
    return JSONResponse(
        status_code=status,
        content={"detail": exc.message, "error": type(exc).__name__, **exc.details},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EcoRideError, domain_error_handler)  # type: ignore[arg-type]
