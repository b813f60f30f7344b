"""Domain exceptions raised by the ride lifecycle and plan evaluator."""

from __future__ import annotations

from typing import Any, Optional


class EcoRideError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(EcoRideError):
    """Malformed or missing input, detected before any mutation."""


class InvalidTransition(EcoRideError):
    """Raised when a ride status change violates the state machine."""

    def __init__(self, current, requested):
        super().__init__(
            f"Cannot transition from {current.value} to {requested.value}",
            {"current": current.value, "requested": requested.value},
        )
        self.current = current
        self.requested = requested


class ActiveRideExists(EcoRideError):
    """The rider already holds a ride in a non-terminal status."""


class RatingAlreadySubmitted(EcoRideError):
    pass


class NotEligible(EcoRideError):
    """Optional hard form of a failed eligibility evaluation."""

    def __init__(self, reason):
        super().__init__(
            f"Rider is not eligible for this plan ({reason.value})",
            {"reason": reason.value},
        )
        self.reason = reason


class RideNotFound(EcoRideError):
    pass


class PlanNotFound(EcoRideError):
    pass


class SubscriptionNotFound(EcoRideError):
    pass


class ActiveSubscriptionExists(EcoRideError):
    pass
