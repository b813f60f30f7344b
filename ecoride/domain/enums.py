"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    REQUESTED = "requested"
    SEARCHING = "searching"
    DRIVER_ASSIGNED = "driver_assigned"
    DRIVER_ARRIVING = "driver_arriving"
    DRIVER_ARRIVED = "driver_arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_RIDE_STATUSES: frozenset[RideStatus] = frozenset(
    {RideStatus.COMPLETED, RideStatus.CANCELLED, RideStatus.FAILED}
)

# A rider may hold at most one ride in any of these
ACTIVE_RIDE_STATUSES: frozenset[RideStatus] = frozenset(
    s for s in RideStatus if s not in TERMINAL_RIDE_STATUSES
)

_HAPPY_PATH = [
    RideStatus.REQUESTED,
    RideStatus.SEARCHING,
    RideStatus.DRIVER_ASSIGNED,
    RideStatus.DRIVER_ARRIVING,
    RideStatus.DRIVER_ARRIVED,
    RideStatus.IN_PROGRESS,
    RideStatus.COMPLETED,
]

# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    current: {nxt, RideStatus.CANCELLED, RideStatus.FAILED}
    for current, nxt in zip(_HAPPY_PATH, _HAPPY_PATH[1:])
}
RIDE_TRANSITIONS.update({s: set() for s in TERMINAL_RIDE_STATUSES})


class VehicleType(str, enum.Enum):
    BIKE = "bike"
    CAR = "car"


class ServiceType(str, enum.Enum):
    REGULAR = "regular"
    SUBSCRIPTION = "subscription"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    UPI = "upi"
    WALLET = "wallet"
    CASH = "cash"
    SUBSCRIPTION = "subscription"


class CancelledBy(str, enum.Enum):
    USER = "user"
    DRIVER = "driver"
    SYSTEM = "system"


class RatingSide(str, enum.Enum):
    """Who is giving the rating."""

    USER = "user"
    DRIVER = "driver"


class DurationType(str, enum.Enum):
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    DAILY = "daily"


DURATION_DAYS: dict[DurationType, int] = {
    DurationType.DAILY: 1,
    DurationType.WEEKLY: 7,
    DurationType.MONTHLY: 30,
}


class SupportTier(str, enum.Enum):
    BASIC = "basic"
    PRIORITY = "priority"
    ALL_HOURS = "24x7"


class DiscountStatus(str, enum.Enum):
    VALID = "valid"
    NONE = "none"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


class IneligibilityReason(str, enum.Enum):
    PLAN_INACTIVE = "plan_inactive"
    VERIFICATION_REQUIRED = "verification_required"
    AGE_OUT_OF_RANGE = "age_out_of_range"
    NEW_USER_EXCLUDED = "new_user_excluded"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
