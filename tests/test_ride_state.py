"""Unit tests for ride entity state transitions (State Pattern)."""

from datetime import datetime, timezone

import pytest

from ecoride.domain.entities import Cancellation, FareBreakdown, Location, Ride
from ecoride.domain.enums import (
    ACTIVE_RIDE_STATUSES,
    RIDE_TRANSITIONS,
    CancelledBy,
    PaymentStatus,
    RideStatus,
    VehicleType,
)
from ecoride.domain.exceptions import InvalidTransition, ValidationError

NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def make_ride(status: RideStatus = RideStatus.REQUESTED) -> Ride:
    return Ride(
        ride_id="ECOTEST000001",
        rider_id=1,
        vehicle_type=VehicleType.BIKE,
        pickup=Location("A", 12.97, 77.60),
        destination=Location("B", 12.93, 77.62),
        estimated_distance=5.5,
        estimated_duration=17,
        fare_breakdown=FareBreakdown(15, 27, 0, 0, 0, 0, 0, 0, 42),
        status=status,
    )


class TestRideStateMachine:
    def test_initial_status_is_requested(self):
        assert make_ride().status == RideStatus.REQUESTED

    # ── Valid transitions ─────────────────────────────────────────

    @pytest.mark.parametrize(
        "current, nxt",
        [
            (RideStatus.REQUESTED, RideStatus.SEARCHING),
            (RideStatus.SEARCHING, RideStatus.DRIVER_ASSIGNED),
            (RideStatus.DRIVER_ASSIGNED, RideStatus.DRIVER_ARRIVING),
            (RideStatus.DRIVER_ARRIVING, RideStatus.DRIVER_ARRIVED),
            (RideStatus.DRIVER_ARRIVED, RideStatus.IN_PROGRESS),
            (RideStatus.IN_PROGRESS, RideStatus.COMPLETED),
        ],
    )
    def test_happy_path_step(self, current, nxt):
        ride = make_ride(current)
        ride.transition_to(nxt, now=NOW)
        assert ride.status == nxt

    @pytest.mark.parametrize("current", sorted(ACTIVE_RIDE_STATUSES))
    def test_any_active_status_can_fail(self, current):
        ride = make_ride(current)
        ride.transition_to(RideStatus.FAILED, now=NOW)
        assert ride.status == RideStatus.FAILED

    def test_searching_to_cancelled_records_cancellation(self):
        ride = make_ride(RideStatus.SEARCHING)
        ride.transition_to(
            RideStatus.CANCELLED,
            now=NOW,
            cancellation=Cancellation("changed my mind", CancelledBy.USER, 0),
        )
        assert ride.status == RideStatus.CANCELLED
        assert ride.cancellation_reason == "changed my mind"
        assert ride.cancelled_by == CancelledBy.USER
        assert ride.cancellation_fee == 0

    def test_in_progress_can_still_be_cancelled(self):
        ride = make_ride(RideStatus.IN_PROGRESS)
        ride.transition_to(
            RideStatus.CANCELLED,
            cancellation=Cancellation("breakdown", CancelledBy.DRIVER, 0),
        )
        assert ride.status == RideStatus.CANCELLED

    # ── Side effects ──────────────────────────────────────────────

    def test_start_stamps_ride_started(self):
        ride = make_ride(RideStatus.DRIVER_ARRIVED)
        ride.transition_to(RideStatus.IN_PROGRESS, now=NOW)
        assert ride.tracking.ride_started == NOW

    def test_completion_stamps_times_and_payment(self):
        ride = make_ride(RideStatus.IN_PROGRESS)
        ride.transition_to(RideStatus.COMPLETED, now=NOW)
        assert ride.tracking.ride_completed == NOW
        assert ride.completed_at == NOW
        assert ride.payment_status == PaymentStatus.COMPLETED

    # ── Invalid transitions ───────────────────────────────────────

    def test_requested_to_completed_fails(self):
        ride = make_ride()
        with pytest.raises(InvalidTransition) as exc:
            ride.transition_to(RideStatus.COMPLETED)
        assert exc.value.current == RideStatus.REQUESTED
        assert exc.value.requested == RideStatus.COMPLETED
        assert ride.status == RideStatus.REQUESTED

    def test_skipping_a_step_fails(self):
        ride = make_ride(RideStatus.SEARCHING)
        with pytest.raises(InvalidTransition):
            ride.transition_to(RideStatus.IN_PROGRESS)

    def test_going_back_fails(self):
        ride = make_ride(RideStatus.DRIVER_ARRIVING)
        with pytest.raises(InvalidTransition):
            ride.transition_to(RideStatus.DRIVER_ASSIGNED)

    @pytest.mark.parametrize(
        "terminal", [RideStatus.COMPLETED, RideStatus.CANCELLED, RideStatus.FAILED]
    )
    def test_terminal_statuses_are_final(self, terminal):
        assert RIDE_TRANSITIONS[terminal] == set()
        ride = make_ride(terminal)
        for target in RideStatus:
            with pytest.raises(InvalidTransition):
                ride.transition_to(target)
        assert ride.status == terminal

    def test_error_message_names_both_statuses(self):
        ride = make_ride(RideStatus.COMPLETED)
        with pytest.raises(InvalidTransition, match="from completed to searching"):
            ride.transition_to(RideStatus.SEARCHING)

    # ── Cancellation validation ───────────────────────────────────

    def test_cancel_without_reason_is_rejected(self):
        ride = make_ride(RideStatus.SEARCHING)
        with pytest.raises(ValidationError):
            ride.transition_to(
                RideStatus.CANCELLED, cancellation=Cancellation("", CancelledBy.USER)
            )
        assert ride.status == RideStatus.SEARCHING

    def test_cancel_with_unknown_actor_is_rejected(self):
        ride = make_ride()
        with pytest.raises(ValidationError):
            ride.transition_to(
                RideStatus.CANCELLED, cancellation=Cancellation("x", "passenger")
            )
        assert ride.cancellation_reason is None

    def test_cancel_with_negative_fee_is_rejected(self):
        ride = make_ride()
        with pytest.raises(ValidationError):
            ride.transition_to(
                RideStatus.CANCELLED,
                cancellation=Cancellation("x", CancelledBy.USER, fee=-5),
            )

    @pytest.mark.parametrize("fee", [None, float("nan"), float("inf")])
    def test_cancel_with_missing_or_non_finite_fee_is_rejected(self, fee):
        ride = make_ride()
        with pytest.raises(ValidationError):
            ride.transition_to(
                RideStatus.CANCELLED,
                cancellation=Cancellation("x", CancelledBy.USER, fee=fee),
            )
        assert ride.status == RideStatus.REQUESTED
        assert ride.cancellation_fee == 0


class TestWriteOnceFields:
    def test_ride_id_cannot_be_reassigned(self):
        ride = make_ride()
        with pytest.raises(AttributeError):
            ride.ride_id = "ECOOTHER"

    def test_vehicle_type_cannot_be_reassigned(self):
        ride = make_ride()
        with pytest.raises(AttributeError):
            ride.vehicle_type = VehicleType.CAR
