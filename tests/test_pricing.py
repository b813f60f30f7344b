"""Unit tests for the fare engine and rounding helpers."""

import pytest

from ecoride.domain.distance import estimate_trip, haversine_km
from ecoride.domain.entities import Location
from ecoride.domain.enums import RideStatus, VehicleType
from ecoride.domain.exceptions import ValidationError
from ecoride.domain.money import round_half_up, round_to_unit
from ecoride.domain.pricing import (
    TARIFFS,
    FareAdjustments,
    FareEngine,
    calculate_fare,
    default_cancellation_fee,
)


class TestTariffs:
    def test_bike_within_included_km_pays_base_only(self):
        fare = calculate_fare(VehicleType.BIKE, 0.8)
        assert fare.base_fare == 15.0
        assert fare.distance_fare == 0.0
        assert fare.total == 15.0

    def test_bike_five_and_a_half_km(self):
        fare = calculate_fare("bike", 5.5)
        assert fare.base_fare == 15.0
        assert fare.distance_fare == 27.0  # (5.5 - 1) * 6
        assert fare.subscription_discount == 0.0
        assert fare.total == 42.0

    def test_car_ten_km(self):
        fare = calculate_fare(VehicleType.CAR, 10)
        assert fare.distance_fare == 120.0  # (10 - 2) * 15
        assert fare.total == 150.0

    def test_zero_distance_is_allowed(self):
        assert calculate_fare(VehicleType.CAR, 0).total == 30.0

    def test_tariff_table(self):
        assert TARIFFS[VehicleType.BIKE].distance_fare(3) == 12.0
        assert TARIFFS[VehicleType.CAR].distance_fare(1.5) == 0.0


class TestSubscriptionRides:
    def test_short_car_subscription_ride_is_free(self):
        fare = calculate_fare(VehicleType.CAR, 1, is_subscription_ride=True)
        assert fare.subscription_discount == 30.0
        assert fare.total == 0.0

    def test_subscription_waives_base_and_distance_only(self):
        fare = calculate_fare(
            VehicleType.BIKE, 5.5, True, FareAdjustments(taxes=3.5, tip=10)
        )
        assert fare.subscription_discount == 42.0
        assert fare.total == 13.5


class TestAdjustments:
    def test_charges_are_added_and_discount_subtracted(self):
        fare = calculate_fare(
            VehicleType.BIKE,
            5.5,
            adjustments=FareAdjustments(
                time_fare=4, surge_pricing=6, discount=10, taxes=2.5, tip=5
            ),
        )
        assert fare.total == 49.5

    def test_adjustments_are_rounded(self):
        fare = calculate_fare(
            VehicleType.CAR, 2, adjustments=FareAdjustments(surge_pricing=6.255)
        )
        assert fare.surge_pricing == 6.26

    def test_total_never_negative(self):
        fare = calculate_fare(
            VehicleType.BIKE, 1, adjustments=FareAdjustments(discount=100)
        )
        assert fare.total == 0.0
        assert fare.discount == 100.0

    def test_negative_adjustment_rejected(self):
        with pytest.raises(ValidationError):
            FareAdjustments(tip=-1)


class TestValidation:
    def test_unknown_vehicle_type(self):
        with pytest.raises(ValidationError, match="vehicle_type"):
            calculate_fare("scooter", 3)

    def test_missing_vehicle_type(self):
        with pytest.raises(ValidationError):
            calculate_fare(None, 3)

    @pytest.mark.parametrize("distance", [-0.1, float("nan"), None, "far"])
    def test_bad_distance(self, distance):
        with pytest.raises(ValidationError):
            calculate_fare(VehicleType.CAR, distance)


class TestRounding:
    def test_half_up_on_decimal_representation(self):
        assert round(2.675, 2) == 2.67
        assert round_half_up(2.675) == 2.68
        assert round_half_up(1.155) == 1.16

    def test_round_to_unit(self):
        assert round_to_unit(149.7) == 150
        assert round_to_unit(299.5) == 300
        assert round_to_unit(80.4) == 80


class TestCancellationFeePolicy:
    statuses = [RideStatus.DRIVER_ASSIGNED, RideStatus.DRIVER_ARRIVING]

    def test_fee_once_driver_committed(self):
        assert default_cancellation_fee(RideStatus.DRIVER_ASSIGNED, 20, self.statuses) == 20
        assert default_cancellation_fee(RideStatus.DRIVER_ARRIVING, 20, self.statuses) == 20

    def test_no_fee_while_searching(self):
        assert default_cancellation_fee(RideStatus.SEARCHING, 20, self.statuses) == 0


class TestFareEngine:
    def setup_method(self):
        self.engine = FareEngine()
        self.pickup = Location("MG Road", 12.9756, 77.6066)
        self.destination = Location("Koramangala", 12.9352, 77.6245)

    def test_haversine_same_point_is_zero(self):
        assert haversine_km(12.97, 77.6, 12.97, 77.6) == 0.0

    def test_haversine_one_degree_latitude(self):
        assert haversine_km(0, 0, 1, 0) == pytest.approx(111.19, abs=0.01)

    def test_estimate_trip_duration_is_three_minutes_per_km(self):
        distance, duration = estimate_trip(self.pickup, self.destination)
        assert duration == round(distance * 3)

    def test_estimate_matches_calculate_fare(self):
        estimate = self.engine.estimate(self.pickup, self.destination, "bike")
        distance, _ = estimate_trip(self.pickup, self.destination)
        assert estimate.vehicle_type == VehicleType.BIKE
        assert estimate.fare_breakdown == calculate_fare(VehicleType.BIKE, distance)
        assert estimate.distance == round_half_up(distance)
        assert estimate.eco_impact.co2_saved > 0

    def test_subscription_estimate_total(self):
        estimate = self.engine.estimate(
            self.pickup, self.destination, VehicleType.CAR, is_subscription_ride=True
        )
        assert estimate.fare_breakdown.total == 0.0
