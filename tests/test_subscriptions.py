"""Unit tests for subscription plans and rider subscriptions."""

from datetime import date, datetime, timedelta, timezone

import pytest

from ecoride.domain import subscriptions as subs
from ecoride.domain.entities import (
    PlanAvailability,
    PlanDiscount,
    PlanEligibility,
    RiderProfile,
)
from ecoride.domain.enums import (
    DiscountStatus,
    DurationType,
    IneligibilityReason,
    SubscriptionStatus,
    VehicleType,
)
from ecoride.domain.exceptions import (
    ActiveSubscriptionExists,
    NotEligible,
    ValidationError,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
RIDER = RiderProfile(
    rider_id=1, is_phone_verified=True, date_of_birth=date(1990, 6, 1),
    total_rides=4, average_distance=3.2,
)


def make_plan(vehicle_type="bike", monthly=999, **kwargs):
    kwargs.setdefault("name", f"{vehicle_type.title()} {monthly}")
    kwargs.setdefault("description", "Unlimited electric rides")
    return subs.create_plan(
        vehicle_type=vehicle_type, monthly_price=monthly, now=NOW, **kwargs
    )


class TestCreatePlan:
    def test_derived_prices_and_defaults(self):
        plan = make_plan(monthly=999)
        assert plan.price.weekly == 300  # 299.7
        assert plan.price.daily == 80  # 79.92
        assert plan.benefits.extra_km_rate == 3.0
        assert plan.benefits.included_km == 100
        assert plan.original_price == plan.price
        assert plan.original_price is not plan.price
        assert not plan.is_recommended

    def test_car_extra_km_rate(self):
        assert make_plan("car", 2499).benefits.extra_km_rate == 8.0

    def test_plan_id(self):
        plan = make_plan(monthly=999)
        assert plan.plan_id.startswith("BIKE_999_")

    def test_explicit_prices_win(self):
        plan = make_plan(weekly_price=249, daily_price=49)
        assert (plan.price.weekly, plan.price.daily) == (249, 49)

    def test_identity_fields_are_write_once(self):
        plan = make_plan()
        with pytest.raises(AttributeError):
            plan.plan_id = "OTHER"
        with pytest.raises(AttributeError):
            plan.original_price = plan.price
        plan.price.monthly = 899
        assert plan.original_price.monthly == 999

    def test_cities_are_normalised(self):
        plan = make_plan(availability=PlanAvailability([" Bengaluru "], False))
        assert plan.availability.cities == ["bengaluru"]
        assert subs.is_available_in_city(plan, "BENGALURU")
        assert not subs.is_available_in_city(plan, "Mumbai")
        assert not subs.is_available_in_city(plan, None)
        assert subs.is_available_in_city(make_plan(), "Anywhere")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"name": "  "},
            {"monthly": 0},
            {"vehicle_type": "truck"},
            {"included_km": 0},
            {"short_description": "x" * 101},
            {"discount": PlanDiscount(percentage=120)},
            {"discount": PlanDiscount(percentage=10, max_redemptions=1,
                                      current_redemptions=2)},
            {"eligibility": PlanEligibility(min_age=40, max_age=30)},
        ],
    )
    def test_invalid_plan(self, kwargs):
        with pytest.raises(ValidationError):
            make_plan(**kwargs)


class TestDiscount:
    def test_no_discount(self):
        plan = make_plan()
        assert subs.discount_status(plan, NOW) is DiscountStatus.NONE
        assert subs.discounted_price(plan, "monthly", NOW) == 999

    def test_valid_discount(self):
        plan = make_plan(discount=PlanDiscount(percentage=20))
        assert subs.discount_status(plan, NOW) is DiscountStatus.VALID
        assert subs.discounted_price(plan, DurationType.MONTHLY, NOW) == 799  # 799.2
        assert subs.discounted_price(plan, DurationType.WEEKLY, NOW) == 240

    def test_window(self):
        plan = make_plan(discount=PlanDiscount(
            percentage=20,
            valid_from=NOW + timedelta(days=1),
            valid_till=NOW + timedelta(days=10),
        ))
        assert subs.discount_status(plan, NOW) is DiscountStatus.NOT_STARTED
        assert subs.discount_status(plan, NOW + timedelta(days=11)) is DiscountStatus.EXPIRED
        assert subs.discounted_price(plan, "monthly", NOW) == 999
        assert subs.discount_status(plan, NOW + timedelta(days=5)) is DiscountStatus.VALID

    def test_redemption_cap(self):
        plan = make_plan(discount=PlanDiscount(percentage=10, max_redemptions=2))
        assert subs.redeem_discount(plan, NOW)
        assert subs.redeem_discount(plan, NOW)
        assert not subs.redeem_discount(plan, NOW)
        assert plan.discount.current_redemptions == 2
        assert subs.discount_status(plan, NOW) is DiscountStatus.EXHAUSTED
        assert subs.discounted_price(plan, "monthly", NOW) == 999

    def test_uncapped_discount(self):
        plan = make_plan(discount=PlanDiscount(percentage=10))
        for _ in range(25):
            assert subs.redeem_discount(plan, NOW)

    def test_unknown_duration(self):
        with pytest.raises(ValidationError):
            subs.discounted_price(make_plan(), "yearly")

    def test_discounted_prices(self):
        plan = make_plan(discount=PlanDiscount(percentage=50))
        prices = subs.discounted_prices(plan, NOW)
        assert (prices.monthly, prices.weekly, prices.daily) == (500, 150, 40)


class TestDerivedFigures:
    def test_bike_savings_per_month(self):
        # 34 rides x 15 + (100 - 34) x 6 = 906
        assert subs.savings_per_month(make_plan(monthly=499)) == 407

    def test_savings_never_negative(self):
        assert subs.savings_per_month(make_plan(monthly=5000)) == 0

    def test_car_savings_per_month(self):
        # 20 rides x 30 + (100 - 40) x 15 = 1500
        assert subs.savings_per_month(make_plan("car", 1200)) == 300

    def test_cost_per_km(self):
        assert subs.cost_per_km(make_plan(monthly=999)) == 9.99

    def test_savings_percentage(self):
        plan = make_plan(monthly=1000)
        assert subs.savings_percentage(plan) == 0
        plan.price.monthly = 750
        assert subs.savings_percentage(plan) == 25


class TestEligibility:
    def test_eligible(self):
        result = subs.evaluate_eligibility(make_plan(), RIDER, NOW)
        assert result
        assert result.reason is None

    def test_inactive_plan(self):
        result = subs.evaluate_eligibility(make_plan(is_active=False), RIDER, NOW)
        assert result.reason is IneligibilityReason.PLAN_INACTIVE

    def test_verification_required(self):
        rider = RiderProfile(rider_id=2)
        result = subs.evaluate_eligibility(make_plan(), rider, NOW)
        assert result.reason is IneligibilityReason.VERIFICATION_REQUIRED

    def test_verification_not_required(self):
        plan = make_plan(eligibility=PlanEligibility(requires_verification=False))
        assert subs.evaluate_eligibility(plan, RiderProfile(rider_id=2), NOW)

    @pytest.mark.parametrize("dob", [date(2010, 1, 1), date(1950, 1, 1)])
    def test_age_out_of_range(self, dob):
        rider = RiderProfile(rider_id=3, is_phone_verified=True, date_of_birth=dob)
        result = subs.evaluate_eligibility(make_plan(), rider, NOW)
        assert result.reason is IneligibilityReason.AGE_OUT_OF_RANGE

    def test_unknown_age_is_not_checked(self):
        rider = RiderProfile(rider_id=3, is_phone_verified=True)
        assert subs.evaluate_eligibility(make_plan(), rider, NOW)

    def test_new_users_excluded(self):
        plan = make_plan(eligibility=PlanEligibility(exclude_new_users=True))
        rider = RiderProfile(rider_id=4, is_phone_verified=True)
        result = subs.evaluate_eligibility(plan, rider, NOW)
        assert result.reason is IneligibilityReason.NEW_USER_EXCLUDED
        assert subs.evaluate_eligibility(plan, RIDER, NOW)

    def test_ensure_eligible_raises(self):
        with pytest.raises(NotEligible) as exc:
            subs.ensure_eligible(make_plan(), RiderProfile(rider_id=2), NOW)
        assert exc.value.details == {"reason": "verification_required"}

    def test_rider_age_uses_fractional_years(self):
        assert subs.rider_age(date(2008, 3, 2), NOW) == 17
        assert subs.rider_age(date(1990, 6, 1), NOW) == 35


class TestRecommendation:
    def test_preferred_vehicle(self):
        assert subs.preferred_vehicle_type(RiderProfile(rider_id=1)) is VehicleType.BIKE
        assert subs.preferred_vehicle_type(RIDER) is VehicleType.BIKE
        long_haul = RiderProfile(rider_id=1, total_rides=3, average_distance=8)
        assert subs.preferred_vehicle_type(long_haul) is VehicleType.CAR

    def test_picks_best_converting_recommended_plan(self):
        low, high = make_plan(monthly=499), make_plan(monthly=999)
        car = make_plan("car", 2499)
        for plan in (low, high, car):
            plan.is_recommended = True
        low.stats.conversion_rate = 0.1
        high.stats.conversion_rate = 0.4
        assert subs.select_recommended_plan([low, high, car], RIDER) is high

    def test_none_when_nothing_recommended(self):
        assert subs.select_recommended_plan([make_plan()], RIDER) is None

    def test_set_recommended_clears_same_vehicle_siblings(self):
        a, b = make_plan(monthly=499), make_plan(monthly=999)
        car = make_plan("car", 2499)
        a.is_recommended = car.is_recommended = True
        cleared = subs.set_recommended(b, [a, b, car])
        assert cleared == [a]
        assert b.is_recommended and not a.is_recommended
        assert car.is_recommended


class TestStats:
    def test_add_and_remove_subscriber(self):
        plan = make_plan()
        subs.add_subscriber(plan, 999)
        subs.add_subscriber(plan)
        subs.remove_subscriber(plan)
        assert plan.stats.total_subscribers == 2
        assert plan.stats.active_subscribers == 1
        assert plan.stats.revenue == 999

    def test_remove_never_goes_negative(self):
        plan = make_plan()
        subs.remove_subscriber(plan)
        assert plan.stats.active_subscribers == 0

    def test_update_stats(self):
        plan = make_plan()
        subs.update_stats(plan, conversion_rate=0.3, renewal_rate=0.6)
        assert plan.stats.conversion_rate == 0.3
        with pytest.raises(ValidationError):
            subs.update_stats(plan, clicks=10)


class TestRiderSubscription:
    def test_start_monthly(self):
        plan = make_plan(discount=PlanDiscount(percentage=20))
        sub = subs.start_subscription(plan, RIDER, "monthly", None, NOW)
        assert sub.status is SubscriptionStatus.ACTIVE
        assert sub.expires_at == NOW + timedelta(days=30)
        assert sub.remaining_km == 100
        assert sub.amount_paid == 799
        assert sub.vehicle_type is VehicleType.BIKE

    def test_start_requires_eligibility(self):
        with pytest.raises(NotEligible):
            subs.start_subscription(make_plan(), RiderProfile(rider_id=2), now=NOW)

    def test_one_current_subscription(self):
        plan = make_plan()
        current = subs.start_subscription(plan, RIDER, "weekly", None, NOW)
        with pytest.raises(ActiveSubscriptionExists):
            subs.start_subscription(plan, RIDER, "daily", current, NOW)
        later = NOW + timedelta(days=8)
        assert subs.start_subscription(plan, RIDER, "daily", current, later)

    def test_expire_if_lapsed(self):
        sub = subs.start_subscription(make_plan(), RIDER, "daily", None, NOW)
        assert not subs.expire_if_lapsed(sub, NOW + timedelta(hours=23))
        assert subs.expire_if_lapsed(sub, NOW + timedelta(days=1))
        assert sub.status is SubscriptionStatus.EXPIRED

    def test_covers_ride(self):
        sub = subs.start_subscription(make_plan(), RIDER, now=NOW)
        assert subs.covers_ride(sub, "bike", NOW)
        assert not subs.covers_ride(sub, "car", NOW)
        assert not subs.covers_ride(None, "bike", NOW)
        assert not subs.covers_ride(sub, "bike", NOW + timedelta(days=31))

    def test_usage_drains_remaining_km(self):
        sub = subs.start_subscription(make_plan(), RIDER, now=NOW)
        subs.record_usage(sub, 60)
        subs.record_usage(sub, 55)
        assert sub.total_km_used == 115
        assert sub.remaining_km == 0
        assert not subs.covers_ride(sub, "bike", NOW)

    def test_cancel_at_period_end(self):
        plan = make_plan()
        sub = subs.start_subscription(plan, RIDER, now=NOW)
        assert subs.cancel_subscription(sub, plan, False, NOW) == 0
        assert sub.status is SubscriptionStatus.ACTIVE
        assert not sub.auto_renewal

    def test_cancel_immediately_refunds_pro_rata(self):
        plan = make_plan(monthly=900)
        sub = subs.start_subscription(plan, RIDER, now=NOW)
        subs.add_subscriber(plan, sub.amount_paid)
        refund = subs.cancel_subscription(sub, plan, True, NOW + timedelta(days=20))
        assert refund == 300  # 10 days x 900 / 30
        assert sub.status is SubscriptionStatus.CANCELLED
        assert plan.stats.active_subscribers == 0

    def test_small_refunds_are_dropped(self):
        plan = make_plan(monthly=99)
        sub = subs.start_subscription(plan, RIDER, "monthly", None, NOW)
        assert subs.cancel_subscription(sub, plan, True, NOW + timedelta(days=28)) == 0

    def test_cannot_cancel_twice(self):
        plan = make_plan()
        sub = subs.start_subscription(plan, RIDER, now=NOW)
        subs.cancel_subscription(sub, plan, True, NOW)
        with pytest.raises(ValidationError):
            subs.cancel_subscription(sub, plan, True, NOW)
