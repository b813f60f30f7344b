"""
Subscription plan endpoints
===========================

GET   /api/v1/plans                         -- active plans (vehicle type / city)
GET   /api/v1/plans/popular                 -- most subscribed popular plans
GET   /api/v1/plans/featured                -- featured plans
GET   /api/v1/plans/search?q=               -- name / description / feature text
GET   /api/v1/plans/recommended?rider_id=   -- best recommended plan for a rider
GET   /api/v1/plans/{plan_id}               -- plan details
GET   /api/v1/plans/{plan_id}/price         -- discounted price for a duration
GET   /api/v1/plans/{plan_id}/eligibility   -- can this rider subscribe?
POST  /api/v1/plans                         -- create a plan
PATCH /api/v1/plans/{plan_id}/recommend     -- make it the recommended plan
PATCH /api/v1/plans/{plan_id}/stats         -- overwrite usage statistics
POST  /api/v1/plans/{plan_id}/redeem        -- count one discount redemption
POST  /api/v1/plans/{plan_id}/subscribe     -- start a rider subscription
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ecoride.api.dependencies import get_db
from ecoride.api.middleware import limiter
from ecoride.api.schemas import (
    EligibilityResponse,
    PlanCreateRequest,
    PlanDiscountResponse,
    PlanQuoteResponse,
    PlanResponse,
    PlanStatsUpdateRequest,
    RedeemResponse,
    SubscribeRequest,
    SubscriptionResponse,
)
from ecoride.domain import subscriptions as plans_domain
from ecoride.domain.entities import (
    PlanAvailability,
    PlanDiscount,
    PlanEligibility,
    PlanFeature,
    RiderProfile,
    SubscriptionPlan,
    utcnow,
)
from ecoride.domain.enums import DurationType, VehicleType
from ecoride.domain.exceptions import PlanNotFound
from ecoride.infrastructure.repositories import (
    PlanRepository,
    RideRepository,
    RiderRepository,
    SubscriptionRepository,
)

router = APIRouter(prefix="/plans", tags=["plans"])


def plan_response(plan: SubscriptionPlan, now: Optional[datetime] = None) -> PlanResponse:
    now = now or utcnow()
    d = plan.discount
    return PlanResponse(
        plan_id=plan.plan_id,
        name=plan.name,
        description=plan.description,
        short_description=plan.short_description,
        vehicle_type=plan.vehicle_type,
        price=plan.price,
        original_price=plan.original_price,
        discounted_price=plans_domain.discounted_prices(plan, now),
        benefits=plan.benefits,
        duration_days=plan.duration_days,
        features=plan.features,
        discount=PlanDiscountResponse(
            percentage=d.percentage,
            valid_from=d.valid_from,
            valid_till=d.valid_till,
            description=d.description,
            coupon_code=d.coupon_code,
            max_redemptions=d.max_redemptions,
            current_redemptions=d.current_redemptions,
            status=plans_domain.discount_status(plan, now),
        ),
        availability=plan.availability,
        eligibility=plan.eligibility,
        stats=plan.stats,
        is_active=plan.is_active,
        is_popular=plan.is_popular,
        is_featured=plan.is_featured,
        is_recommended=plan.is_recommended,
        display_order=plan.display_order,
        savings_per_month=plans_domain.savings_per_month(plan),
        cost_per_km=plans_domain.cost_per_km(plan),
        savings_percentage=plans_domain.savings_percentage(plan),
    )


async def _load(repo: PlanRepository, plan_id: str, for_update: bool = False) -> SubscriptionPlan:
    plan = await repo.get(plan_id, for_update=for_update)
    if plan is None:
        raise PlanNotFound(f"Plan {plan_id} not found")
    return plan


async def _rider_profile(db: AsyncSession, rider_id: int) -> RiderProfile:
    profile = await RiderRepository(db).get_profile(rider_id, RideRepository(db))
    if profile is None:
        raise HTTPException(status_code=404, detail="Rider not found")
    return profile


# ── Catalogue ─────────────────────────────────────────────────────────


@router.get("", response_model=list[PlanResponse], summary="List active plans")
@limiter.limit("100/minute")
async def list_plans(
    request: Request,
    vehicle_type: Optional[VehicleType] = None,
    city: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    plans = await PlanRepository(db).list_active(vehicle_type, city)
    return [plan_response(p, now) for p in plans]


@router.get("/popular", response_model=list[PlanResponse], summary="Popular plans")
@limiter.limit("100/minute")
async def popular_plans(
    request: Request,
    limit: int = Query(3, ge=1, le=20),
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    return [plan_response(p, now) for p in await PlanRepository(db).popular(limit)]


@router.get("/featured", response_model=list[PlanResponse], summary="Featured plans")
@limiter.limit("100/minute")
async def featured_plans(
    request: Request,
    vehicle_type: Optional[VehicleType] = None,
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    return [plan_response(p, now) for p in await PlanRepository(db).featured(vehicle_type)]


@router.get("/search", response_model=list[PlanResponse], summary="Search plans")
@limiter.limit("100/minute")
async def search_plans(
    request: Request,
    q: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    return [plan_response(p, now) for p in await PlanRepository(db).search(q)]


@router.get(
    "/recommended",
    response_model=PlanResponse,
    summary="Recommended plan for a rider",
    description="Bike for new riders or short average trips, car from 5 km on.",
)
@limiter.limit("100/minute")
async def recommended_plan(
    request: Request,
    rider_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    rider = await _rider_profile(db, rider_id)
    candidates = await PlanRepository(db).recommended_candidates(
        plans_domain.preferred_vehicle_type(rider)
    )
    plan = plans_domain.select_recommended_plan(candidates, rider)
    if plan is None:
        raise HTTPException(status_code=404, detail="No recommended plan")
    return plan_response(plan)


@router.get("/{plan_id}", response_model=PlanResponse, summary="Plan details")
@limiter.limit("100/minute")
async def get_plan(request: Request, plan_id: str, db: AsyncSession = Depends(get_db)):
    return plan_response(await _load(PlanRepository(db), plan_id))


@router.get("/{plan_id}/price", response_model=PlanQuoteResponse, summary="Plan price")
@limiter.limit("100/minute")
async def plan_price(
    request: Request,
    plan_id: str,
    duration: DurationType = DurationType.MONTHLY,
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    plan = await _load(PlanRepository(db), plan_id)
    return PlanQuoteResponse(
        plan_id=plan.plan_id,
        duration=duration,
        price=plan.price.for_duration(duration),
        discounted_price=plans_domain.discounted_price(plan, duration, now),
        discount_status=plans_domain.discount_status(plan, now),
    )


@router.get(
    "/{plan_id}/eligibility",
    response_model=EligibilityResponse,
    summary="Evaluate rider eligibility",
)
@limiter.limit("100/minute")
async def plan_eligibility(
    request: Request,
    plan_id: str,
    rider_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    plan = await _load(PlanRepository(db), plan_id)
    rider = await _rider_profile(db, rider_id)
    result = plans_domain.evaluate_eligibility(plan, rider)
    return EligibilityResponse(
        plan_id=plan.plan_id,
        rider_id=rider_id,
        eligible=result.eligible,
        reason=result.reason,
    )


# ── Administration ────────────────────────────────────────────────────


@router.post("", status_code=201, response_model=PlanResponse, summary="Create a plan")
@limiter.limit("100/minute")
async def create_plan(
    request: Request,
    body: PlanCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    plan = plans_domain.create_plan(
        name=body.name,
        description=body.description,
        short_description=body.short_description,
        vehicle_type=body.vehicle_type,
        monthly_price=body.monthly_price,
        weekly_price=body.weekly_price,
        daily_price=body.daily_price,
        included_km=body.included_km,
        extra_km_rate=body.extra_km_rate,
        unlimited_rides=body.unlimited_rides,
        priority_booking=body.priority_booking,
        no_surge_charges=body.no_surge_charges,
        free_cancellation=body.free_cancellation,
        customer_support=body.customer_support,
        duration_days=body.duration_days,
        features=[
            PlanFeature(f.title, f.description or "", f.included) for f in body.features
        ],
        discount=PlanDiscount(**body.discount.model_dump()) if body.discount else None,
        availability=PlanAvailability(cities=body.cities, is_universal=body.is_universal),
        eligibility=(
            PlanEligibility(**body.eligibility.model_dump()) if body.eligibility else None
        ),
        is_active=body.is_active,
        is_popular=body.is_popular,
        is_featured=body.is_featured,
        display_order=body.display_order,
    )
    await PlanRepository(db).add(plan)
    return plan_response(plan)


@router.patch(
    "/{plan_id}/recommend",
    response_model=PlanResponse,
    summary="Make this the recommended plan for its vehicle type",
)
@limiter.limit("100/minute")
async def recommend_plan(request: Request, plan_id: str, db: AsyncSession = Depends(get_db)):
    plan = await PlanRepository(db).set_recommended(plan_id)
    if plan is None:
        raise PlanNotFound(f"Plan {plan_id} not found")
    return plan_response(plan)


@router.patch("/{plan_id}/stats", response_model=PlanResponse, summary="Update plan stats")
@limiter.limit("100/minute")
async def update_plan_stats(
    request: Request,
    plan_id: str,
    body: PlanStatsUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    repo = PlanRepository(db)
    plan = await _load(repo, plan_id, for_update=True)
    plans_domain.update_stats(plan, **body.model_dump(exclude_none=True))
    return plan_response(await repo.save(plan))


@router.post("/{plan_id}/redeem", response_model=RedeemResponse, summary="Redeem discount")
@limiter.limit("100/minute")
async def redeem_discount(request: Request, plan_id: str, db: AsyncSession = Depends(get_db)):
    repo = PlanRepository(db)
    await _load(repo, plan_id)
    redeemed = await repo.redeem_discount(plan_id, utcnow())
    return RedeemResponse(plan_id=plan_id, redeemed=redeemed)


@router.post(
    "/{plan_id}/subscribe",
    status_code=201,
    response_model=SubscriptionResponse,
    summary="Subscribe a rider to this plan",
    responses={
        403: {"description": "Rider is not eligible for the plan."},
        409: {"description": "Rider already has an active subscription."},
    },
)
@limiter.limit("100/minute")
async def subscribe(
    request: Request,
    plan_id: str,
    body: SubscribeRequest,
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    plan_repo = PlanRepository(db)
    sub_repo = SubscriptionRepository(db)
    plan = await _load(plan_repo, plan_id, for_update=True)
    rider = await _rider_profile(db, body.rider_id)

    current = await sub_repo.current_for_rider(body.rider_id)
    if current is not None and plans_domain.expire_if_lapsed(current, now):
        await sub_repo.save(current)

    subscription = plans_domain.start_subscription(plan, rider, body.duration, current, now)
    subscription.auto_renewal = body.auto_renewal
    # the row lock on the plan serialises redemptions for it
    if not plans_domain.redeem_discount(plan, now):
        subscription.amount_paid = plan.price.for_duration(body.duration)
    plans_domain.add_subscriber(plan, subscription.amount_paid)

    await sub_repo.add(subscription)
    await plan_repo.save(plan)
    return SubscriptionResponse.model_validate(subscription)
