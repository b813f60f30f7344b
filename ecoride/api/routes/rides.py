"""
Ride endpoints
==============

POST  /api/v1/rides/estimate            -- fare + eco-impact estimate
POST  /api/v1/rides                     -- book a ride (201 Created)
GET   /api/v1/rides/active?rider_id=    -- the rider's non-terminal ride
GET   /api/v1/rides/history?rider_id=   -- newest first, paginated
GET   /api/v1/rides/eco-stats?rider_id= -- totals over completed rides
GET   /api/v1/rides/{ride_id}           -- ride details
PATCH /api/v1/rides/{ride_id}/search    -- requested -> searching
PATCH /api/v1/rides/{ride_id}/assign    -- searching -> driver_assigned
PATCH /api/v1/rides/{ride_id}/arriving  -- driver on the way
PATCH /api/v1/rides/{ride_id}/arrived   -- driver at pickup
PATCH /api/v1/rides/{ride_id}/start     -- ride in progress
PATCH /api/v1/rides/{ride_id}/fail      -- no driver found
PATCH /api/v1/rides/{ride_id}/cancel    -- cancel with reason / actor
PATCH /api/v1/rides/{ride_id}/complete  -- finalise with actual telemetry
POST  /api/v1/rides/{ride_id}/location  -- driver location ping
POST  /api/v1/rides/{ride_id}/distance  -- record actual distance so far
POST  /api/v1/rides/{ride_id}/rate      -- rider or driver feedback
POST  /api/v1/rides/{ride_id}/sos       -- raise the SOS flag

Every mutating endpoint loads the ride with a row lock, applies one
lifecycle operation and writes the result back in the same transaction.
"""

from typing import Optional

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ecoride.api.dependencies import get_db, get_redis_client
from ecoride.api.middleware import limiter
from ecoride.api.schemas import (
    ActualDistanceRequest,
    DriverAssignRequest,
    EcoStatsResponse,
    FareEstimateRequest,
    FareEstimateResponse,
    LocationPingRequest,
    RatingRequest,
    RatingResponse,
    RideCancelRequest,
    RideCompleteRequest,
    RideCreateRequest,
    RideHistoryItem,
    RideHistoryResponse,
    RideResponse,
    RoutePointResponse,
    SosRequest,
)
from ecoride.config import settings
from ecoride.domain import lifecycle
from ecoride.domain.distance import estimate_trip
from ecoride.domain.entities import Location, Ride, utcnow
from ecoride.domain.exceptions import ActiveRideExists, RideNotFound
from ecoride.domain.pricing import FareAdjustments, FareEngine, default_cancellation_fee
from ecoride.domain.subscriptions import covers_ride, record_usage
from ecoride.infrastructure.locks import booking_lock
from ecoride.infrastructure.repositories import (
    DriverRepository,
    RideRepository,
    RiderRepository,
    SubscriptionRepository,
)

router = APIRouter(prefix="/rides", tags=["rides"])


async def _load(repo: RideRepository, ride_id: str) -> Ride:
    ride = await repo.get(ride_id, for_update=True)
    if ride is None:
        raise RideNotFound(f"Ride {ride_id} not found")
    return ride


def _location(schema) -> Location:
    return Location(**schema.model_dump())


# ── Booking ───────────────────────────────────────────────────────────


@router.post(
    "/estimate",
    response_model=FareEstimateResponse,
    summary="Estimate fare and eco-impact for a trip",
)
@limiter.limit("100/minute")
async def estimate_fare(request: Request, body: FareEstimateRequest):
    estimate = FareEngine().estimate(
        _location(body.pickup),
        _location(body.destination),
        body.vehicle_type,
        body.is_subscription_ride,
    )
    return FareEstimateResponse.model_validate(estimate)


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Book a ride",
    responses={409: {"description": "The rider already has an active ride."}},
)
@limiter.limit("100/minute")
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis_client),
):
    if await RiderRepository(db).get_by_id(body.rider_id) is None:
        raise HTTPException(status_code=404, detail="Rider not found")

    lock = booking_lock(redis, body.rider_id, settings.booking_lock_ttl_seconds)
    if not await lock.acquire():
        raise ActiveRideExists(
            f"a booking for rider {body.rider_id} is already in progress"
        )
    try:
        now = utcnow()
        pickup, destination = _location(body.pickup), _location(body.destination)
        distance, duration = estimate_trip(pickup, destination)
        if body.estimated_distance is not None:
            distance = body.estimated_distance
        if body.estimated_duration is not None:
            duration = body.estimated_duration

        subscription = await SubscriptionRepository(db).current_for_rider(body.rider_id)
        adjustments = None
        if body.adjustments is not None:
            adjustments = FareAdjustments(**body.adjustments.model_dump())

        ride = lifecycle.create_ride(
            rider_id=body.rider_id,
            vehicle_type=body.vehicle_type,
            pickup=pickup,
            destination=destination,
            estimated_distance=distance,
            estimated_duration=duration,
            is_subscription_ride=covers_ride(subscription, body.vehicle_type, now),
            adjustments=adjustments,
            special_requests=body.special_requests,
            scheduled_for=body.scheduled_for,
            now=now,
        )
        await RideRepository(db).add(ride)
        # visible to the next booking before the lock goes away
        await db.commit()
    finally:
        await lock.release()
    return RideResponse.model_validate(ride)


# ── Rider queries ─────────────────────────────────────────────────────


@router.get("/active", response_model=RideResponse, summary="Rider's active ride")
@limiter.limit("100/minute")
async def get_active_ride(
    request: Request,
    rider_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    ride = await RideRepository(db).get_active_for_rider(rider_id)
    if ride is None:
        raise HTTPException(status_code=404, detail="No active ride")
    return RideResponse.model_validate(ride)


@router.get("/history", response_model=RideHistoryResponse, summary="Ride history")
@limiter.limit("100/minute")
async def get_ride_history(
    request: Request,
    rider_id: int = Query(...),
    limit: Optional[int] = Query(None, ge=1, le=100),
    skip: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    repo = RideRepository(db)
    limit = limit or settings.history_page_size
    entries = await repo.history(rider_id, limit=limit, skip=skip)
    items = [
        RideHistoryItem(
            **RideResponse.model_validate(e.ride).model_dump(),
            driver_name=e.driver_name,
            driver_rating_snapshot=e.driver_rating,
        )
        for e in entries
    ]
    return RideHistoryResponse(
        rides=items,
        total=await repo.count_for_rider(rider_id),
        limit=limit,
        skip=skip,
    )


@router.get("/eco-stats", response_model=EcoStatsResponse, summary="Eco totals")
@limiter.limit("100/minute")
async def get_eco_stats(
    request: Request,
    rider_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    stats = await RideRepository(db).eco_stats(rider_id)
    return EcoStatsResponse.model_validate(stats)


@router.get("/{ride_id}", response_model=RideResponse, summary="Get ride details")
@limiter.limit("100/minute")
async def get_ride(
    request: Request,
    ride_id: str,
    db: AsyncSession = Depends(get_db),
):
    ride = await RideRepository(db).get(ride_id)
    if ride is None:
        raise HTTPException(status_code=404, detail="Ride not found")
    return RideResponse.model_validate(ride)


# ── Dispatch-driven transitions ───────────────────────────────────────


@router.patch("/{ride_id}/search", response_model=RideResponse, summary="Start driver search")
@limiter.limit("100/minute")
async def start_search(request: Request, ride_id: str, db: AsyncSession = Depends(get_db)):
    repo = RideRepository(db)
    ride = await _load(repo, ride_id)
    lifecycle.start_search(ride)
    return RideResponse.model_validate(await repo.save(ride))


@router.patch("/{ride_id}/assign", response_model=RideResponse, summary="Assign a driver")
@limiter.limit("100/minute")
async def assign_driver(
    request: Request,
    ride_id: str,
    body: DriverAssignRequest,
    db: AsyncSession = Depends(get_db),
):
    repo = RideRepository(db)
    ride = await _load(repo, ride_id)
    driver = await DriverRepository(db).get_snapshot(body.driver_id)
    if driver is None:
        raise HTTPException(status_code=404, detail="Driver not found")
    lifecycle.assign_driver(ride, driver, body.estimated_arrival)
    return RideResponse.model_validate(await repo.save(ride))


@router.patch("/{ride_id}/arriving", response_model=RideResponse, summary="Driver en route")
@limiter.limit("100/minute")
async def driver_arriving(request: Request, ride_id: str, db: AsyncSession = Depends(get_db)):
    repo = RideRepository(db)
    ride = await _load(repo, ride_id)
    lifecycle.mark_driver_arriving(ride)
    return RideResponse.model_validate(await repo.save(ride))


@router.patch("/{ride_id}/arrived", response_model=RideResponse, summary="Driver at pickup")
@limiter.limit("100/minute")
async def driver_arrived(request: Request, ride_id: str, db: AsyncSession = Depends(get_db)):
    repo = RideRepository(db)
    ride = await _load(repo, ride_id)
    lifecycle.mark_driver_arrived(ride)
    return RideResponse.model_validate(await repo.save(ride))


@router.patch("/{ride_id}/start", response_model=RideResponse, summary="Start the ride")
@limiter.limit("100/minute")
async def start_ride(request: Request, ride_id: str, db: AsyncSession = Depends(get_db)):
    repo = RideRepository(db)
    ride = await _load(repo, ride_id)
    lifecycle.start_ride(ride)
    return RideResponse.model_validate(await repo.save(ride))


@router.patch("/{ride_id}/fail", response_model=RideResponse, summary="Mark search failed")
@limiter.limit("100/minute")
async def fail_ride(request: Request, ride_id: str, db: AsyncSession = Depends(get_db)):
    repo = RideRepository(db)
    ride = await _load(repo, ride_id)
    lifecycle.fail_ride(ride)
    return RideResponse.model_validate(await repo.save(ride))


@router.patch(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description=(
        "Allowed from any non-terminal status. Without an explicit fee the "
        "configured fee applies once a driver is assigned or on the way."
    ),
)
@limiter.limit("100/minute")
async def cancel_ride(
    request: Request,
    ride_id: str,
    body: RideCancelRequest,
    db: AsyncSession = Depends(get_db),
):
    repo = RideRepository(db)
    ride = await _load(repo, ride_id)
    fee = body.fee
    if fee is None:
        fee = default_cancellation_fee(
            ride.status, settings.cancellation_fee, settings.cancellation_fee_statuses
        )
    lifecycle.cancel_ride(ride, body.reason, body.cancelled_by, fee)
    return RideResponse.model_validate(await repo.save(ride))


@router.patch("/{ride_id}/complete", response_model=RideResponse, summary="Complete the ride")
@limiter.limit("100/minute")
async def complete_ride(
    request: Request,
    ride_id: str,
    body: RideCompleteRequest,
    db: AsyncSession = Depends(get_db),
):
    repo = RideRepository(db)
    ride = await _load(repo, ride_id)
    lifecycle.complete_ride(
        ride, body.actual_distance, body.actual_duration, body.payment_method
    )
    await repo.save(ride)

    if ride.is_subscription_ride:
        subs = SubscriptionRepository(db)
        subscription = await subs.current_for_rider(ride.rider_id)
        if subscription is not None and subscription.vehicle_type is ride.vehicle_type:
            record_usage(subscription, ride.actual_distance)
            await subs.save(subscription)
    return RideResponse.model_validate(ride)


# ── Telemetry, safety & feedback ──────────────────────────────────────


@router.post("/{ride_id}/location", response_model=RoutePointResponse, summary="Location ping")
@limiter.limit("100/minute")
async def update_location(
    request: Request,
    ride_id: str,
    body: LocationPingRequest,
    db: AsyncSession = Depends(get_db),
):
    repo = RideRepository(db)
    ride = await _load(repo, ride_id)
    point = lifecycle.update_driver_location(ride, body.latitude, body.longitude, body.timestamp)
    await repo.save(ride)
    return RoutePointResponse.model_validate(point)


@router.post("/{ride_id}/distance", response_model=RideResponse, summary="Record distance")
@limiter.limit("100/minute")
async def record_distance(
    request: Request,
    ride_id: str,
    body: ActualDistanceRequest,
    db: AsyncSession = Depends(get_db),
):
    repo = RideRepository(db)
    ride = await _load(repo, ride_id)
    lifecycle.record_actual_distance(ride, body.actual_distance)
    return RideResponse.model_validate(await repo.save(ride))


@router.post("/{ride_id}/rate", response_model=RatingResponse, summary="Rate a ride")
@limiter.limit("100/minute")
async def rate_ride(
    request: Request,
    ride_id: str,
    body: RatingRequest,
    db: AsyncSession = Depends(get_db),
):
    repo = RideRepository(db)
    ride = await _load(repo, ride_id)
    entry = lifecycle.rate_ride(ride, body.rated_by, body.rating, body.feedback, body.tags)
    await repo.save(ride)
    return RatingResponse.model_validate(entry)


@router.post("/{ride_id}/sos", response_model=RideResponse, summary="Activate SOS")
@limiter.limit("100/minute")
async def activate_sos(
    request: Request,
    ride_id: str,
    body: SosRequest,
    db: AsyncSession = Depends(get_db),
):
    repo = RideRepository(db)
    ride = await _load(repo, ride_id)
    lifecycle.activate_sos(ride, body.emergency_contacts)
    return RideResponse.model_validate(await repo.save(ride))
