"""
Rider subscription endpoints
============================

GET   /api/v1/subscriptions/current?rider_id=  -- the rider's current subscription
PATCH /api/v1/subscriptions/cancel             -- stop renewal or end it now
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ecoride.api.dependencies import get_db
from ecoride.api.middleware import limiter
from ecoride.api.schemas import (
    SubscriptionCancelRequest,
    SubscriptionCancelResponse,
    SubscriptionResponse,
)
from ecoride.domain import subscriptions as plans_domain
from ecoride.domain.entities import utcnow
from ecoride.domain.exceptions import SubscriptionNotFound
from ecoride.infrastructure.repositories import PlanRepository, SubscriptionRepository

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("/current", response_model=SubscriptionResponse, summary="Current subscription")
@limiter.limit("100/minute")
async def current_subscription(
    request: Request,
    rider_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    repo = SubscriptionRepository(db)
    subscription = await repo.current_for_rider(rider_id)
    if subscription is not None and plans_domain.expire_if_lapsed(subscription):
        await repo.save(subscription)
        subscription = None
    if subscription is None:
        raise HTTPException(status_code=404, detail="No active subscription")
    return SubscriptionResponse.model_validate(subscription)


@router.patch(
    "/cancel",
    response_model=SubscriptionCancelResponse,
    summary="Cancel the rider's subscription",
    description=(
        "Without ``immediate`` only auto-renewal stops. An immediate "
        "cancellation ends the subscription and refunds the unused days "
        "pro rata on the monthly price; refunds of 10 or less are not paid."
    ),
)
@limiter.limit("100/minute")
async def cancel_subscription(
    request: Request,
    body: SubscriptionCancelRequest,
    db: AsyncSession = Depends(get_db),
):
    sub_repo = SubscriptionRepository(db)
    plan_repo = PlanRepository(db)
    subscription = await sub_repo.current_for_rider(body.rider_id)
    if subscription is None:
        raise SubscriptionNotFound(f"rider {body.rider_id} has no active subscription")

    plan = await plan_repo.get(subscription.plan_id, for_update=True)
    refund = plans_domain.cancel_subscription(
        subscription, plan, immediate=body.immediate, now=utcnow()
    )
    await sub_repo.save(subscription)
    if plan is not None and body.immediate:
        await plan_repo.save(plan)
    return SubscriptionCancelResponse(
        subscription=SubscriptionResponse.model_validate(subscription),
        refund=refund,
    )
