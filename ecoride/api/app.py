"""
FastAPI application factory.

* Registers routes for rides, plans, subscriptions and admin.
* Maps domain exceptions to HTTP status codes.
* Starts / stops the stale-search sweeper via lifespan events.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ecoride.api.errors import register_exception_handlers
from ecoride.api.middleware import limiter
from ecoride.api.routes import admin, plans, rides, subscriptions
from ecoride.config import settings
from ecoride.workers import ride_sweeper as _sweeper

logging.basicConfig(level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the sweeper on startup; stop on shutdown."""
    if settings.sweeper_enabled:
        await _sweeper.start_sweeper_loop()
    yield
    if settings.sweeper_enabled:
        await _sweeper.stop_sweeper_loop()


def create_app() -> FastAPI:
    app = FastAPI(
        title="EcoRide Core API",
        description=(
            "Ride lifecycle for electric bike and car trips: booking, "
            "itemised fares, eco-impact tracking, and subscription plans "
            "with discounts, eligibility and recommendations."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    register_exception_handlers(app)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(plans.router, prefix="/api/v1")
    app.include_router(subscriptions.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
