"""
FastAPI Application Entry Point

TableServe Feedback Service.

Endpoints:
    - POST /api/orders/track/{order_number}/feedback: Customer feedback submission
    - GET /api/orders/restaurants/{restaurant_id}/feedback: Restaurant feedback listing
    - GET /api/orders/zones/{zone_id}/feedback: Zone feedback listing
    - GET /health: System health check
"""

import asyncio
import sys
import logging
from datetime import datetime, timezone
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession
import redis

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from tableserve.core.config import get_settings, setup_logging
from tableserve.database import get_db, init_db, engine
from tableserve.models import OrderType
from tableserve.schemas import (
    FeedbackSubmitRequest,
    FeedbackSubmitResponse,
    RestaurantFeedbackResponse,
    ZoneFeedbackResponse,
    ErrorResponse,
    HealthResponse,
)
from tableserve.services.excel_manager import feedback_export_rows
from tableserve.services.feedback import (
    BaseOrderStore,
    FeedbackError,
    FeedbackPropagator,
    FeedbackQuery,
    FeedbackResult,
    IneligibleOrderError,
    InvalidFeedbackError,
    OrderNotFoundError,
    PersistenceError,
    get_order_store,
)
from tableserve.services.feedback.reports import get_restaurant_feedback, get_zone_feedback
from tableserve.services.feedback.rules import plain_value
from tableserve.tasks import export_feedback_to_excel

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    problems = settings.validate_production_config()
    if problems:
        logger.warning(f"Unsafe production config: {problems}")

    logger.info("Application ready")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Customer feedback for TableServe orders. Zone order reviews are "
        "propagated to the completed shop orders of the zone."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES & HELPERS
# =============================================================================

async def get_store(db: AsyncSession = Depends(get_db)) -> BaseOrderStore:
    """Order store bound to the request's database session."""
    return get_order_store(db)


def feedback_http_error(exc: FeedbackError) -> HTTPException:
    """Translate a feedback service error into an HTTP error."""
    if isinstance(exc, InvalidFeedbackError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, OrderNotFoundError):
        return HTTPException(status_code=404, detail="Order not found or not eligible for feedback")
    if isinstance(exc, IneligibleOrderError):
        return HTTPException(status_code=400, detail={"error": str(exc), "reason": exc.reason})
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=503, detail="Order storage unavailable, please retry")
    return HTTPException(status_code=500, detail=str(exc))


def queue_feedback_export(result: FeedbackResult) -> None:
    """Queue an Excel export of every order the submission rated."""
    if not settings.feedback_export_enabled:
        return

    rows = feedback_export_rows(result)
    if not rows:
        return

    try:
        export_feedback_to_excel.delay(rows)
    except Exception as e:
        # Feedback is already committed at this point
        logger.error(f"Could not queue feedback export for {result.order.order_number}: {e}")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    store: BaseOrderStore = Depends(get_store),
) -> HealthResponse:
    """Verify all system components are operational."""

    db_status = "healthy" if await store.health_check() else "unhealthy"

    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except redis.RedisError as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    overall = "operational" if all(
        s == "healthy" for s in [db_status, redis_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        order_store=store.provider_name,
        timestamp=datetime.now(),
    )


# =============================================================================
# FEEDBACK ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders/track/{order_number}/feedback",
    response_model=FeedbackSubmitResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    tags=["Feedback"],
    summary="Submit Order Feedback",
)
async def submit_order_feedback(
    order_number: str,
    payload: FeedbackSubmitRequest,
    store: BaseOrderStore = Depends(get_store),
) -> FeedbackSubmitResponse:
    """
    Rate a tracked order.

    The customer identifies the order by its number and their phone;
    both are matched case- and format-insensitively. Ratings on a zone
    order are also saved to the zone's completed shop orders.
    """
    propagator = FeedbackPropagator(store)

    try:
        result = await propagator.submit_feedback(
            order_number,
            payload.phone,
            payload.rating,
            payload.comment,
            payload.is_public,
        )
    except PersistenceError as e:
        partial = e.partial_result
        if partial is not None:
            logger.error(
                f"Partial feedback fan-out for {partial.order.order_number}: "
                f"{partial.outcome_counts()}"
            )
        raise feedback_http_error(e)
    except FeedbackError as e:
        raise feedback_http_error(e)

    queue_feedback_export(result)

    order = result.order
    order_type = plain_value(order.order_type)
    is_zone = order_type == OrderType.ZONE_MAIN.value

    return FeedbackSubmitResponse(
        success=True,
        message="Thank you for your feedback!",
        data={
            "order_number": order.order_number,
            "order_type": order_type,
            "rating": order.feedback.rating,
            "comment": order.feedback.comment,
            "is_public": order.feedback.is_public,
            "submitted_at": order.feedback.submitted_at,
            "target": result.target.value,
            "feedback_saved_to": "zone_and_shops" if is_zone else "single_order",
            "children": [child.to_dict() for child in result.children],
        },
    )


@app.get(
    "/api/orders/restaurants/{restaurant_id}/feedback",
    response_model=RestaurantFeedbackResponse,
    tags=["Feedback"],
    summary="Restaurant Feedback",
)
async def restaurant_feedback(
    restaurant_id: str,
    rating: Optional[int] = Query(None, ge=1, le=5),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=settings.feedback_page_limit_max),
    store: BaseOrderStore = Depends(get_store),
) -> RestaurantFeedbackResponse:
    """Feedback on a restaurant's direct orders and its zone shop orders."""
    query = FeedbackQuery(
        rating=rating,
        date_from=as_utc(date_from),
        date_to=as_utc(date_to),
        page=page,
        limit=limit,
    )
    try:
        data = await get_restaurant_feedback(store, restaurant_id, query)
    except FeedbackError as e:
        raise feedback_http_error(e)

    return RestaurantFeedbackResponse(success=True, data=data)


@app.get(
    "/api/orders/zones/{zone_id}/feedback",
    response_model=ZoneFeedbackResponse,
    tags=["Feedback"],
    summary="Zone Feedback",
)
async def zone_feedback(
    zone_id: str,
    rating: Optional[int] = Query(None, ge=1, le=5),
    shop_id: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=settings.feedback_page_limit_max),
    store: BaseOrderStore = Depends(get_store),
) -> ZoneFeedbackResponse:
    """Feedback on a zone's main orders and shop orders."""
    query = FeedbackQuery(
        rating=rating,
        date_from=as_utc(date_from),
        date_to=as_utc(date_to),
        shop_id=None if shop_id == "all" else shop_id,
        page=page,
        limit=limit,
    )
    try:
        data = await get_zone_feedback(store, zone_id, query)
    except FeedbackError as e:
        raise feedback_http_error(e)

    return ZoneFeedbackResponse(success=True, data=data)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tableserve.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
