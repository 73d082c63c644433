"""
Event RSVP API - Main Application Entry Point

A capacity-bounded event RSVP service demonstrating:
- Race-free admission through atomic conditional updates in the store
- Swappable membership backends (PostgreSQL, Redis, in-memory)
- Structured logging with request correlation
- Prometheus metrics for admission outcomes and lost races
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rsvp.api.middleware import RequestLoggingMiddleware
from rsvp.api.router import api_router
from rsvp.core.config import get_settings
from rsvp.core.errors import RsvpError, StoreUnavailable
from rsvp.core.logging import get_logger, setup_logging
from rsvp.core.metrics import metrics_endpoint
from rsvp.schemas.event import ErrorResponse
from rsvp.services.interfaces.membership import MembershipStore
from rsvp.services.store_factory import close_membership_store, get_membership_store

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        store=settings.MEMBERSHIP_STORE,
    )

    store_health = await get_membership_store().health()
    if store_health["status"] == "ok":
        logger.info("membership_store_ready", backend=store_health["backend"])
    else:
        logger.warning("membership_store_unhealthy", **store_health)

    yield

    await close_membership_store()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event RSVP API with capacity-safe, idempotent admission",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(RsvpError)
async def rsvp_error_handler(request: Request, exc: RsvpError) -> JSONResponse:
    """Business outcomes become {success, error, message} bodies."""
    headers = None
    if isinstance(exc, StoreUnavailable):
        headers = {"Retry-After": "1"}
        logger.error("request_store_unavailable", operation=exc.operation, outcome_unknown=exc.outcome_unknown)
    else:
        logger.info("request_rejected", error=exc.kind.value, status_code=exc.status_code)

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.kind.value, message=exc.message).model_dump(by_alias=True),
        headers=headers,
    )


@app.get("/health", tags=["Health"])
async def health_check(store: MembershipStore = Depends(get_membership_store)):
    """Health check endpoint for Docker and load balancers."""
    store_health = await store.health()
    return {
        "status": "healthy" if store_health["status"] == "ok" else "degraded",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "store": store_health,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
