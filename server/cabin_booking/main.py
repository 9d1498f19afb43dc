"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .core.config import settings
from .core.database import async_session_factory, bound_engine, close_db, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    SERVICE_VERSION,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import booking, health, metrics
from .services.booking_locker import BookingLocker
from .services.collaborators import (
    EventPublisher,
    LoggingEventPublisher,
    PaymentGateway,
    PriceLookup,
    RefundPolicyLookup,
    UnconfiguredPaymentGateway,
)
from .services.hold_reclaimer import HoldReclaimer
from .services.refund_policy import DatabaseRefundPolicyLookup, RefundPolicyCache
from .services.refund_service import CancellationRefundResolver
from .workers import HoldReclaimerWorker
from .workers.manager import WorkerManager

# Configure structured logging
setup_structured_logging()

# Configure traditional logging for compatibility
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Handles startup and shutdown events for the FastAPI application.
    """
    # Startup
    logger.info("Starting booking engine")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")

    worker_manager: WorkerManager = app.state.worker_manager
    db_engine = bound_engine(app.state.session_factory)

    try:
        # Setup observability
        setup_tracing()
        setup_metrics()
        instrument_sqlalchemy(db_engine)
        logger.info("Observability setup completed")

        # Initialize database
        await init_db(db_engine)
        logger.info("Database initialized successfully")

        if app.state.run_workers:
            await worker_manager.start_all()
            logger.info("Background workers started successfully")
    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down booking engine")

    try:
        await worker_manager.stop_all()
        await close_db(db_engine)
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error during application cleanup: {e}")

    logger.info("Application shutdown complete")


def create_app(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    price_lookup: Optional[PriceLookup] = None,
    payment_gateway: Optional[PaymentGateway] = None,
    event_publisher: Optional[EventPublisher] = None,
    policy_lookup: Optional[RefundPolicyLookup] = None,
    run_workers: Optional[bool] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Collaborators default to the database-backed implementations; tests and
    embedding applications pass their own.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Cabin Booking Engine",
        description="RPC-over-HTTP API for room, per-guest and buyout cabin bookings with time-bound holds and policy-driven refunds",
        version=SERVICE_VERSION,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    session_factory = session_factory or async_session_factory
    event_publisher = event_publisher or LoggingEventPublisher()

    locker = BookingLocker(
        session_factory=session_factory,
        price_lookup=price_lookup,
        event_publisher=event_publisher,
    )
    policies = policy_lookup or RefundPolicyCache(DatabaseRefundPolicyLookup(session_factory))

    worker_manager = WorkerManager()
    worker_manager.register(HoldReclaimerWorker(HoldReclaimer(locker)))

    app.state.session_factory = session_factory
    app.state.booking_locker = locker
    app.state.refund_resolver = CancellationRefundResolver(
        locker,
        payment_gateway or UnconfiguredPaymentGateway(),
        policies,
        event_publisher,
    )
    app.state.worker_manager = worker_manager
    app.state.run_workers = settings.run_background_workers if run_workers is None else run_workers

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "traceparent", "tracestate"],
    )

    # Setup custom middleware
    setup_middleware(app, enable_logging=True)

    # Instrument FastAPI with OpenTelemetry
    instrument_fastapi(app)

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        description="Check if the service is healthy and responsive",
        response_model=dict,
    )
    async def health_check():
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "environment": settings.environment,
            "debug": settings.debug,
        }

    @app.get(
        "/ready",
        tags=["Health"],
        summary="Readiness Check",
        description="Check that the database accepts queries",
        response_model=dict,
    )
    async def readiness_check(request: Request):
        """
        Readiness check endpoint that verifies the database connection.

        Returns:
            dict: Readiness status information, 503 when the database is unreachable
        """
        try:
            async with request.app.state.session_factory() as db:
                await db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.warning(f"Readiness check failed: {e}")
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", "service": SERVICE_NAME, "checks": {"database": "error"}},
            )

        return {
            "status": "ready",
            "service": SERVICE_NAME,
            "checks": {"database": "ok"},
        }

    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        description="Get detailed information about the service",
        response_model=dict,
    )
    async def service_info():
        """
        Service information endpoint.

        Returns:
            dict: Detailed service information
        """
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "description": "Inventory locking and refund resolution for cabin bookings",
            "environment": settings.environment,
            "debug": settings.debug,
            "features": {
                "authentication": True,
                "hold_ttl_minutes": settings.hold_ttl_minutes,
                "background_workers": app.state.run_workers,
                "tracing": True,
                "problem_details": True,
            },
            "endpoints": {
                "health": "/health",
                "readiness": "/ready",
                "info": "/info",
                "metrics": "/metrics",
                "docs": "/docs" if settings.debug else None,
                "redoc": "/redoc" if settings.debug else None,
            },
        }

    # Register API routers
    app.include_router(health.router)
    app.include_router(booking.router)
    app.include_router(metrics.router)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cabin_booking.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
