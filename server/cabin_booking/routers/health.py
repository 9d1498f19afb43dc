"""Health check router."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..core.clock import utcnow
from ..core.observability import SERVICE_VERSION
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


@router.post("/ping", response_model=HealthResponse)
async def health_ping(request: Request) -> JSONResponse:
    """
    Health check endpoint.

    Returns current service status, timestamp and background worker state.
    """
    worker_manager = getattr(request.app.state, "worker_manager", None)
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=utcnow(),
        version=SERVICE_VERSION,
        workers=worker_manager.get_worker_status() if worker_manager else {},
    )

    logger.debug(
        "Health check requested",
        extra={
            "status": response_data.status,
            "timestamp": response_data.timestamp.isoformat()
        }
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )
