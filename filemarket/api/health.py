"""Liveness and readiness probes."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from filemarket.api.dependencies import Container
from filemarket.api.schemas import HealthResponse
from filemarket.infrastructure.config import settings

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness: the process is up and serving."""
    return HealthResponse(
        status="healthy",
        service="filemarket-api",
        version=settings.api_version,
    )


@router.get("/ready")
async def readiness_check(container: Container) -> JSONResponse:
    """Readiness: 503 until the order store answers a ping."""
    ready = await container.ping()
    return JSONResponse(
        {
            "status": "ready" if ready else "unavailable",
            "storage_backend": settings.storage_backend,
        },
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
    )
