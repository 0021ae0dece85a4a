from datetime import datetime, timezone

from fastapi import APIRouter

from icompress.api.dependencies import AppSettings
from icompress.api.schemas import HealthResponse
from icompress.core.errors import StorageError
from icompress.services import get_storage_gateway

router = APIRouter(tags=["Health"])


@router.get("/", response_model=HealthResponse)
async def root() -> HealthResponse:
    return HealthResponse(
        message="iCompressVideo Backend is running!",
        status="OK",
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/health")
async def health_check() -> dict:
    return {"status": "healthy", "service": "icompress"}


@router.get("/health/ready")
async def readiness_check(settings: AppSettings) -> dict:
    try:
        get_storage_gateway(settings).check()
        return {"status": "ready", "storage": settings.storage_backend}
    except StorageError:
        return {"status": "not_ready", "storage": settings.storage_backend}
