from fastapi import APIRouter, Depends

from ragchat.api.deps import get_app_settings
from ragchat.config import Settings
from ragchat.models.responses import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse, summary="Liveness probe")
async def health(settings: Settings = Depends(get_app_settings)) -> HealthResponse:
    return HealthResponse(version=settings.app_version, service=settings.app_name)
