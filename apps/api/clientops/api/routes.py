from fastapi import APIRouter, HTTPException, status
from fastapi.responses import Response

from clientops.core.config import get_settings
from clientops.dashboards.api import router as dashboards_router
from clientops.dunning.api import router as dunning_router
from clientops.health.api import router as health_router
from clientops.metrics import generate_metrics_payload, metrics_content_type
from clientops.onboarding.api import router as onboarding_router
from clientops.pipeline.api import router as pipeline_router

router = APIRouter()
router.include_router(pipeline_router)
router.include_router(onboarding_router)
router.include_router(dunning_router)
router.include_router(health_router)
router.include_router(dashboards_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/metrics", tags=["system"])
def metrics() -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
