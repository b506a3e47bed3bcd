# backend/gardiens/api/routes/health.py
# Santé de l'API : MongoDB et configuration de la passerelle IA.

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from gardiens.core.health_checks import check_ai_gateway, check_mongodb
from gardiens.core.settings import Settings, get_settings
from gardiens.models.base.health import HealthCheck

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthCheck,
    summary="État des dépendances",
    description="200 si MongoDB répond et que la passerelle IA est configurée, 503 sinon.",
    responses={503: {"model": HealthCheck, "description": "Au moins une dépendance est indisponible"}},
)
async def health(settings: Settings = Depends(get_settings)) -> JSONResponse:
    checks = {
        "database": await check_mongodb(),
        "ai_gateway": check_ai_gateway(settings),
    }
    degraded = any(result != "ok" for result in checks.values())
    report = HealthCheck(status="degraded" if degraded else "ok", version=settings.api_version, checks=checks)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE if degraded else status.HTTP_200_OK,
        content=report.model_dump(mode="json"),
    )
