"""
Health Check Routes
===================

Liveness only: the service has no external dependency whose absence should
take it out of rotation (the gateway is called per request and its failures
are reported on the affected messages).
"""

from fastapi import APIRouter

from nanochat.application.api.dependencies import OrchestratorDep, SettingsDep
from nanochat.application.api.models import HealthResponse

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", response_model=HealthResponse)
async def health_check(orchestrator: OrchestratorDep, settings: SettingsDep) -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=settings.app.APP_VERSION,
        environment=settings.app.ENVIRONMENT,
        active_generations=orchestrator.active_generations,
    )
