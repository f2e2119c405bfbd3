"""
System Controller - Presentation Layer

Operational routes for the orchestrator itself: backing-store health and
build/runtime metadata. Neither route needs a bearer token.
"""

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, HTTPException, Request, status

from diabetify.application.dtos.health_dto import ApplicationInfoDTO, SystemHealthDTO
from diabetify.application.use_cases.health_use_cases import (
    GetApplicationInfoUseCase,
    GetHealthStatusUseCase,
)
from diabetify.domain.entities.health import ServiceStatus
from diabetify.main.container import AppContainer
from diabetify.shared import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["System"])


@router.get(
    "/health",
    response_model=SystemHealthDTO,
    summary="Backing service health",
    description="""
    Reachability of the job store (MongoDB), the ML message bus (RabbitMQ)
    and the what-if result cache (Redis). The overall status is the worst
    dependency status.
    """,
)
@inject
async def health(
    get_health_status_use_case: GetHealthStatusUseCase = Depends(
        Provide[AppContainer.get_health_status_use_case]
    ),
) -> SystemHealthDTO:
    try:
        report = await get_health_status_use_case.execute()
    except Exception as exc:
        logger.error("system.health.unavailable", error=str(exc), exc_info=exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dependency health could not be evaluated",
        ) from exc

    impaired = [d.name for d in report.dependencies if d.status != ServiceStatus.UP]
    if impaired:
        logger.warning("system.health.impaired", dependencies=impaired)
    return report


@router.get(
    "/info",
    response_model=ApplicationInfoDTO,
    summary="Service metadata",
    description="Version, build, uptime, queue names and redacted broker URLs.",
)
@inject
async def info(
    request: Request,
    get_application_info_use_case: GetApplicationInfoUseCase = Depends(
        Provide[AppContainer.get_application_info_use_case]
    ),
) -> ApplicationInfoDTO:
    started_at = getattr(request.app.state, "started_at", None)
    try:
        return await get_application_info_use_case.execute(started_at)
    except Exception as exc:
        logger.error("system.info.unavailable", error=str(exc), exc_info=exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Service metadata could not be assembled",
        ) from exc
