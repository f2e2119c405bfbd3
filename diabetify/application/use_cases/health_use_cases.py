"""Use cases behind GET /health, GET /info and GET /prediction/health."""

from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import structlog

from diabetify.application.dtos.health_dto import ApplicationInfoDTO, SystemHealthDTO
from diabetify.application.dtos.prediction_dto import MLConnectionStatusDTO
from diabetify.application.models import SystemInfo
from diabetify.domain.entities.errors import DomainError
from diabetify.domain.entities.health import ApplicationInfo
from diabetify.domain.ports.health_check import IHealthCheckService
from diabetify.domain.ports.job_queue import IPredictionJobQueue
from diabetify.domain.ports.ml_client import IMLClient

logger = structlog.get_logger(__name__)


def redact_url(url: str) -> str:
    """Drop credentials from a connection URL."""
    if not url:
        return url
    parsed = urlsplit(url)
    if not (parsed.username or parsed.password):
        return url
    netloc = parsed.hostname or ""
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    return urlunsplit((parsed.scheme, netloc, parsed.path, parsed.query, parsed.fragment))


class GetHealthStatusUseCase:
    def __init__(self, health_check_service: IHealthCheckService) -> None:
        self._health_check_service = health_check_service

    async def execute(self) -> SystemHealthDTO:
        return SystemHealthDTO.from_domain(await self._health_check_service.evaluate())


class GetApplicationInfoUseCase:
    """Application metadata plus a fresh dependency snapshot."""

    def __init__(
        self,
        health_check_service: IHealthCheckService,
        system_info: SystemInfo,
    ) -> None:
        self._health_check_service = health_check_service
        self._info = system_info

    async def execute(self, started_at: Optional[datetime]) -> ApplicationInfoDTO:
        system_health = await self._health_check_service.evaluate()

        now = datetime.now(timezone.utc)
        started = started_at or now

        info = ApplicationInfo(
            name=self._info.title,
            description=self._info.description,
            version=self._info.version,
            environment=self._info.environment,
            git_commit=self._info.git_commit,
            build_time=self._info.build_time,
            started_at=started,
            uptime_seconds=max(0.0, (now - started).total_seconds()),
            status=system_health.status,
            dependencies=system_health.dependencies,
            extras={
                "rabbitmq": {
                    "url": redact_url(self._info.rabbitmq_url),
                    "request_queue": self._info.request_queue,
                    "response_queue": self._info.response_queue,
                },
                "redis": {
                    "url": redact_url(self._info.redis_url),
                    "what_if_ttl_seconds": self._info.what_if_ttl_seconds,
                },
            },
        )
        return ApplicationInfoDTO.from_domain(info)


class CheckMLConnectionUseCase:
    """Worker status plus a health check message published to the ML service."""

    def __init__(self, job_queue: IPredictionJobQueue, ml_client: IMLClient) -> None:
        self._job_queue = job_queue
        self._ml_client = ml_client

    async def execute(self) -> MLConnectionStatusDTO:
        worker_status = self._job_queue.get_status()
        correlation_id: Optional[str] = None
        try:
            correlation_id = await self._ml_client.health_check_async()
            health_check = "message_sent"
        except DomainError as exc:
            logger.warning("ml_connection.health_check.failed", error=exc.message)
            health_check = "failed_to_send"

        healthy = all(
            bool(worker_status.get(key))
            for key in ("running", "rabbitmq_connected", "response_consumer_running")
        )
        return MLConnectionStatusDTO(
            status="healthy" if healthy else "unhealthy",
            message=(
                "ML service connection is healthy"
                if healthy
                else "ML service connection is not available"
            ),
            health_check=health_check,
            correlation_id=correlation_id,
            worker_status=worker_status,
            timestamp=datetime.now(timezone.utc),
        )
