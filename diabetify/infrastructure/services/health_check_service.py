"""Checks MongoDB, RabbitMQ and Redis for GET /health and GET /info."""

from __future__ import annotations

import asyncio
from time import perf_counter
from typing import Awaitable, Callable, Dict, List, Optional

import pika
import redis.asyncio as aioredis
import structlog

from diabetify.domain.entities.health import (
    DependencyStatus,
    ServiceStatus,
    SystemHealth,
    aggregate_status,
)
from diabetify.domain.ports.health_check import IHealthCheckService
from diabetify.infrastructure.database.mongo_database import MongoDatabase

logger = structlog.get_logger(__name__)


def _elapsed_ms(start: float) -> float:
    return (perf_counter() - start) * 1000


class HealthCheckService(IHealthCheckService):
    def __init__(
        self,
        mongo_database: Optional[MongoDatabase],
        broker_url: str,
        redis_url: str,
        *,
        socket_timeout: float = 5.0,
    ) -> None:
        self._mongo_database = mongo_database
        self._broker_url = broker_url
        self._redis_url = redis_url
        self._socket_timeout = socket_timeout

    async def evaluate(self) -> SystemHealth:
        """Run the three checks concurrently."""
        checks: Dict[str, Callable[[], Awaitable[DependencyStatus]]] = {
            "mongo": self._check_mongo,
            "rabbitmq": self._check_rabbitmq,
            "redis": self._check_redis,
        }
        results = await asyncio.gather(
            *(check() for check in checks.values()), return_exceptions=True
        )

        dependencies: List[DependencyStatus] = []
        for name, result in zip(checks, results):
            if isinstance(result, BaseException):
                logger.error("health.check.crashed", dependency=name, error=str(result))
                result = DependencyStatus(
                    name=name, status=ServiceStatus.DOWN, message=str(result)
                )
            dependencies.append(result)

        return SystemHealth(
            status=aggregate_status(dep.status for dep in dependencies),
            dependencies=dependencies,
        )

    async def _check_mongo(self) -> DependencyStatus:
        if not self._mongo_database:
            return DependencyStatus(
                name="mongo",
                status=ServiceStatus.UNKNOWN,
                message="Mongo database client not configured.",
            )
        start = perf_counter()
        try:
            await asyncio.to_thread(self._mongo_database.client.admin.command, "ping")
        except Exception as exc:
            return DependencyStatus(
                name="mongo",
                status=ServiceStatus.DOWN,
                message=f"MongoDB ping failed: {exc}",
                latency_ms=_elapsed_ms(start),
            )
        return DependencyStatus(
            name="mongo",
            status=ServiceStatus.UP,
            message="MongoDB ping successful",
            latency_ms=_elapsed_ms(start),
            details={"database": self._mongo_database.db.name},
        )

    async def _check_rabbitmq(self) -> DependencyStatus:
        if not self._broker_url:
            return DependencyStatus(
                name="rabbitmq",
                status=ServiceStatus.UNKNOWN,
                message="RabbitMQ URL not configured.",
            )

        def _connect_and_close() -> None:
            pika.BlockingConnection(pika.URLParameters(self._broker_url)).close()

        start = perf_counter()
        try:
            await asyncio.to_thread(_connect_and_close)
        except Exception as exc:
            return DependencyStatus(
                name="rabbitmq",
                status=ServiceStatus.DOWN,
                message=f"RabbitMQ connection failed: {exc}",
                latency_ms=_elapsed_ms(start),
            )
        return DependencyStatus(
            name="rabbitmq",
            status=ServiceStatus.UP,
            message="RabbitMQ connection successful",
            latency_ms=_elapsed_ms(start),
        )

    async def _check_redis(self) -> DependencyStatus:
        if not self._redis_url:
            return DependencyStatus(
                name="redis",
                status=ServiceStatus.UNKNOWN,
                message="Redis URL not configured.",
            )
        start = perf_counter()
        client = aioredis.from_url(
            self._redis_url,
            socket_connect_timeout=self._socket_timeout,
            socket_timeout=self._socket_timeout,
        )
        try:
            await client.ping()
        except Exception as exc:
            return DependencyStatus(
                name="redis",
                status=ServiceStatus.DOWN,
                message=f"Redis ping failed: {exc}",
                latency_ms=_elapsed_ms(start),
            )
        finally:
            await client.aclose()
        return DependencyStatus(
            name="redis",
            status=ServiceStatus.UP,
            message="Redis ping successful",
            latency_ms=_elapsed_ms(start),
        )
