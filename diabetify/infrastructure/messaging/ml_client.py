"""
RabbitMQ ML Dispatch Client - Infrastructure Layer

Publishes prediction requests and health checks to the ML service on the
default exchange. pika's BlockingConnection is not thread-safe, so every
channel operation runs under one lock; publishes are pushed off the event
loop with ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence, Tuple

import pika
import structlog
from pika.adapters.blocking_connection import BlockingChannel
from pika.exceptions import AMQPError

from diabetify.application.dtos.ml_dto import (
    HealthCheckEnvelope,
    PredictionRequestEnvelope,
)
from diabetify.domain.entities.errors import BusUnavailableError
from diabetify.domain.ports.ml_client import IMLClient
from diabetify.domain.services.feature_validator import validate_feature_vector

logger = structlog.get_logger(__name__)

DEFAULT_REQUEST_QUEUE = "ml.prediction.request"
DEFAULT_RESPONSE_QUEUE = "ml.prediction.hybrid_response"
DEFAULT_HEALTH_REQUEST_QUEUE = "ml.health.request"
DEFAULT_HEALTH_RESPONSE_QUEUE = "ml.health.response"

ConnectionFactory = Callable[[pika.URLParameters], pika.BlockingConnection]


class RabbitMQMLClient(IMLClient):
    """Fire-and-forget publisher for the ML prediction service."""

    def __init__(
        self,
        amqp_url: str,
        response_queue: str = DEFAULT_RESPONSE_QUEUE,
        request_queue: str = DEFAULT_REQUEST_QUEUE,
        health_request_queue: str = DEFAULT_HEALTH_REQUEST_QUEUE,
        health_response_queue: str = DEFAULT_HEALTH_RESPONSE_QUEUE,
        *,
        connection_factory: Optional[ConnectionFactory] = None,
    ) -> None:
        self._amqp_url = amqp_url
        self.response_queue = response_queue
        self.request_queue = request_queue
        self.health_request_queue = health_request_queue
        self.health_response_queue = health_response_queue
        self._connection_factory = connection_factory or pika.BlockingConnection
        self._lock = threading.Lock()
        self._connection: Optional[pika.BlockingConnection] = None
        self._channel: Optional[BlockingChannel] = None
        self._closed = True

    @property
    def queues(self) -> Tuple[str, ...]:
        return (
            self.request_queue,
            self.response_queue,
            self.health_request_queue,
            self.health_response_queue,
        )

    @property
    def is_connected(self) -> bool:
        return (
            not self._closed
            and self._connection is not None
            and self._connection.is_open
            and self._channel is not None
            and self._channel.is_open
        )

    def connect(self) -> None:
        """Open the connection and declare all four durable queues.

        Raises:
            BusUnavailableError: The broker cannot be reached.
        """
        with self._lock:
            self._closed = False
            self._open_channel()
        logger.info("ml_client.connected", queues=list(self.queues))

    async def predict_async(
        self, correlation_id: str, features: Sequence[float]
    ) -> None:
        validate_feature_vector(features)
        envelope = PredictionRequestEnvelope(
            features=list(features),
            correlation_id=correlation_id,
            timestamp=datetime.now(timezone.utc),
        )
        await asyncio.to_thread(
            self._publish,
            self.request_queue,
            envelope.to_body(),
            correlation_id,
            self.response_queue,
        )
        logger.info(
            "ml_client.prediction.published",
            job_id=correlation_id,
            queue=self.request_queue,
        )

    async def health_check_async(self) -> str:
        correlation_id = f"health_{time.time_ns()}"
        envelope = HealthCheckEnvelope(
            correlation_id=correlation_id, timestamp=datetime.now(timezone.utc)
        )
        await asyncio.to_thread(
            self._publish,
            self.health_request_queue,
            envelope.to_body(),
            correlation_id,
            self.health_response_queue,
        )
        logger.info("ml_client.health_check.published", correlation_id=correlation_id)
        return correlation_id

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._teardown()
        logger.info("ml_client.closed")

    def _publish(
        self, queue: str, body: bytes, correlation_id: str, reply_to: str
    ) -> None:
        with self._lock:
            if self._closed:
                raise BusUnavailableError("RabbitMQ client is not connected")
            channel = self._channel
            if channel is None or not channel.is_open or not self._connection_open():
                # Idle BlockingConnections lose heartbeats; reopen once.
                channel = self._open_channel()
            properties = pika.BasicProperties(
                content_type="application/json",
                correlation_id=correlation_id,
                reply_to=reply_to,
                delivery_mode=pika.spec.PERSISTENT_DELIVERY_MODE,
                timestamp=int(time.time()),
            )
            try:
                channel.basic_publish(
                    exchange="", routing_key=queue, body=body, properties=properties
                )
            except AMQPError as exc:
                logger.error(
                    "ml_client.publish.failed",
                    queue=queue,
                    correlation_id=correlation_id,
                    error=str(exc),
                )
                self._teardown()
                raise BusUnavailableError(
                    f"failed to publish async request: {exc}"
                ) from exc

    def _connection_open(self) -> bool:
        return self._connection is not None and self._connection.is_open

    def _open_channel(self) -> BlockingChannel:
        self._teardown()
        try:
            connection = self._connection_factory(pika.URLParameters(self._amqp_url))
            channel = connection.channel()
            for queue in self.queues:
                channel.queue_declare(queue=queue, durable=True)
            channel.confirm_delivery()
        except AMQPError as exc:
            logger.error("ml_client.connect.failed", error=str(exc))
            raise BusUnavailableError(f"failed to connect to RabbitMQ: {exc}") from exc
        self._connection = connection
        self._channel = channel
        return channel

    def _teardown(self) -> None:
        channel, connection = self._channel, self._connection
        self._channel = None
        self._connection = None
        for resource in (channel, connection):
            if resource is None or not resource.is_open:
                continue
            try:
                resource.close()
            except AMQPError as exc:
                logger.warning("ml_client.close.failed", error=str(exc))
