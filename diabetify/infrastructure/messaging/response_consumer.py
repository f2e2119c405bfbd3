"""
RabbitMQ Response Consumer - Infrastructure Layer

Consumes the ML response queue on a dedicated thread with its own
connection, one unacknowledged message at a time. The handler decides per
message whether to ack (True) or reject without requeue (False). A dropped
connection is re-established with exponential backoff until ``stop()``.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional, Tuple

import pika
import structlog
from pika.adapters.blocking_connection import BlockingChannel
from pika.exceptions import AMQPError

from diabetify.domain.entities.errors import BusUnavailableError

logger = structlog.get_logger(__name__)

DeliveryHandler = Callable[[bytes, Optional[str]], bool]
ConnectionFactory = Callable[[pika.URLParameters], pika.BlockingConnection]


class RabbitMQResponseConsumer:
    def __init__(
        self,
        amqp_url: str,
        queue_name: str,
        *,
        consumer_tag: str = "prediction-response-handler",
        prefetch_count: int = 1,
        startup_timeout: float = 10.0,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 30.0,
        connection_factory: Optional[ConnectionFactory] = None,
    ) -> None:
        self._amqp_url = amqp_url
        self.queue_name = queue_name
        self.consumer_tag = consumer_tag
        self._prefetch_count = prefetch_count
        self._startup_timeout = startup_timeout
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay
        self._connection_factory = connection_factory or pika.BlockingConnection
        self._thread: Optional[threading.Thread] = None
        self._connection: Optional[pika.BlockingConnection] = None
        self._channel: Optional[BlockingChannel] = None
        self._startup_error: Optional[Exception] = None
        self._stopping = threading.Event()

    @property
    def is_running(self) -> bool:
        """True while subscribed; False during a reconnect or after stop."""
        return self._thread_alive and self._channel is not None

    @property
    def _thread_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, handler: DeliveryHandler) -> None:
        """Subscribe and start consuming; returns once the consumer is registered.

        Raises:
            BusUnavailableError: The subscription could not be set up.
        """
        if self._thread_alive:
            return
        ready = threading.Event()
        self._startup_error = None
        self._stopping.clear()
        self._thread = threading.Thread(
            target=self._run,
            args=(handler, ready),
            name="ml-response-consumer",
            daemon=True,
        )
        self._thread.start()
        if not ready.wait(self._startup_timeout):
            raise BusUnavailableError("timed out subscribing to the response queue")
        if self._startup_error is not None:
            self._thread.join()
            self._thread = None
            raise BusUnavailableError(
                f"failed to consume from {self.queue_name}: {self._startup_error}"
            ) from self._startup_error
        logger.info("response_consumer.started", queue=self.queue_name)

    def stop(self, timeout: float = 10.0) -> None:
        thread, connection = self._thread, self._connection
        if thread is None:
            return
        self._stopping.set()
        if connection is not None and connection.is_open:
            try:
                connection.add_callback_threadsafe(self._cancel)
            except AMQPError as exc:
                logger.warning("response_consumer.stop.failed", error=str(exc))
        thread.join(timeout)
        self._thread = None
        logger.info("response_consumer.stopped", queue=self.queue_name)

    def _run(self, handler: DeliveryHandler, ready: threading.Event) -> None:
        try:
            connection, channel = self._subscribe(handler)
        except AMQPError as exc:
            self._startup_error = exc
            ready.set()
            return
        ready.set()

        while True:
            self._consume(connection, channel)
            if self._stopping.is_set():
                return
            subscription = self._resubscribe(handler)
            if subscription is None:
                return
            connection, channel = subscription

    def _subscribe(
        self, handler: DeliveryHandler
    ) -> Tuple[pika.BlockingConnection, BlockingChannel]:
        connection = self._connection_factory(pika.URLParameters(self._amqp_url))
        channel = connection.channel()
        channel.queue_declare(queue=self.queue_name, durable=True)
        channel.basic_qos(prefetch_count=self._prefetch_count)
        channel.basic_consume(
            queue=self.queue_name,
            on_message_callback=lambda ch, method, props, body: self._on_message(
                handler, ch, method, props, body
            ),
            auto_ack=False,
            consumer_tag=self.consumer_tag,
        )
        self._connection, self._channel = connection, channel
        return connection, channel

    def _consume(
        self, connection: pika.BlockingConnection, channel: BlockingChannel
    ) -> None:
        try:
            channel.start_consuming()
        except AMQPError as exc:
            logger.error("response_consumer.connection_lost", error=str(exc))
        finally:
            self._close(channel, connection)

    def _resubscribe(
        self, handler: DeliveryHandler
    ) -> Optional[Tuple[pika.BlockingConnection, BlockingChannel]]:
        """Retry until subscribed again; None once ``stop()`` has been requested."""
        delay = self._reconnect_delay
        while not self._stopping.wait(delay):
            try:
                subscription = self._subscribe(handler)
            except AMQPError as exc:
                delay = min(delay * 2, self._max_reconnect_delay)
                logger.warning(
                    "response_consumer.reconnect.failed", error=str(exc), retry_in=delay
                )
                continue
            logger.info("response_consumer.reconnected", queue=self.queue_name)
            return subscription
        return None

    def _on_message(
        self,
        handler: DeliveryHandler,
        channel: BlockingChannel,
        method: pika.spec.Basic.Deliver,
        properties: pika.spec.BasicProperties,
        body: bytes,
    ) -> None:
        correlation_id = getattr(properties, "correlation_id", None)
        try:
            should_ack = handler(body, correlation_id)
        except Exception as exc:
            logger.error(
                "response_consumer.handler.failed",
                correlation_id=correlation_id,
                error=str(exc),
                exc_info=exc,
            )
            should_ack = False

        if should_ack:
            channel.basic_ack(delivery_tag=method.delivery_tag)
        else:
            channel.basic_nack(delivery_tag=method.delivery_tag, requeue=False)

    def _cancel(self) -> None:
        if self._channel is not None and self._channel.is_open:
            self._channel.basic_cancel(self.consumer_tag)
            self._channel.stop_consuming()

    def _close(
        self, channel: BlockingChannel, connection: pika.BlockingConnection
    ) -> None:
        for resource in (channel, connection):
            if not resource.is_open:
                continue
            try:
                resource.close()
            except AMQPError as exc:
                logger.warning("response_consumer.close.failed", error=str(exc))
        self._channel = None
        self._connection = None
