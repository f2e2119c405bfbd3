"""
Prediction Job Worker - Infrastructure Layer

Owns the in-process bounded queue, the worker tasks that drain it, the
response consumer subscription and two housekeeping loops:

* recovery, which re-enqueues jobs left ``pending`` by a previous process;
* cleanup, which deletes terminal jobs past the retention window.

All tasks run on the application event loop. The response consumer runs on
its own thread and hands each delivery back to the loop.
"""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog

from diabetify.application.use_cases.job_processing_use_case import (
    PredictionJobProcessor,
)
from diabetify.application.use_cases.response_correlation_use_case import (
    ResponseCorrelator,
)
from diabetify.application.use_cases.result_routing_use_case import RoutingOutcome
from diabetify.domain.entities.errors import QueueFullError, WorkerNotRunningError
from diabetify.domain.entities.prediction_job import JobRequest
from diabetify.domain.ports.job_queue import IPredictionJobQueue, IResponseConsumer
from diabetify.domain.ports.ml_client import IMLClient
from diabetify.domain.ports.result_cache import IWhatIfResultCache
from diabetify.domain.repositories.prediction_job_repository import (
    IPredictionJobRepository,
)

logger = structlog.get_logger(__name__)

DEFAULT_QUEUE_CAPACITY = 2000
MIN_WORKER_COUNT = 3


def default_worker_count() -> int:
    return max(os.cpu_count() or 1, MIN_WORKER_COUNT)


class PredictionJobWorker(IPredictionJobQueue):
    """Fire-and-forget worker pool for prediction jobs."""

    def __init__(
        self,
        job_processor: PredictionJobProcessor,
        job_repository: IPredictionJobRepository,
        response_correlator: ResponseCorrelator,
        ml_client: IMLClient,
        response_consumer: IResponseConsumer,
        what_if_cache: IWhatIfResultCache,
        *,
        worker_count: Optional[int] = None,
        queue_capacity: int = DEFAULT_QUEUE_CAPACITY,
        submit_timeout: float = 5.0,
        publish_timeout: float = 30.0,
        recovery_delay: float = 5.0,
        recovery_batch_size: int = 50,
        cleanup_interval: float = 1800.0,
        job_retention_days: int = 7,
        idle_poll_interval: float = 1.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._job_processor = job_processor
        self._job_repository = job_repository
        self._response_correlator = response_correlator
        self._ml_client = ml_client
        self._response_consumer = response_consumer
        self._what_if_cache = what_if_cache

        self.worker_count = worker_count or default_worker_count()
        self.queue_capacity = queue_capacity
        self.submit_timeout = submit_timeout
        self.publish_timeout = publish_timeout
        self.recovery_delay = recovery_delay
        self.recovery_batch_size = recovery_batch_size
        self.cleanup_interval = cleanup_interval
        self.job_retention = timedelta(days=job_retention_days)
        self.idle_poll_interval = idle_poll_interval
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._lifecycle_lock = asyncio.Lock()
        self._running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Connect to the broker, subscribe to responses and spawn the tasks.

        Raises:
            BusUnavailableError: The broker is unreachable; nothing is left running.
        """
        async with self._lifecycle_lock:
            if self._running:
                return

            self._loop = asyncio.get_running_loop()
            self._queue = asyncio.Queue(maxsize=self.queue_capacity)
            self._stop_event = asyncio.Event()

            await asyncio.to_thread(self._ml_client.connect)
            try:
                await asyncio.to_thread(
                    self._response_consumer.start, self._handle_delivery
                )
            except Exception:
                await asyncio.to_thread(self._ml_client.close)
                raise

            self._tasks = [
                asyncio.create_task(self._worker_loop(index), name=f"prediction-worker-{index}")
                for index in range(self.worker_count)
            ]
            self._tasks.append(
                asyncio.create_task(self._recover_pending_jobs(), name="job-recovery")
            )
            self._tasks.append(
                asyncio.create_task(self._cleanup_loop(), name="job-cleanup")
            )
            self._running = True

        logger.info(
            "prediction_worker.started",
            worker_count=self.worker_count,
            queue_capacity=self.queue_capacity,
        )

    async def stop(self) -> None:
        """Drain in-flight jobs, unsubscribe and release broker and cache clients."""
        async with self._lifecycle_lock:
            if not self._running:
                return
            self._running = False

            if self._stop_event is not None:
                self._stop_event.set()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks = []

            await asyncio.to_thread(self._response_consumer.stop)
            await asyncio.to_thread(self._ml_client.close)
            await self._what_if_cache.close()

        logger.info("prediction_worker.stopped")

    async def submit_job(self, request: JobRequest) -> None:
        if not self._running or self._queue is None:
            raise WorkerNotRunningError()
        try:
            await asyncio.wait_for(self._queue.put(request), timeout=self.submit_timeout)
        except asyncio.TimeoutError:
            logger.warning("prediction_worker.queue_full", job_id=request.job_id)
            raise QueueFullError() from None
        logger.debug(
            "prediction_worker.enqueued",
            job_id=request.job_id,
            queue_size=self._queue.qsize(),
        )

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "worker_count": self.worker_count,
            "queue_size": self._queue.qsize() if self._queue is not None else 0,
            "queue_capacity": self.queue_capacity,
            "max_job_timeout": f"{self.publish_timeout:g}s",
            "cleanup_interval": f"{self.cleanup_interval:g}s",
            "rabbitmq_connected": self._ml_client.is_connected,
            "response_consumer_running": self._response_consumer.is_running,
            "pattern": "fire_and_forget",
        }

    def _handle_delivery(self, body: bytes, correlation_id: Optional[str]) -> bool:
        """Consumer-thread callback; True acknowledges the message."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return False
        future = asyncio.run_coroutine_threadsafe(
            self._response_correlator.handle(body), loop
        )
        outcome = future.result()
        logger.debug(
            "prediction_worker.response_handled",
            correlation_id=correlation_id,
            outcome=outcome.value,
        )
        return outcome is not RoutingOutcome.REJECTED

    async def _worker_loop(self, index: int) -> None:
        assert self._queue is not None and self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                request = await asyncio.wait_for(
                    self._queue.get(), timeout=self.idle_poll_interval
                )
            except asyncio.TimeoutError:
                continue
            try:
                await self._job_processor.process(request)
            except Exception as exc:
                logger.error(
                    "prediction_worker.job_crashed",
                    worker=index,
                    job_id=request.job_id,
                    error=str(exc),
                    exc_info=exc,
                )
            finally:
                self._queue.task_done()

    async def _wait_for_stop(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; True when stop was requested meanwhile."""
        assert self._stop_event is not None
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _recover_pending_jobs(self) -> None:
        if await self._wait_for_stop(self.recovery_delay):
            return
        assert self._queue is not None
        try:
            jobs = await self._job_repository.get_pending_jobs(self.recovery_batch_size)
        except Exception as exc:
            logger.error("prediction_worker.recovery.failed", error=str(exc))
            return

        recovered = 0
        for job in jobs:
            try:
                self._queue.put_nowait(job.to_request())
            except asyncio.QueueFull:
                logger.warning(
                    "prediction_worker.recovery.queue_full",
                    job_id=job.id,
                    remaining=len(jobs) - recovered,
                )
                break
            recovered += 1
        if recovered:
            logger.info("prediction_worker.recovery.enqueued", count=recovered)

    async def _cleanup_loop(self) -> None:
        while not await self._wait_for_stop(self.cleanup_interval):
            cutoff = self._clock() - self.job_retention
            try:
                deleted = await self._job_repository.cleanup_old_jobs(cutoff)
            except Exception as exc:
                logger.error("prediction_worker.cleanup.failed", error=str(exc))
                continue
            logger.info(
                "prediction_worker.cleanup.completed",
                deleted=deleted,
                cutoff=cutoff.isoformat(),
            )
