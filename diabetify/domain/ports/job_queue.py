"""Domain port for the in-process job queue served by the worker pool."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Protocol

from diabetify.domain.entities.prediction_job import JobRequest


class IPredictionJobQueue(Protocol):
    async def submit_job(self, request: JobRequest) -> None:
        """Enqueue a request.

        Raises:
            WorkerNotRunningError: The pool is stopped.
            QueueFullError: No capacity freed up within the wait window.
        """
        ...

    def get_status(self) -> Dict[str, Any]: ...


class IResponseConsumer(Protocol):
    """Consumes ML responses; the handler returns False to reject a message."""

    @property
    def is_running(self) -> bool: ...

    def start(self, handler: Callable[[bytes, Optional[str]], bool]) -> None: ...

    def stop(self) -> None: ...
