"""Domain port for dispatching feature vectors to the ML service."""

from __future__ import annotations

from typing import Protocol, Sequence


class IMLClient(Protocol):
    """Fire-and-forget publisher; results come back on the response queue."""

    @property
    def is_connected(self) -> bool: ...

    def connect(self) -> None:
        """Open the broker connection and declare the queues."""
        ...

    async def predict_async(
        self, correlation_id: str, features: Sequence[float]
    ) -> None:
        """Validate and publish one prediction request.

        Raises:
            FeatureValidationError: The vector is rejected locally.
            BusUnavailableError: Publishing failed.
        """
        ...

    async def health_check_async(self) -> str:
        """Publish a health check message and return its correlation id."""
        ...

    def close(self) -> None: ...
