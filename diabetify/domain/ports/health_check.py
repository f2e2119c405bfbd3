"""Domain port for dependency health checks."""

from __future__ import annotations

from typing import Protocol

from diabetify.domain.entities.health import SystemHealth


class IHealthCheckService(Protocol):
    async def evaluate(self) -> SystemHealth:
        """Check every backing service and aggregate the result."""
        ...
