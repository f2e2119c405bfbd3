"""Domain port for the short-lived what-if result cache."""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol


class IWhatIfResultCache(Protocol):
    ttl_seconds: int

    async def store_result(
        self, job_id: str, result: Dict[str, Any], ttl_seconds: Optional[int] = None
    ) -> None:
        """Raises CacheUnavailableError when the cache cannot be written."""
        ...

    async def get_result(self, job_id: str) -> Optional[Dict[str, Any]]:
        """None when the entry expired or never existed."""
        ...

    async def close(self) -> None: ...
