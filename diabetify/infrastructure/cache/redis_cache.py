"""
Redis What-If Result Cache - Infrastructure Layer

What-if results are never persisted; they live in Redis under
``whatif:<job_id>`` for ``ttl_seconds`` after completion.
"""

from __future__ import annotations

import json
import time
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from diabetify.domain.entities.errors import CacheUnavailableError
from diabetify.domain.ports.result_cache import IWhatIfResultCache

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 3600
KEY_PREFIX = "whatif:"


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class RedisWhatIfResultCache(IWhatIfResultCache):
    def __init__(
        self,
        redis_url: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        *,
        socket_timeout: float = 5.0,
        client_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        factory = client_factory or aioredis.from_url
        self._client = factory(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
        )
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key_for(job_id: str) -> str:
        return f"{KEY_PREFIX}{job_id}"

    async def store_result(
        self, job_id: str, result: Dict[str, Any], ttl_seconds: Optional[int] = None
    ) -> None:
        ttl = ttl_seconds or self.ttl_seconds
        stored_at = int(time.time())
        payload = dict(result, stored_at=stored_at, expires_at=stored_at + ttl)
        try:
            await self._client.set(
                self.key_for(job_id), json.dumps(payload, default=_json_default), ex=ttl
            )
        except RedisError as exc:
            raise CacheUnavailableError(f"failed to store what-if result: {exc}") from exc
        logger.info("what_if_cache.stored", job_id=job_id, ttl_seconds=ttl)

    async def get_result(self, job_id: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self._client.get(self.key_for(job_id))
        except RedisError as exc:
            raise CacheUnavailableError(f"failed to read what-if result: {exc}") from exc
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("what_if_cache.corrupt_entry", job_id=job_id)
            return None

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except RedisError as exc:
            logger.warning("what_if_cache.close.failed", error=str(exc))
