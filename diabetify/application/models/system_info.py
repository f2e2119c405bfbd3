"""Settings subset consumed by the /info use case."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SystemInfo:
    title: str
    description: str
    version: str
    environment: str
    git_commit: str
    build_time: str
    rabbitmq_url: str
    request_queue: str
    response_queue: str
    redis_url: str
    what_if_ttl_seconds: int
