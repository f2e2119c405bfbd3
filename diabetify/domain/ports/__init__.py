"""Domain ports implemented by infrastructure adapters."""

from .health_check import IHealthCheckService
from .job_queue import IPredictionJobQueue, IResponseConsumer
from .ml_client import IMLClient
from .result_cache import IWhatIfResultCache

__all__ = [
    "IHealthCheckService",
    "IPredictionJobQueue",
    "IResponseConsumer",
    "IMLClient",
    "IWhatIfResultCache",
]
