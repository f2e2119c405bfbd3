"""
Use Cases Package - Application Layer

Job submission and management for the HTTP API, the per-job pipeline run by
workers, response correlation and result routing, and the health use cases.
"""

from .job_processing_use_case import PredictionJobProcessor
from .prediction_job_use_case import PredictionJobUseCase
from .response_correlation_use_case import ResponseCorrelator
from .result_routing_use_case import ResultRouter, RoutingOutcome

__all__ = [
    "PredictionJobProcessor",
    "PredictionJobUseCase",
    "ResponseCorrelator",
    "ResultRouter",
    "RoutingOutcome",
]
