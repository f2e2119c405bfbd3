"""
Application Layer Package

Use cases orchestrating domain entities and ports: accepting prediction
requests, the worker's per-job pipeline, correlating ML responses and
reporting health.
"""

from diabetify.application import dtos, models, use_cases

__all__ = ["dtos", "use_cases", "models"]
