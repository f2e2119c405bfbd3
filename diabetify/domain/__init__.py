"""
Domain Layer Package

Business rules of the prediction orchestrator: jobs and their state machine,
predictions, the feature assembler and the contracts the outer layers fulfil.
No framework or driver imports live here.
"""

from diabetify.domain import entities, ports, repositories, services

__all__ = ["entities", "repositories", "services", "ports"]
