"""
Domain Repositories Package

Abstract persistence contracts implemented in the infrastructure layer.
"""

from .prediction_job_repository import IPredictionJobRepository
from .prediction_repository import IPredictionRepository
from .user_repository import IActivityRepository, IUserProfileRepository, IUserRepository

__all__ = [
    "IPredictionJobRepository",
    "IPredictionRepository",
    "IUserRepository",
    "IUserProfileRepository",
    "IActivityRepository",
]
