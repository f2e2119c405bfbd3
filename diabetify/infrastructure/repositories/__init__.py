from .prediction_job_repository import PredictionJobRepository
from .prediction_repository import PredictionRepository
from .user_repository import ActivityRepository, UserProfileRepository, UserRepository

__all__ = [
    "PredictionJobRepository",
    "PredictionRepository",
    "UserRepository",
    "UserProfileRepository",
    "ActivityRepository",
]
