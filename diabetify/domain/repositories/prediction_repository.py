"""Domain Repository Interface - Prediction"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from diabetify.domain.entities.prediction import Prediction, PredictionScore


class IPredictionRepository(ABC):
    """Interface for prediction repository."""

    @abstractmethod
    async def save_prediction(self, prediction: Prediction) -> Prediction:
        """Assign a surrogate id and insert the prediction.

        Raises:
            PredictionConflictError: A prediction already exists for the job.
            PredictionPersistenceError: The write failed.
        """
        pass

    @abstractmethod
    async def get_prediction_by_id(self, prediction_id: int) -> Optional[Prediction]:
        pass

    @abstractmethod
    async def get_prediction_by_job_id(self, job_id: str) -> Optional[Prediction]:
        pass

    @abstractmethod
    async def get_predictions_by_user_id(
        self, user_id: int, limit: int
    ) -> List[Prediction]:
        """Newest first, at most ``limit`` rows."""
        pass

    @abstractmethod
    async def get_by_date_range(
        self, user_id: int, start: datetime, end: datetime
    ) -> List[Prediction]:
        """Latest prediction per calendar day within ``[start, end]``, newest first."""
        pass

    @abstractmethod
    async def get_scores_by_date_range(
        self, user_id: int, start: datetime, end: datetime
    ) -> List[PredictionScore]:
        pass

    @abstractmethod
    async def delete_prediction(self, prediction_id: int) -> bool:
        """Returns False when no row matched."""
        pass
