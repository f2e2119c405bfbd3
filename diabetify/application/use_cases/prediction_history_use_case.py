"""
Application Use Cases - Prediction History

Read and delete access to a user's stored predictions. Date filters are
calendar days (YYYY-MM-DD, UTC); the end day is inclusive.
"""

from datetime import datetime, timedelta, timezone
from typing import Tuple

import structlog

from diabetify.application.dtos.prediction_dto import (
    DeletePredictionResponseDTO,
    PredictionDTO,
    PredictionListDTO,
    PredictionScoreDTO,
    PredictionScoreListDTO,
)
from diabetify.domain.entities.errors import (
    InvalidDateRangeError,
    PredictionAccessDeniedError,
    PredictionNotFoundError,
)
from diabetify.domain.entities.prediction import Prediction
from diabetify.domain.repositories.prediction_repository import IPredictionRepository

logger = structlog.get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 10
DATE_FORMAT = "%Y-%m-%d"


def parse_day_range(start_date: str, end_date: str) -> Tuple[datetime, datetime]:
    """Turn two YYYY-MM-DD strings into an inclusive UTC datetime window.

    Raises:
        InvalidDateRangeError: A date is malformed or the range is inverted.
    """
    bounds = []
    for label, value in (("start", start_date), ("end", end_date)):
        try:
            day = datetime.strptime(value or "", DATE_FORMAT)
        except ValueError as exc:
            raise InvalidDateRangeError(
                f"Invalid {label} date format",
                {"error": "Date must be in YYYY-MM-DD format"},
            ) from exc
        bounds.append(day.replace(tzinfo=timezone.utc))

    start, end = bounds
    if start > end:
        raise InvalidDateRangeError(
            "Invalid date range",
            {"error": "start_date must not be after end_date"},
        )
    return start, end + timedelta(days=1) - timedelta(seconds=1)


class PredictionHistoryUseCase:
    """Use case for browsing and deleting stored predictions."""

    def __init__(self, prediction_repository: IPredictionRepository):
        self.prediction_repository = prediction_repository

    async def list_predictions(
        self, user_id: int, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> PredictionListDTO:
        predictions = await self.prediction_repository.get_predictions_by_user_id(
            user_id, limit
        )
        items = [PredictionDTO.from_domain(p) for p in predictions]
        return PredictionListDTO(predictions=items, count=len(items))

    async def list_by_date_range(
        self, user_id: int, start_date: str, end_date: str
    ) -> PredictionListDTO:
        start, end = parse_day_range(start_date, end_date)
        predictions = await self.prediction_repository.get_by_date_range(
            user_id, start, end
        )
        items = [PredictionDTO.from_domain(p) for p in predictions]
        return PredictionListDTO(predictions=items, count=len(items))

    async def list_scores(
        self, user_id: int, start_date: str, end_date: str
    ) -> PredictionScoreListDTO:
        start, end = parse_day_range(start_date, end_date)
        scores = await self.prediction_repository.get_scores_by_date_range(
            user_id, start, end
        )
        items = [
            PredictionScoreDTO(risk_score=s.risk_score, created_at=s.created_at)
            for s in scores
        ]
        return PredictionScoreListDTO(scores=items, count=len(items))

    async def get_prediction(self, user_id: int, prediction_id: int) -> PredictionDTO:
        prediction = await self._get_owned_prediction(user_id, prediction_id)
        return PredictionDTO.from_domain(prediction)

    async def delete_prediction(
        self, user_id: int, prediction_id: int
    ) -> DeletePredictionResponseDTO:
        """
        Remove one of the caller's predictions.

        The owning job keeps its ``prediction_id``; its result endpoint then
        reports the prediction as missing.

        Raises:
            PredictionNotFoundError: No such prediction, or it vanished
                between the lookup and the delete.
            PredictionAccessDeniedError: The prediction belongs to someone else.
        """
        await self._get_owned_prediction(user_id, prediction_id)
        if not await self.prediction_repository.delete_prediction(prediction_id):
            raise PredictionNotFoundError(prediction_id)

        logger.info(
            "prediction_history.deleted", prediction_id=prediction_id, user_id=user_id
        )
        return DeletePredictionResponseDTO(
            prediction_id=prediction_id, message="Prediction deleted successfully"
        )

    async def _get_owned_prediction(
        self, user_id: int, prediction_id: int
    ) -> Prediction:
        prediction = await self.prediction_repository.get_prediction_by_id(
            prediction_id
        )
        if prediction is None:
            raise PredictionNotFoundError(prediction_id)
        if prediction.user_id != user_id:
            raise PredictionAccessDeniedError(prediction_id)
        return prediction
