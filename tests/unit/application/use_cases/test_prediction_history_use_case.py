from __future__ import annotations

from datetime import datetime, timezone

import pytest

from diabetify.application.use_cases.prediction_history_use_case import (
    PredictionHistoryUseCase,
    parse_day_range,
)
from diabetify.domain.entities.errors import (
    InvalidDateRangeError,
    PredictionAccessDeniedError,
    PredictionNotFoundError,
)
from diabetify.domain.entities.prediction import FeatureAttribution, Prediction


@pytest.fixture()
def use_case(repositories) -> PredictionHistoryUseCase:
    return PredictionHistoryUseCase(repositories.predictions)


async def _save(repositories, job_id: str, user_id: int = 1, **kwargs) -> Prediction:
    prediction = Prediction(user_id=user_id, job_id=job_id, risk_score=0.25, **kwargs)
    prediction.attributions["BMI"] = FeatureAttribution(
        shap=0.2, contribution=0.1, impact=1.0
    )
    return await repositories.predictions.save_prediction(prediction)


def test_day_range_covers_whole_end_day() -> None:
    start, end = parse_day_range("2025-03-01", "2025-03-02")

    assert start == datetime(2025, 3, 1, tzinfo=timezone.utc)
    assert end == datetime(2025, 3, 2, 23, 59, 59, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "start, end, message",
    [
        ("", "2025-03-02", "Invalid start date format"),
        ("2025-03-01", "03/02/2025", "Invalid end date format"),
        ("2025-03-05", "2025-03-01", "Invalid date range"),
    ],
)
def test_day_range_rejects_bad_input(start, end, message) -> None:
    with pytest.raises(InvalidDateRangeError) as exc:
        parse_day_range(start, end)
    assert exc.value.message == message


@pytest.mark.asyncio
async def test_list_predictions_only_returns_own_rows(use_case, repositories) -> None:
    await _save(repositories, "job-1")
    await _save(repositories, "job-2", user_id=2)

    result = await use_case.list_predictions(1)

    assert result.count == 1
    item = result.predictions[0]
    assert item.job_id == "job-1"
    assert item.risk_percentage == pytest.approx(25.0)
    assert item.feature_explanations["BMI"].impact == 1
    assert set(item.user_data_used) >= {"age", "bmi", "avg_smoke_count"}


@pytest.mark.asyncio
async def test_scores_by_date_range(use_case, repositories) -> None:
    await _save(
        repositories, "job-1", created_at=datetime(2025, 3, 2, 7, tzinfo=timezone.utc)
    )
    await _save(
        repositories, "job-2", created_at=datetime(2025, 3, 9, 7, tzinfo=timezone.utc)
    )

    scores = await use_case.list_scores(1, "2025-03-01", "2025-03-02")
    history = await use_case.list_by_date_range(1, "2025-03-01", "2025-03-09")

    assert scores.count == 1
    assert scores.scores[0].risk_score == 0.25
    assert [p.job_id for p in history.predictions] == ["job-2", "job-1"]


@pytest.mark.asyncio
async def test_get_prediction_checks_ownership(use_case, repositories) -> None:
    saved = await _save(repositories, "job-1")

    assert (await use_case.get_prediction(1, saved.id)).id == saved.id
    with pytest.raises(PredictionAccessDeniedError):
        await use_case.get_prediction(2, saved.id)
    with pytest.raises(PredictionNotFoundError):
        await use_case.get_prediction(1, 999)


@pytest.mark.asyncio
async def test_delete_prediction_removes_only_own_row(use_case, repositories) -> None:
    saved = await _save(repositories, "job-1")

    with pytest.raises(PredictionAccessDeniedError):
        await use_case.delete_prediction(2, saved.id)
    assert await repositories.predictions.get_prediction_by_id(saved.id) is not None

    result = await use_case.delete_prediction(1, saved.id)

    assert result.message == "Prediction deleted successfully"
    assert await repositories.predictions.get_prediction_by_id(saved.id) is None
    with pytest.raises(PredictionNotFoundError):
        await use_case.delete_prediction(1, saved.id)
