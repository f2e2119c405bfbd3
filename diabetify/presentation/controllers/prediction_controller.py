"""
Prediction Controller - Presentation Layer

Routes for submitting prediction jobs, following them to a result and
browsing stored prediction history. Every route except the ML connectivity
check requires a bearer token.
"""

from typing import Any, Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from diabetify.application.dtos.prediction_dto import (
    CancelJobResponseDTO,
    DeletePredictionResponseDTO,
    JobListDTO,
    JobStatusDTO,
    MLConnectionStatusDTO,
    PredictionDTO,
    PredictionListDTO,
    PredictionScoreListDTO,
    SubmitJobResponseDTO,
)
from diabetify.application.use_cases.health_use_cases import CheckMLConnectionUseCase
from diabetify.application.use_cases.prediction_history_use_case import (
    DEFAULT_HISTORY_LIMIT,
    PredictionHistoryUseCase,
)
from diabetify.application.use_cases.prediction_job_use_case import (
    DEFAULT_LIST_LIMIT,
    PredictionJobUseCase,
)
from diabetify.domain.entities.errors import (
    CannotCancelJobError,
    IncompleteProfileError,
    InvalidDateRangeError,
    InvalidWhatIfInputError,
    JobAccessDeniedError,
    JobNotCompletedError,
    JobNotFoundError,
    JobSubmissionError,
    PredictionAccessDeniedError,
    PredictionNotFoundError,
    WhatIfResultExpiredError,
)
from diabetify.domain.entities.prediction_job import JobStatus
from diabetify.main.container import AppContainer
from diabetify.presentation.dependencies import get_current_user_id
from diabetify.shared import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/prediction", tags=["Prediction"])


def _incomplete_profile(exc: IncompleteProfileError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "message": "Incomplete profile",
            "error": exc.message,
            "missing_fields": exc.missing_fields,
            "help": exc.details.get("help"),
        },
    )


def _submission_failed(exc: JobSubmissionError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to submit prediction job: {exc.message}",
    )


def _job_lookup_error(exc: Exception) -> Optional[HTTPException]:
    if isinstance(exc, JobNotFoundError):
        return HTTPException(status_code=404, detail="Job not found")
    if isinstance(exc, JobAccessDeniedError):
        return HTTPException(status_code=403, detail=exc.message)
    return None


def _prediction_lookup_error(exc: Exception) -> Optional[HTTPException]:
    if isinstance(exc, PredictionNotFoundError):
        return HTTPException(status_code=404, detail="Prediction not found")
    if isinstance(exc, PredictionAccessDeniedError):
        return HTTPException(status_code=403, detail=exc.message)
    return None


def _invalid_date_range(exc: InvalidDateRangeError) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"message": exc.message, "error": exc.details.get("error")},
    )


def _parse_prediction_id(raw: str) -> int:
    if raw.isascii() and raw.isdigit() and int(raw) > 0:
        return int(raw)
    raise HTTPException(
        status_code=400,
        detail={
            "message": "Invalid prediction ID",
            "error": "ID must be a valid positive integer",
        },
    )


@router.post(
    "",
    response_model=SubmitJobResponseDTO,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit prediction job",
    description="""
    Queue a diabetes risk prediction computed from the caller's stored
    profile and activity history. Poll the returned URL for progress.
    """,
)
@inject
async def submit_prediction(
    user_id: int = Depends(get_current_user_id),
    use_case: PredictionJobUseCase = Depends(
        Provide[AppContainer.prediction_job_use_case]
    ),
) -> SubmitJobResponseDTO:
    try:
        return await use_case.submit_prediction(user_id)

    except IncompleteProfileError as e:
        logger.info("Prediction rejected: incomplete profile", user_id=user_id)
        raise _incomplete_profile(e)

    except JobSubmissionError as e:
        raise _submission_failed(e)

    except Exception as e:
        logger.error(
            "Unexpected error submitting prediction", user_id=user_id, error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post(
    "/what-if",
    response_model=SubmitJobResponseDTO,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit what-if prediction job",
    description="""
    Queue a hypothetical prediction where smoking, weight, hypertension,
    cholesterol and activity are taken from the request body. The result is
    kept for a limited time and never stored as a prediction.
    """,
)
@inject
async def submit_what_if_prediction(
    payload: Any = Body(...),
    user_id: int = Depends(get_current_user_id),
    use_case: PredictionJobUseCase = Depends(
        Provide[AppContainer.prediction_job_use_case]
    ),
) -> SubmitJobResponseDTO:
    try:
        return await use_case.submit_what_if(user_id, payload)

    except InvalidWhatIfInputError as e:
        raise HTTPException(
            status_code=400,
            detail={"message": e.message, "errors": e.details.get("errors", [])},
        )

    except IncompleteProfileError as e:
        raise _incomplete_profile(e)

    except JobSubmissionError as e:
        raise _submission_failed(e)

    except Exception as e:
        logger.error(
            "Unexpected error submitting what-if prediction",
            user_id=user_id,
            error=str(e),
        )
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get(
    "/job/{job_id}/status",
    response_model=JobStatusDTO,
    summary="Get job status",
)
@inject
async def get_job_status(
    job_id: str,
    user_id: int = Depends(get_current_user_id),
    use_case: PredictionJobUseCase = Depends(
        Provide[AppContainer.prediction_job_use_case]
    ),
) -> JobStatusDTO:
    try:
        return await use_case.get_job_status(user_id, job_id)

    except (JobNotFoundError, JobAccessDeniedError) as e:
        raise _job_lookup_error(e)

    except Exception as e:
        logger.error("Unexpected error getting job status", job_id=job_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get(
    "/job/{job_id}/result",
    summary="Get job result",
    description="""
    Canonical jobs return the stored prediction with per-feature
    explanations. What-if jobs return the cached result map while it lives.
    """,
)
@inject
async def get_job_result(
    job_id: str,
    user_id: int = Depends(get_current_user_id),
    use_case: PredictionJobUseCase = Depends(
        Provide[AppContainer.prediction_job_use_case]
    ),
) -> Any:
    try:
        return await use_case.get_job_result(user_id, job_id)

    except JobNotCompletedError as e:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "job_id": job_id,
                "status": e.status.value,
                "message": e.message,
                "poll_url": f"/prediction/job/{job_id}/status",
            },
        )

    except WhatIfResultExpiredError as e:
        hours = max(1, e.ttl_seconds // 3600)
        raise HTTPException(
            status_code=404,
            detail={
                "message": e.message,
                "help": (
                    f"What-if results are only available for {hours} hours "
                    "after completion"
                ),
            },
        )

    except (JobNotFoundError, JobAccessDeniedError) as e:
        raise _job_lookup_error(e)

    except Exception as e:
        logger.error("Unexpected error getting job result", job_id=job_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post(
    "/job/{job_id}/cancel",
    response_model=CancelJobResponseDTO,
    summary="Cancel job",
    description="Only pending or processing jobs can be cancelled.",
)
@inject
async def cancel_job(
    job_id: str,
    user_id: int = Depends(get_current_user_id),
    use_case: PredictionJobUseCase = Depends(
        Provide[AppContainer.prediction_job_use_case]
    ),
) -> CancelJobResponseDTO:
    try:
        return await use_case.cancel_job(user_id, job_id)

    except CannotCancelJobError as e:
        detail = {"message": e.message}
        if "note" in e.details:
            detail["note"] = e.details["note"]
        raise HTTPException(status_code=400, detail=detail)

    except (JobNotFoundError, JobAccessDeniedError) as e:
        raise _job_lookup_error(e)

    except Exception as e:
        logger.error("Unexpected error cancelling job", job_id=job_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/jobs", response_model=JobListDTO, summary="List my jobs")
@inject
async def list_jobs(
    status_filter: Optional[JobStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=DEFAULT_LIST_LIMIT),
    user_id: int = Depends(get_current_user_id),
    use_case: PredictionJobUseCase = Depends(
        Provide[AppContainer.prediction_job_use_case]
    ),
) -> JobListDTO:
    if limit <= 0:
        raise HTTPException(status_code=400, detail="Limit must be a positive integer")
    try:
        return await use_case.list_jobs(user_id, status=status_filter, limit=limit)

    except Exception as e:
        logger.error("Unexpected error listing jobs", user_id=user_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get(
    "/health",
    response_model=MLConnectionStatusDTO,
    summary="ML service connectivity",
    description="Worker pool status and a health check message sent to the ML service.",
)
@inject
async def ml_connection_health(
    use_case: CheckMLConnectionUseCase = Depends(
        Provide[AppContainer.check_ml_connection_use_case]
    ),
) -> Any:
    result = await use_case.execute()
    if result.status != "healthy":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=result.model_dump(mode="json"),
        )
    return result


@router.get("/me", response_model=PredictionListDTO, summary="List my predictions")
@inject
async def list_my_predictions(
    limit: int = Query(default=DEFAULT_HISTORY_LIMIT),
    user_id: int = Depends(get_current_user_id),
    use_case: PredictionHistoryUseCase = Depends(
        Provide[AppContainer.prediction_history_use_case]
    ),
) -> PredictionListDTO:
    if limit <= 0:
        raise HTTPException(status_code=400, detail="Limit must be a positive integer")
    try:
        return await use_case.list_predictions(user_id, limit=limit)

    except Exception as e:
        logger.error("Unexpected error listing predictions", user_id=user_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get(
    "/me/date-range",
    response_model=PredictionListDTO,
    summary="My predictions by day",
    description="""
    The latest prediction of each calendar day between ``start_date`` and
    ``end_date`` (YYYY-MM-DD, both inclusive), newest first.
    """,
)
@inject
async def list_my_predictions_by_date_range(
    start_date: str = Query(default=""),
    end_date: str = Query(default=""),
    user_id: int = Depends(get_current_user_id),
    use_case: PredictionHistoryUseCase = Depends(
        Provide[AppContainer.prediction_history_use_case]
    ),
) -> PredictionListDTO:
    try:
        return await use_case.list_by_date_range(user_id, start_date, end_date)

    except InvalidDateRangeError as e:
        raise _invalid_date_range(e)

    except Exception as e:
        logger.error(
            "Unexpected error listing predictions by date", user_id=user_id, error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get(
    "/me/score",
    response_model=PredictionScoreListDTO,
    summary="My daily risk scores",
)
@inject
async def list_my_prediction_scores(
    start_date: str = Query(default=""),
    end_date: str = Query(default=""),
    user_id: int = Depends(get_current_user_id),
    use_case: PredictionHistoryUseCase = Depends(
        Provide[AppContainer.prediction_history_use_case]
    ),
) -> PredictionScoreListDTO:
    try:
        return await use_case.list_scores(user_id, start_date, end_date)

    except InvalidDateRangeError as e:
        raise _invalid_date_range(e)

    except Exception as e:
        logger.error(
            "Unexpected error listing prediction scores", user_id=user_id, error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/{prediction_id}", response_model=PredictionDTO, summary="Get prediction")
@inject
async def get_prediction(
    prediction_id: str,
    user_id: int = Depends(get_current_user_id),
    use_case: PredictionHistoryUseCase = Depends(
        Provide[AppContainer.prediction_history_use_case]
    ),
) -> PredictionDTO:
    parsed_id = _parse_prediction_id(prediction_id)
    try:
        return await use_case.get_prediction(user_id, parsed_id)

    except (PredictionNotFoundError, PredictionAccessDeniedError) as e:
        raise _prediction_lookup_error(e)

    except Exception as e:
        logger.error(
            "Unexpected error getting prediction", prediction_id=parsed_id, error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete(
    "/{prediction_id}",
    response_model=DeletePredictionResponseDTO,
    summary="Delete prediction",
)
@inject
async def delete_prediction(
    prediction_id: str,
    user_id: int = Depends(get_current_user_id),
    use_case: PredictionHistoryUseCase = Depends(
        Provide[AppContainer.prediction_history_use_case]
    ),
) -> DeletePredictionResponseDTO:
    parsed_id = _parse_prediction_id(prediction_id)
    try:
        return await use_case.delete_prediction(user_id, parsed_id)

    except (PredictionNotFoundError, PredictionAccessDeniedError) as e:
        raise _prediction_lookup_error(e)

    except Exception as e:
        logger.error(
            "Unexpected error deleting prediction", prediction_id=parsed_id, error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")
