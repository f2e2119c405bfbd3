"""
Infrastructure Repository - Prediction MongoDB Implementation

Predictions get an integer surrogate id drawn from the ``counters``
collection. The unique ``job_id`` index guarantees at most one row per job.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from diabetify.domain.entities.errors import (
    PredictionConflictError,
    PredictionPersistenceError,
)
from diabetify.domain.entities.prediction import (
    EXPLANATION_FEATURES,
    FeatureAttribution,
    Prediction,
    PredictionScore,
)
from diabetify.domain.repositories.prediction_repository import IPredictionRepository
from diabetify.infrastructure.database.mongo_database import (
    COUNTERS_COLLECTION,
    PREDICTIONS_COLLECTION,
    MongoDatabase,
)
from diabetify.infrastructure.repositories._documents import as_datetime

logger = structlog.get_logger(__name__)


class PredictionRepository(IPredictionRepository):
    """MongoDB implementation of the prediction repository."""

    def __init__(self, database: MongoDatabase):
        self.database = database
        self.collection_name = PREDICTIONS_COLLECTION

    async def save_prediction(self, prediction: Prediction) -> Prediction:
        try:
            prediction.id = self._next_id()
            collection = self.database.get_collection(self.collection_name)
            collection.insert_one(self._to_document(prediction))
        except DuplicateKeyError as e:
            raise PredictionConflictError(
                f"Prediction for job {prediction.job_id} already exists"
            ) from e
        except PyMongoError as e:
            logger.error(
                "Failed to save prediction", job_id=prediction.job_id, error=str(e)
            )
            raise PredictionPersistenceError(str(e)) from e

        logger.info(
            "Prediction saved",
            prediction_id=prediction.id,
            job_id=prediction.job_id,
            user_id=prediction.user_id,
        )
        return prediction

    async def get_prediction_by_id(self, prediction_id: int) -> Optional[Prediction]:
        try:
            collection = self.database.get_collection(self.collection_name)
            document = collection.find_one({"id": prediction_id})
            return self._from_document(document) if document else None
        except PyMongoError as e:
            logger.error(
                "Failed to get prediction", prediction_id=prediction_id, error=str(e)
            )
            raise e

    async def get_prediction_by_job_id(self, job_id: str) -> Optional[Prediction]:
        try:
            collection = self.database.get_collection(self.collection_name)
            document = collection.find_one({"job_id": job_id})
            return self._from_document(document) if document else None
        except PyMongoError as e:
            logger.error("Failed to get prediction by job", job_id=job_id, error=str(e))
            raise e

    async def get_predictions_by_user_id(
        self, user_id: int, limit: int
    ) -> List[Prediction]:
        try:
            collection = self.database.get_collection(self.collection_name)
            cursor = (
                collection.find({"user_id": user_id}).sort("created_at", -1).limit(limit)
            )
            return [self._from_document(doc) for doc in cursor]
        except PyMongoError as e:
            logger.error("Failed to list predictions", user_id=user_id, error=str(e))
            raise e

    async def get_by_date_range(
        self, user_id: int, start: datetime, end: datetime
    ) -> List[Prediction]:
        try:
            documents = self._latest_per_day(user_id, start, end)
        except PyMongoError as e:
            logger.error(
                "Failed to list predictions by date range", user_id=user_id, error=str(e)
            )
            raise e
        return [self._from_document(doc) for doc in documents]

    async def get_scores_by_date_range(
        self, user_id: int, start: datetime, end: datetime
    ) -> List[PredictionScore]:
        try:
            documents = self._latest_per_day(user_id, start, end)
        except PyMongoError as e:
            logger.error(
                "Failed to list prediction scores", user_id=user_id, error=str(e)
            )
            raise e
        return [
            PredictionScore(
                risk_score=float(doc["risk_score"]),
                created_at=as_datetime(doc["created_at"]),
            )
            for doc in documents
        ]

    async def delete_prediction(self, prediction_id: int) -> bool:
        try:
            collection = self.database.get_collection(self.collection_name)
            result = collection.delete_one({"id": prediction_id})
        except PyMongoError as e:
            logger.error(
                "Failed to delete prediction", prediction_id=prediction_id, error=str(e)
            )
            raise e
        logger.info(
            "Prediction deleted",
            prediction_id=prediction_id,
            deleted=result.deleted_count,
        )
        return result.deleted_count > 0

    def _latest_per_day(
        self, user_id: int, start: datetime, end: datetime
    ) -> List[Dict[str, Any]]:
        collection = self.database.get_collection(self.collection_name)
        cursor = collection.find(
            {"user_id": user_id, "created_at": {"$gte": start, "$lte": end}}
        ).sort("created_at", -1)
        latest: Dict[Any, Dict[str, Any]] = {}
        for document in cursor:
            day = as_datetime(document["created_at"]).date()
            latest.setdefault(day, document)
        return list(latest.values())

    def _next_id(self) -> int:
        counters = self.database.get_collection(COUNTERS_COLLECTION)
        counter = counters.find_one_and_update(
            {"_id": self.collection_name},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(counter["seq"])

    def _to_document(self, prediction: Prediction) -> Dict[str, Any]:
        return {
            "id": prediction.id,
            "job_id": prediction.job_id,
            "user_id": prediction.user_id,
            "risk_score": prediction.risk_score,
            "age": prediction.age,
            "bmi": prediction.bmi,
            "brinkman_score": prediction.brinkman_score,
            "smoking_status": prediction.smoking_status,
            "is_macrosomic_baby": prediction.is_macrosomic_baby,
            "is_hypertension": prediction.is_hypertension,
            "is_cholesterol": prediction.is_cholesterol,
            "is_bloodline": prediction.is_bloodline,
            "physical_activity_frequency": prediction.physical_activity_frequency,
            "avg_smoke_count": prediction.avg_smoke_count,
            "attributions": {
                name: {
                    "shap": attribution.shap,
                    "contribution": attribution.contribution,
                    "impact": attribution.impact,
                }
                for name, attribution in prediction.attributions.items()
            },
            "explanations": prediction.explanations,
            "summary": prediction.summary,
            "created_at": prediction.created_at,
        }

    def _from_document(self, document: Dict[str, Any]) -> Prediction:
        stored = document.get("attributions") or {}
        attributions = {
            name: FeatureAttribution(**stored.get(name, {}))
            for name in EXPLANATION_FEATURES
        }
        return Prediction(
            id=int(document["id"]),
            job_id=document.get("job_id"),
            user_id=int(document["user_id"]),
            risk_score=float(document["risk_score"]),
            age=int(document.get("age", 0)),
            bmi=float(document.get("bmi", 0.0)),
            brinkman_score=int(document.get("brinkman_score", 0)),
            smoking_status=int(document.get("smoking_status", 0)),
            is_macrosomic_baby=int(document.get("is_macrosomic_baby", 0)),
            is_hypertension=bool(document.get("is_hypertension", False)),
            is_cholesterol=bool(document.get("is_cholesterol", False)),
            is_bloodline=bool(document.get("is_bloodline", False)),
            physical_activity_frequency=int(
                document.get("physical_activity_frequency", 0)
            ),
            avg_smoke_count=int(document.get("avg_smoke_count", 0)),
            attributions=attributions,
            explanations=document.get("explanations") or {},
            summary=document.get("summary"),
            created_at=as_datetime(document["created_at"]),
        )
