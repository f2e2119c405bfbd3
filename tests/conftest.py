from __future__ import annotations

import asyncio
import copy
import sys
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence

import pytest
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from diabetify.domain.entities.errors import CacheUnavailableError
from diabetify.domain.entities.prediction_job import JobRequest
from diabetify.infrastructure.repositories import (
    ActivityRepository,
    PredictionJobRepository,
    PredictionRepository,
    UserProfileRepository,
    UserRepository,
)

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

FIXED_NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)

UNIQUE_KEYS: Dict[str, Sequence[str]] = {
    "prediction_jobs": ("id",),
    "predictions": ("id", "job_id"),
}


def _matches_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and any(k.startswith("$") for k in condition):
        for operator, operand in condition.items():
            if operator == "$in" and value not in operand:
                return False
            if operator == "$lt" and not (value is not None and value < operand):
                return False
            if operator == "$lte" and not (value is not None and value <= operand):
                return False
            if operator == "$gt" and not (value is not None and value > operand):
                return False
            if operator == "$gte" and not (value is not None and value >= operand):
                return False
        return True
    return value == condition


class FakeCursor:
    def __init__(self, documents: Sequence[Dict[str, Any]]):
        self._documents = list(documents)
        self._limit: Optional[int] = None

    def sort(self, key: str, direction: int = 1) -> "FakeCursor":
        self._documents.sort(key=lambda doc: doc.get(key), reverse=direction < 0)
        return self

    def limit(self, amount: int) -> "FakeCursor":
        self._limit = amount
        return self

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        docs = self._documents
        if self._limit:
            docs = docs[: self._limit]
        return iter(copy.deepcopy(docs))


class FakeCollection:
    """In-memory subset of the pymongo Collection API used by the repositories."""

    def __init__(self, unique_keys: Iterable[str] = ()) -> None:
        self.documents: List[Dict[str, Any]] = []
        self.unique_keys = tuple(unique_keys)
        self.created_indexes: List[Any] = []

    @staticmethod
    def _matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
        return all(
            _matches_condition(document.get(key), condition)
            for key, condition in query.items()
        )

    def _first(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for document in self.documents:
            if self._matches(document, query):
                return document
        return None

    def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        document = self._first(query)
        return copy.deepcopy(document) if document is not None else None

    def find(self, query: Dict[str, Any]) -> FakeCursor:
        return FakeCursor([doc for doc in self.documents if self._matches(doc, query)])

    def insert_one(self, document: Dict[str, Any]) -> Any:
        for key in self.unique_keys:
            value = document.get(key)
            if value is None:
                continue
            if any(existing.get(key) == value for existing in self.documents):
                raise DuplicateKeyError(f"E11000 duplicate key error: {key}")
        self.documents.append(copy.deepcopy(document))
        return SimpleNamespace(acknowledged=True, inserted_id=document.get("id"))

    def update_one(self, query: Dict[str, Any], update: Dict[str, Any]) -> Any:
        document = self._first(query)
        if document is None:
            return SimpleNamespace(matched_count=0, modified_count=0)
        self._apply(document, update)
        return SimpleNamespace(matched_count=1, modified_count=1)

    def find_one_and_update(
        self,
        query: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
        return_document: Any = ReturnDocument.BEFORE,
    ) -> Optional[Dict[str, Any]]:
        document = self._first(query)
        if document is None:
            if not upsert:
                return None
            document = {
                key: value for key, value in query.items() if not isinstance(value, dict)
            }
            self.documents.append(document)
            before = None
        else:
            before = copy.deepcopy(document)
        self._apply(document, update)
        if return_document == ReturnDocument.AFTER:
            return copy.deepcopy(document)
        return before

    def delete_one(self, query: Dict[str, Any]) -> Any:
        document = self._first(query)
        if document is None:
            return SimpleNamespace(deleted_count=0, acknowledged=True)
        self.documents.remove(document)
        return SimpleNamespace(deleted_count=1, acknowledged=True)

    def delete_many(self, query: Dict[str, Any]) -> Any:
        kept = [doc for doc in self.documents if not self._matches(doc, query)]
        deleted = len(self.documents) - len(kept)
        self.documents = kept
        return SimpleNamespace(deleted_count=deleted, acknowledged=True)

    def create_indexes(self, models: Sequence[Any]) -> List[str]:
        self.created_indexes.extend(models)
        return [model.document["name"] for model in models]

    @staticmethod
    def _apply(document: Dict[str, Any], update: Dict[str, Any]) -> None:
        for key, value in update.get("$set", {}).items():
            document[key] = copy.deepcopy(value)
        for key, value in update.get("$inc", {}).items():
            document[key] = document.get(key, 0) + value


class FakeMongoDatabase:
    def __init__(self) -> None:
        self.collections: Dict[str, FakeCollection] = {}
        self.indexes_created = False
        self.closed = False

    def get_collection(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(UNIQUE_KEYS.get(name, ()))
        return self.collections[name]

    async def create_indexes(self) -> None:
        self.indexes_created = True

    def close(self) -> None:
        self.closed = True


class FakeMLClient:
    """Records published vectors instead of talking to RabbitMQ."""

    def __init__(self) -> None:
        self.connected = False
        self.published: List[tuple] = []
        self.health_checks = 0
        self.error: Optional[Exception] = None
        self.delay: float = 0.0

    @property
    def is_connected(self) -> bool:
        return self.connected

    def connect(self) -> None:
        self.connected = True

    async def predict_async(self, correlation_id: str, features: Sequence[float]) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.published.append((correlation_id, list(features)))

    async def health_check_async(self) -> str:
        if self.error is not None:
            raise self.error
        self.health_checks += 1
        return f"health_{self.health_checks}"

    def close(self) -> None:
        self.connected = False


class FakeWhatIfCache:
    def __init__(self, ttl_seconds: int = 3600) -> None:
        self.ttl_seconds = ttl_seconds
        self.entries: Dict[str, Dict[str, Any]] = {}
        self.ttls: Dict[str, int] = {}
        self.fail_store = False
        self.fail_get = False
        self.closed = False

    async def store_result(
        self, job_id: str, result: Dict[str, Any], ttl_seconds: Optional[int] = None
    ) -> None:
        if self.fail_store:
            raise CacheUnavailableError("redis down")
        self.entries[f"whatif:{job_id}"] = dict(result)
        self.ttls[f"whatif:{job_id}"] = ttl_seconds or self.ttl_seconds

    async def get_result(self, job_id: str) -> Optional[Dict[str, Any]]:
        if self.fail_get:
            raise CacheUnavailableError("redis down")
        return self.entries.get(f"whatif:{job_id}")

    async def close(self) -> None:
        self.closed = True


class FakeJobQueue:
    def __init__(self) -> None:
        self.requests: List[JobRequest] = []
        self.error: Optional[Exception] = None
        self.status: Dict[str, Any] = {
            "running": True,
            "rabbitmq_connected": True,
            "response_consumer_running": True,
        }

    async def submit_job(self, request: JobRequest) -> None:
        if self.error is not None:
            raise self.error
        self.requests.append(request)

    def get_status(self) -> Dict[str, Any]:
        return dict(self.status)


class FakeResponseConsumer:
    def __init__(self) -> None:
        self.handler: Optional[Callable[[bytes, Optional[str]], bool]] = None
        self.running = False
        self.start_error: Optional[Exception] = None

    @property
    def is_running(self) -> bool:
        return self.running

    def start(self, handler: Callable[[bytes, Optional[str]], bool]) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.handler = handler
        self.running = True

    def stop(self) -> None:
        self.running = False


@pytest.fixture()
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture()
def fake_mongo_database() -> FakeMongoDatabase:
    return FakeMongoDatabase()


@pytest.fixture()
def fake_ml_client() -> FakeMLClient:
    return FakeMLClient()


@pytest.fixture()
def fake_cache() -> FakeWhatIfCache:
    return FakeWhatIfCache()


@pytest.fixture()
def fake_job_queue() -> FakeJobQueue:
    return FakeJobQueue()


@pytest.fixture()
def fake_response_consumer() -> FakeResponseConsumer:
    return FakeResponseConsumer()


@pytest.fixture()
def repositories(fake_mongo_database: FakeMongoDatabase) -> SimpleNamespace:
    return SimpleNamespace(
        jobs=PredictionJobRepository(fake_mongo_database),
        predictions=PredictionRepository(fake_mongo_database),
        users=UserRepository(fake_mongo_database),
        profiles=UserProfileRepository(fake_mongo_database),
        activities=ActivityRepository(fake_mongo_database),
    )


@pytest.fixture()
def seed_user(fake_mongo_database: FakeMongoDatabase) -> Callable[..., None]:
    """Insert the reference user (born 1975-06-01) and a complete profile."""

    def _seed(user_id: int = 1, **profile_overrides: Any) -> None:
        fake_mongo_database.get_collection("users").insert_one(
            {"id": user_id, "name": "Dina", "email": "dina@example.com", "dob": "1975-06-01"}
        )
        profile = {
            "user_id": user_id,
            "height": 175.0,
            "weight": 83.6,
            "bmi": 27.3,
            "age_of_smoking": None,
            "age_of_stop_smoking": None,
            "smoke_count": None,
            "physical_activity_frequency": 1,
            "macrosomic_baby": 0,
            "bloodline": False,
            "hypertension": False,
            "cholesterol": False,
            "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "updated_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        }
        profile.update(profile_overrides)
        fake_mongo_database.get_collection("user_profiles").insert_one(profile)
        fake_mongo_database.get_collection("activities").insert_one(
            {
                "user_id": user_id,
                "activity_type": "workout",
                "value": 3,
                "activity_date": datetime(2024, 12, 28, tzinfo=timezone.utc),
            }
        )

    return _seed
