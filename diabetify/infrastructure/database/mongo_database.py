"""
MongoDB Database - Infrastructure Layer

Owns the pymongo client and the index layout of every collection the
orchestrator touches.
"""

from typing import Dict, List, Tuple

import structlog
from pymongo import ASCENDING, DESCENDING, IndexModel, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

logger = structlog.get_logger(__name__)

JOBS_COLLECTION = "prediction_jobs"
PREDICTIONS_COLLECTION = "predictions"
COUNTERS_COLLECTION = "counters"
USERS_COLLECTION = "users"
PROFILES_COLLECTION = "user_profiles"
ACTIVITIES_COLLECTION = "activities"

INDEXES: Dict[str, List[IndexModel]] = {
    JOBS_COLLECTION: [
        IndexModel([("id", ASCENDING)], name="job_id_unique", unique=True),
        IndexModel(
            [("user_id", ASCENDING), ("status", ASCENDING)], name="job_user_status"
        ),
        IndexModel(
            [("status", ASCENDING), ("updated_at", ASCENDING)],
            name="job_status_updated",
        ),
        IndexModel(
            [("user_id", ASCENDING), ("created_at", DESCENDING)],
            name="job_user_created",
        ),
    ],
    PREDICTIONS_COLLECTION: [
        IndexModel([("id", ASCENDING)], name="prediction_id_unique", unique=True),
        IndexModel(
            [("job_id", ASCENDING)],
            name="prediction_job_unique",
            unique=True,
            sparse=True,
        ),
        IndexModel(
            [("user_id", ASCENDING), ("created_at", DESCENDING)],
            name="prediction_user_created",
        ),
    ],
    USERS_COLLECTION: [
        IndexModel([("id", ASCENDING)], name="user_id_unique", unique=True),
    ],
    PROFILES_COLLECTION: [
        IndexModel([("user_id", ASCENDING)], name="profile_user_unique", unique=True),
    ],
    ACTIVITIES_COLLECTION: [
        IndexModel(
            [
                ("user_id", ASCENDING),
                ("activity_type", ASCENDING),
                ("activity_date", ASCENDING),
            ],
            name="activity_user_type_date",
        ),
    ],
}


class MongoDatabase:
    """MongoDB database client."""

    def __init__(self, mongo_uri: str, db_name: str):
        """
        Args:
            mongo_uri: MongoDB connection URI
            db_name: Name of the database to use
        """
        # tz_aware keeps datetimes UTC-aware on the way back out.
        self.client: MongoClient = MongoClient(mongo_uri, tz_aware=True)
        self.db: Database = self.client[db_name]

    def get_collection(self, collection_name: str) -> Collection:
        return self.db[collection_name]

    def close(self) -> None:
        self.client.close()

    async def create_indexes(self) -> List[Tuple[str, str]]:
        """Create every index in ``INDEXES``; errors propagate and abort startup."""
        created: List[Tuple[str, str]] = []
        for collection_name, models in INDEXES.items():
            names = self.db[collection_name].create_indexes(models)
            created.extend((collection_name, name) for name in names)
        logger.info("mongo.indexes.ensured", count=len(created))
        return created
