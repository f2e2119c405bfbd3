"""
Infrastructure Repositories - Users, Profiles and Activities

Read access to platform-owned collections. The only write is stamping
``last_prediction_at`` on the user.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from pymongo.errors import PyMongoError

from diabetify.domain.entities.user import Activity, ActivityType, User, UserProfile
from diabetify.domain.repositories.user_repository import (
    IActivityRepository,
    IUserProfileRepository,
    IUserRepository,
)
from diabetify.infrastructure.database.mongo_database import (
    ACTIVITIES_COLLECTION,
    PROFILES_COLLECTION,
    USERS_COLLECTION,
    MongoDatabase,
)
from diabetify.infrastructure.repositories._documents import (
    as_datetime,
    as_optional_bool,
    as_optional_float,
    as_optional_int,
)

logger = structlog.get_logger(__name__)


class UserRepository(IUserRepository):
    def __init__(self, database: MongoDatabase):
        self.database = database
        self.collection_name = USERS_COLLECTION

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        try:
            document = self.database.get_collection(self.collection_name).find_one(
                {"id": user_id}
            )
        except PyMongoError as e:
            logger.error("Failed to get user", user_id=user_id, error=str(e))
            raise e
        if not document:
            return None
        return User(
            id=int(document["id"]),
            name=document.get("name"),
            email=document.get("email"),
            dob=document.get("dob"),
            last_prediction_at=as_datetime(document.get("last_prediction_at")),
        )

    async def update_last_prediction_time(self, user_id: int, when: datetime) -> None:
        try:
            self.database.get_collection(self.collection_name).update_one(
                {"id": user_id}, {"$set": {"last_prediction_at": when}}
            )
        except PyMongoError as e:
            logger.error(
                "Failed to update last prediction time", user_id=user_id, error=str(e)
            )
            raise e


class UserProfileRepository(IUserProfileRepository):
    def __init__(self, database: MongoDatabase):
        self.database = database
        self.collection_name = PROFILES_COLLECTION

    async def find_by_user_id(self, user_id: int) -> Optional[UserProfile]:
        try:
            document = self.database.get_collection(self.collection_name).find_one(
                {"user_id": user_id}
            )
        except PyMongoError as e:
            logger.error("Failed to get user profile", user_id=user_id, error=str(e))
            raise e
        return self._from_document(document) if document else None

    def _from_document(self, document: Dict[str, Any]) -> UserProfile:
        return UserProfile(
            user_id=int(document["user_id"]),
            height=as_optional_float(document.get("height")),
            weight=as_optional_float(document.get("weight")),
            bmi=as_optional_float(document.get("bmi")),
            age_of_smoking=as_optional_int(document.get("age_of_smoking")),
            age_of_stop_smoking=as_optional_int(document.get("age_of_stop_smoking")),
            smoke_count=as_optional_int(document.get("smoke_count")),
            physical_activity_frequency=as_optional_int(
                document.get("physical_activity_frequency")
            ),
            macrosomic_baby=as_optional_int(document.get("macrosomic_baby")),
            bloodline=as_optional_bool(document.get("bloodline")),
            hypertension=as_optional_bool(document.get("hypertension")),
            cholesterol=as_optional_bool(document.get("cholesterol")),
            created_at=as_datetime(document.get("created_at")),
            updated_at=as_datetime(document.get("updated_at")),
        )


class ActivityRepository(IActivityRepository):
    def __init__(self, database: MongoDatabase):
        self.database = database
        self.collection_name = ACTIVITIES_COLLECTION

    async def get_activities_by_user_id_and_type(
        self, user_id: int, activity_type: ActivityType
    ) -> List[Activity]:
        return await self._find(
            {"user_id": user_id, "activity_type": activity_type.value}
        )

    async def get_activities_in_range(
        self,
        user_id: int,
        activity_type: ActivityType,
        start: datetime,
        end: datetime,
    ) -> List[Activity]:
        return await self._find(
            {
                "user_id": user_id,
                "activity_type": activity_type.value,
                "activity_date": {"$gte": start, "$lte": end},
            }
        )

    async def _find(self, query: Dict[str, Any]) -> List[Activity]:
        try:
            cursor = (
                self.database.get_collection(self.collection_name)
                .find(query)
                .sort("activity_date", 1)
            )
            return [
                Activity(
                    user_id=int(doc["user_id"]),
                    activity_type=ActivityType(doc["activity_type"]),
                    value=int(doc.get("value", 0)),
                    activity_date=as_datetime(doc["activity_date"]),
                )
                for doc in cursor
            ]
        except PyMongoError as e:
            logger.error(
                "Failed to get activities",
                user_id=query.get("user_id"),
                activity_type=query.get("activity_type"),
                error=str(e),
            )
            raise e
