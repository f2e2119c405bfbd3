"""Read-side repository interfaces for users, profiles and activities."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from diabetify.domain.entities.user import Activity, ActivityType, User, UserProfile


class IUserRepository(ABC):
    @abstractmethod
    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        pass

    @abstractmethod
    async def update_last_prediction_time(self, user_id: int, when: datetime) -> None:
        pass


class IUserProfileRepository(ABC):
    @abstractmethod
    async def find_by_user_id(self, user_id: int) -> Optional[UserProfile]:
        pass


class IActivityRepository(ABC):
    @abstractmethod
    async def get_activities_by_user_id_and_type(
        self, user_id: int, activity_type: ActivityType
    ) -> List[Activity]:
        pass

    @abstractmethod
    async def get_activities_in_range(
        self,
        user_id: int,
        activity_type: ActivityType,
        start: datetime,
        end: datetime,
    ) -> List[Activity]:
        """Activities with ``start <= activity_date <= end``."""
        pass
