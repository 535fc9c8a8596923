"""
UsageRepository for the per-user, per-day usage counters
"""

from datetime import date, datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from database_models import UserUsage

USAGE_COUNTERS = ("message_count", "weather_queries", "market_queries")


def utc_today() -> date:
    return datetime.utcnow().date()


class UsageRepository:
    """
    Repository class for UserUsage database operations.
    There is at most one row per (user_id, date); rows for past dates are never touched.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_usage(self, user_id: str, day: date) -> Optional[UserUsage]:
        result = await self.db.execute(
            select(UserUsage)
            .where(UserUsage.user_id == user_id)
            .where(UserUsage.date == day)
        )
        return result.scalar_one_or_none()

    async def create_usage(self, user_id: str, day: date, **counters) -> UserUsage:
        """
        Insert the usage row for a day.

        Args:
            user_id: User's ID
            day: Calendar date (UTC)
            **counters: Initial counter values; missing counters start at zero

        Returns:
            Created UserUsage object
        """
        usage = UserUsage(
            user_id=user_id,
            date=day,
            message_count=counters.get("message_count", 0),
            weather_queries=counters.get("weather_queries", 0),
            market_queries=counters.get("market_queries", 0),
            updated_at=datetime.utcnow(),
        )
        self.db.add(usage)
        await self.db.flush()
        await self.db.refresh(usage)
        return usage

    async def get_or_create_usage(self, user_id: str, day: date) -> UserUsage:
        usage = await self.get_usage(user_id, day)
        if usage is None:
            usage = await self.create_usage(user_id, day)
        return usage

    async def set_counter(self, usage: UserUsage, counter: str, value: int) -> UserUsage:
        """Write a counter value back to an existing row."""
        if counter not in USAGE_COUNTERS:
            raise ValueError(f"Unknown usage counter: {counter}")
        setattr(usage, counter, value)
        usage.updated_at = datetime.utcnow()
        await self.db.flush()
        await self.db.refresh(usage)
        return usage
