"""
Usage Service - daily quota tracking for free-tier users
"""
import logging
from dataclasses import dataclass, asdict
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import (
    TIER_PAID,
    FREE_DAILY_MESSAGES,
    FREE_DAILY_WEATHER_QUERIES,
    FREE_DAILY_MARKET_QUERIES,
)
from crud.subscription import SubscriptionRepository
from crud.usage import UsageRepository, utc_today

logger = logging.getLogger(__name__)

UNLIMITED = -1


@dataclass
class UsageLimits:
    can_send_message: bool
    can_query_weather: bool
    can_query_market: bool
    remaining_messages: int
    is_paid_user: bool

    def to_dict(self) -> dict:
        return asdict(self)


DENIED = UsageLimits(
    can_send_message=False,
    can_query_weather=False,
    can_query_market=False,
    remaining_messages=0,
    is_paid_user=False,
)


class UsageService:
    """
    Quota tracker for per-user, per-day usage counters.

    Paid users are short-circuited before the usage store is consulted.
    Increments are read-then-write against today's row; two concurrent
    increments for the same user and day can lose one update.
    """

    def __init__(
        self,
        db: AsyncSession,
        subscription_repo: Optional[SubscriptionRepository] = None,
        usage_repo: Optional[UsageRepository] = None,
    ):
        """
        Initialize the usage service.

        Args:
            db: AsyncSession instance for database operations
            subscription_repo: Subscription lookups (defaults to a repository on db)
            usage_repo: Usage counter storage (defaults to a repository on db)
        """
        self.db = db
        self.subscription_repo = subscription_repo or SubscriptionRepository(db)
        self.usage_repo = usage_repo or UsageRepository(db)

    async def is_paid_user(self, user_id: str) -> bool:
        subscription = await self.subscription_repo.get_current_subscription(user_id)
        return subscription is not None and subscription.tier == TIER_PAID and subscription.is_active

    async def check_limits(self, user_id: str) -> UsageLimits:
        """
        Decide which actions the user may take today.

        Store failures deny everything rather than propagate.

        Args:
            user_id: User's ID

        Returns:
            UsageLimits for the user
        """
        try:
            if await self.is_paid_user(user_id):
                return UsageLimits(
                    can_send_message=True,
                    can_query_weather=True,
                    can_query_market=True,
                    remaining_messages=UNLIMITED,
                    is_paid_user=True,
                )

            usage = await self.usage_repo.get_or_create_usage(user_id, utc_today())
        except SQLAlchemyError as e:
            logger.error(f"Usage check failed for user {user_id}: {e}", exc_info=True)
            await self.db.rollback()
            return DENIED

        return UsageLimits(
            can_send_message=usage.message_count < FREE_DAILY_MESSAGES,
            can_query_weather=usage.weather_queries < FREE_DAILY_WEATHER_QUERIES,
            can_query_market=usage.market_queries < FREE_DAILY_MARKET_QUERIES,
            remaining_messages=max(0, FREE_DAILY_MESSAGES - usage.message_count),
            is_paid_user=False,
        )

    async def _increment(self, user_id: str, counter: str) -> bool:
        today = utc_today()
        try:
            usage = await self.usage_repo.get_usage(user_id, today)
            if usage is not None:
                await self.usage_repo.set_counter(usage, counter, getattr(usage, counter) + 1)
            else:
                await self.usage_repo.create_usage(user_id, today, **{counter: 1})
            return True
        except SQLAlchemyError as e:
            logger.error(f"Error incrementing {counter} for user {user_id}: {e}", exc_info=True)
            return False

    async def increment_message_count(self, user_id: str) -> bool:
        return await self._increment(user_id, "message_count")

    async def increment_weather_count(self, user_id: str) -> bool:
        return await self._increment(user_id, "weather_queries")

    async def increment_market_count(self, user_id: str) -> bool:
        return await self._increment(user_id, "market_queries")
