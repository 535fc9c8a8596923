"""
Unit tests for UsageService quota tracking
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from config.settings import TIER_FREE, TIER_PAID, FREE_DAILY_MESSAGES
from crud.usage import UsageRepository, utc_today
from services.usage_service import UsageService, UNLIMITED, DENIED


@pytest.mark.asyncio
async def test_new_free_user_gets_full_allowance(test_db, free_user):
    limits = await UsageService(test_db).check_limits(free_user.id)

    assert limits.can_send_message is True
    assert limits.can_query_weather is True
    assert limits.can_query_market is True
    assert limits.remaining_messages == FREE_DAILY_MESSAGES
    assert limits.is_paid_user is False

    # Today's record is created lazily with zero counters
    usage = await UsageRepository(test_db).get_usage(free_user.id, utc_today())
    assert usage is not None
    assert usage.message_count == 0


@pytest.mark.asyncio
async def test_free_user_at_daily_ceiling_is_denied(test_db, free_user):
    await UsageRepository(test_db).create_usage(free_user.id, utc_today(), message_count=20)
    await test_db.commit()

    limits = await UsageService(test_db).check_limits(free_user.id)

    assert limits.can_send_message is False
    assert limits.remaining_messages == 0
    # Other counters are independent
    assert limits.can_query_weather is True


@pytest.mark.asyncio
async def test_remaining_messages_never_negative(test_db, free_user):
    await UsageRepository(test_db).create_usage(
        free_user.id, utc_today(), message_count=25, weather_queries=10, market_queries=9
    )
    await test_db.commit()

    limits = await UsageService(test_db).check_limits(free_user.id)

    assert limits.remaining_messages == 0
    assert limits.can_query_weather is False
    assert limits.can_query_market is True


@pytest.mark.asyncio
async def test_paid_user_never_touches_usage_store(test_db):
    subscription = MagicMock(tier=TIER_PAID, is_active=True)
    subscription_repo = MagicMock()
    subscription_repo.get_current_subscription = AsyncMock(return_value=subscription)
    usage_repo = MagicMock()

    service = UsageService(test_db, subscription_repo=subscription_repo, usage_repo=usage_repo)
    limits = await service.check_limits("paid-user-id")

    assert limits.can_send_message is True
    assert limits.can_query_weather is True
    assert limits.can_query_market is True
    assert limits.remaining_messages == UNLIMITED
    assert limits.is_paid_user is True
    assert usage_repo.mock_calls == []


@pytest.mark.asyncio
async def test_paid_user_with_real_subscription(test_db, paid_user):
    limits = await UsageService(test_db).check_limits(paid_user.id)

    assert limits.is_paid_user is True
    assert limits.remaining_messages == UNLIMITED
    assert await UsageRepository(test_db).get_usage(paid_user.id, utc_today()) is None


@pytest.mark.asyncio
async def test_inactive_paid_subscription_counts_as_free(test_db):
    subscription = MagicMock(tier=TIER_PAID, is_active=False)
    subscription_repo = MagicMock()
    subscription_repo.get_current_subscription = AsyncMock(return_value=subscription)
    usage_repo = MagicMock()
    usage_repo.get_or_create_usage = AsyncMock(
        return_value=MagicMock(message_count=3, weather_queries=0, market_queries=0)
    )

    limits = await UsageService(test_db, subscription_repo, usage_repo).check_limits("user-id")

    assert limits.is_paid_user is False
    assert limits.remaining_messages == FREE_DAILY_MESSAGES - 3


@pytest.mark.asyncio
async def test_store_failure_denies_everything(test_db):
    subscription_repo = MagicMock()
    subscription_repo.get_current_subscription = AsyncMock(
        return_value=MagicMock(tier=TIER_FREE, is_active=True)
    )
    usage_repo = MagicMock()
    usage_repo.get_or_create_usage = AsyncMock(
        side_effect=OperationalError("SELECT", {}, Exception("database is locked"))
    )

    limits = await UsageService(test_db, subscription_repo, usage_repo).check_limits("user-id")

    assert limits == DENIED
    assert limits.can_send_message is False
    assert limits.remaining_messages == 0


@pytest.mark.asyncio
async def test_increment_creates_row_on_first_use(test_db, free_user):
    service = UsageService(test_db)

    assert await service.increment_message_count(free_user.id) is True
    await test_db.commit()

    usage = await UsageRepository(test_db).get_usage(free_user.id, utc_today())
    assert usage.message_count == 1
    assert usage.weather_queries == 0
    assert usage.market_queries == 0


@pytest.mark.asyncio
async def test_increments_are_per_counter(test_db, free_user):
    service = UsageService(test_db)

    await service.increment_message_count(free_user.id)
    await service.increment_message_count(free_user.id)
    await service.increment_weather_count(free_user.id)
    await service.increment_market_count(free_user.id)
    await service.increment_market_count(free_user.id)
    await service.increment_market_count(free_user.id)
    await test_db.commit()

    usage = await UsageRepository(test_db).get_usage(free_user.id, utc_today())
    assert usage.message_count == 2
    assert usage.weather_queries == 1
    assert usage.market_queries == 3


@pytest.mark.asyncio
async def test_increment_reports_store_failure(test_db):
    usage_repo = MagicMock()
    usage_repo.get_usage = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("disk I/O error")))

    service = UsageService(test_db, subscription_repo=MagicMock(), usage_repo=usage_repo)

    assert await service.increment_message_count("user-id") is False


@pytest.mark.asyncio
async def test_limits_to_dict(test_db, free_user):
    limits = await UsageService(test_db).check_limits(free_user.id)

    assert limits.to_dict() == {
        "can_send_message": True,
        "can_query_weather": True,
        "can_query_market": True,
        "remaining_messages": FREE_DAILY_MESSAGES,
        "is_paid_user": False,
    }
