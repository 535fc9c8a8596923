"""
Panels Router - weather and market data, counted against the daily quota
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user
from backend.utils.responses import success_response, error_response
from database import get_db
from services.market_service import MarketService, MARKET_LOCATIONS
from services.usage_service import UsageService
from services.weather_service import WeatherService, SAMPLE_LOCATIONS
from utils.shared_utils import log_endpoint_event

logger = logging.getLogger(__name__)

weather_router = APIRouter(prefix="/api/weather", tags=["weather"])
market_router = APIRouter(prefix="/api/market", tags=["market"])


async def _count_query(db: AsyncSession, increment) -> None:
    """Commit a counter bump; the query already succeeded, so failures are only logged."""
    if not await increment():
        await db.rollback()
        return
    try:
        await db.commit()
    except SQLAlchemyError as e:
        logger.error(f"Failed to commit query count: {e}", exc_info=True)
        await db.rollback()


@weather_router.get("/locations")
async def weather_locations():
    return success_response({"locations": list(SAMPLE_LOCATIONS)})


@weather_router.get("")
async def get_weather(
    location: str = Query(..., min_length=1),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    user_id = current_user["user_id"]
    usage_service = UsageService(db)
    limits = await usage_service.check_limits(user_id)
    if not limits.can_query_weather:
        log_endpoint_event("/weather", user_id, "denied")
        return error_response("usage_limit_reached", status=429,
                              message="Daily weather query limit reached", data=limits.to_dict())

    result = await WeatherService(db).get_weather(location)
    if result["is_error"]:
        return error_response("store_error", status=500, message=result["error"])

    await _count_query(db, lambda: usage_service.increment_weather_count(user_id))
    log_endpoint_event("/weather", user_id, "success", {"location": location})
    return success_response({"weather": result["data"]})


@market_router.get("/locations")
async def market_locations():
    return success_response({"locations": list(MARKET_LOCATIONS)})


@market_router.get("/prices")
async def get_market_prices(
    location: Optional[str] = Query(default=None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    user_id = current_user["user_id"]
    usage_service = UsageService(db)
    limits = await usage_service.check_limits(user_id)
    if not limits.can_query_market:
        log_endpoint_event("/market/prices", user_id, "denied")
        return error_response("usage_limit_reached", status=429,
                              message="Daily market query limit reached", data=limits.to_dict())

    result = await MarketService(db).get_prices(location)
    if result["is_error"]:
        return error_response("store_error", status=500, message=result["error"])

    await _count_query(db, lambda: usage_service.increment_market_count(user_id))
    log_endpoint_event("/market/prices", user_id, "success", {"location": location})
    return success_response({"prices": result["data"]})
