"""
Usage Router - today's quota for the current user
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user
from backend.utils.responses import success_response
from config.settings import FREE_DAILY_MESSAGES, FREE_DAILY_WEATHER_QUERIES, FREE_DAILY_MARKET_QUERIES
from database import get_db
from services.usage_service import UsageService

usage_router = APIRouter(prefix="/api/usage", tags=["usage"])


@usage_router.get("/limits")
async def get_limits(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    limits = await UsageService(db).check_limits(current_user["user_id"])
    return success_response({
        **limits.to_dict(),
        "daily_limits": {
            "messages": FREE_DAILY_MESSAGES,
            "weather_queries": FREE_DAILY_WEATHER_QUERIES,
            "market_queries": FREE_DAILY_MARKET_QUERIES,
        },
    })
