"""
Repositories for the weather and market display panels
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from database_models import WeatherData, MarketPrice


class WeatherRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_valid_weather(self, location: str) -> Optional[WeatherData]:
        """Latest cached reading for a location that has not passed valid_until."""
        result = await self.db.execute(
            select(WeatherData)
            .where(WeatherData.location == location)
            .where(WeatherData.valid_until > datetime.utcnow())
            .order_by(WeatherData.fetched_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def save_weather(self, weather_data: dict) -> WeatherData:
        record = WeatherData(**weather_data)
        self.db.add(record)
        await self.db.flush()
        await self.db.refresh(record)
        return record


class MarketPriceRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_prices(self, location: Optional[str] = None) -> List[MarketPrice]:
        query = select(MarketPrice).order_by(MarketPrice.updated_at.desc(), MarketPrice.id.asc())
        if location:
            query = query.where(MarketPrice.market_location == location)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def save_prices(self, prices: List[dict]) -> List[MarketPrice]:
        records = [MarketPrice(**price) for price in prices]
        self.db.add_all(records)
        await self.db.flush()
        return records
