"""
Weather Service - cached weather readings for the weather panel
"""
import logging
import random
from datetime import datetime, timedelta
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crud.panels import WeatherRepository

logger = logging.getLogger(__name__)

SAMPLE_LOCATIONS = ["Yangon", "Mandalay", "Naypyidaw", "Bago", "Sagaing"]
CONDITIONS = ["Sunny", "Partly Cloudy", "Cloudy", "Light Rain"]
FORECAST_CONDITIONS = CONDITIONS + ["Rain"]
READING_TTL = timedelta(hours=1)


def serialize_weather(record) -> Dict[str, Any]:
    return {
        "id": record.id,
        "location": record.location,
        "temperature": record.temperature,
        "condition": record.condition,
        "humidity": record.humidity,
        "wind_speed": record.wind_speed,
        "forecast": record.forecast or [],
        "fetched_at": record.fetched_at.isoformat(),
        "valid_until": record.valid_until.isoformat(),
    }


class WeatherService:
    """
    Serves the latest still-valid reading for a location, generating and
    storing a sample reading when none is cached.
    """

    def __init__(self, db: AsyncSession, rng: random.Random = None):
        self.db = db
        self.weather_repo = WeatherRepository(db)
        self.rng = rng or random.Random()

    def generate_sample_weather(self, location: str) -> Dict[str, Any]:
        now = datetime.utcnow()
        return {
            "location": location,
            "temperature": round(20 + self.rng.random() * 15),
            "condition": self.rng.choice(CONDITIONS),
            "humidity": round(40 + self.rng.random() * 40),
            "wind_speed": round(5 + self.rng.random() * 15),
            "forecast": [
                {
                    "day": (now + timedelta(days=i)).strftime("%a"),
                    "temp_high": round(20 + self.rng.random() * 15),
                    "temp_low": round(10 + self.rng.random() * 10),
                    "condition": self.rng.choice(FORECAST_CONDITIONS),
                }
                for i in range(7)
            ],
            "fetched_at": now,
            "valid_until": now + READING_TTL,
        }

    async def get_weather(self, location: str):
        """
        Returns:
            {"data": weather dict, "is_error": False} or {"error": str, "is_error": True}
        """
        try:
            record = await self.weather_repo.get_valid_weather(location)
            if record is None:
                record = await self.weather_repo.save_weather(self.generate_sample_weather(location))
                await self.db.commit()
            return {"data": serialize_weather(record), "is_error": False}
        except SQLAlchemyError as e:
            logger.error(f"Error fetching weather for {location}: {e}", exc_info=True)
            await self.db.rollback()
            return {"error": "Failed to fetch weather data", "is_error": True}
