"""
Market Service - crop prices for the market panel
"""
import logging
import random
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crud.panels import MarketPriceRepository

logger = logging.getLogger(__name__)

MARKET_LOCATIONS = ["Yangon Central Market", "Mandalay Market", "Naypyidaw Market", "Bago Market", "Sagaing Market"]

BASE_PRODUCTS = [
    ("Rice (White)", 45.0, "per bag (50kg)"),
    ("Rice (Sticky)", 52.0, "per bag (50kg)"),
    ("Corn", 30.0, "per bag (40kg)"),
    ("Tomatoes", 2.5, "per kg"),
    ("Onions", 1.8, "per kg"),
    ("Potatoes", 1.5, "per kg"),
    ("Cabbage", 1.2, "per kg"),
    ("Chili Peppers", 4.5, "per kg"),
    ("Beans (Green)", 3.2, "per kg"),
    ("Peanuts", 3.8, "per kg"),
]


def serialize_price(record) -> Dict[str, Any]:
    return {
        "id": record.id,
        "product_name": record.product_name,
        "price": round(record.price, 2),
        "unit": record.unit,
        "market_location": record.market_location,
        "currency": record.currency,
        "updated_at": record.updated_at.isoformat(),
    }


class MarketService:

    def __init__(self, db: AsyncSession, rng: random.Random = None):
        self.db = db
        self.price_repo = MarketPriceRepository(db)
        self.rng = rng or random.Random()

    def generate_sample_prices(self, location: Optional[str] = None) -> List[Dict[str, Any]]:
        """Base prices jittered by +/-10% for one market."""
        target_location = location or MARKET_LOCATIONS[0]
        now = datetime.utcnow()
        return [
            {
                "product_name": name,
                "price": base_price * (0.9 + self.rng.random() * 0.2),
                "unit": unit,
                "market_location": target_location,
                "currency": "USD",
                "updated_at": now,
            }
            for name, base_price, unit in BASE_PRODUCTS
        ]

    async def get_prices(self, location: Optional[str] = None):
        """
        Stored prices for a market, seeding sample prices when none exist.

        Returns:
            {"data": [price dicts], "is_error": False} or {"error": str, "is_error": True}
        """
        try:
            records = await self.price_repo.list_prices(location)
            if not records:
                records = await self.price_repo.save_prices(self.generate_sample_prices(location))
                await self.db.commit()
            return {"data": [serialize_price(r) for r in records], "is_error": False}
        except SQLAlchemyError as e:
            logger.error(f"Error fetching market prices: {e}", exc_info=True)
            await self.db.rollback()
            return {"error": "Failed to fetch market prices", "is_error": True}
