"""
QueryAnalyticsRepository - append-only log of answered chat queries
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from database_models import QueryAnalytics


class QueryAnalyticsRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record_query(
        self,
        query_type: str,
        language: str = "en",
        success: bool = True,
        response_time: Optional[float] = None,
        source: Optional[str] = None,
    ) -> QueryAnalytics:
        entry = QueryAnalytics(
            query_type=query_type,
            language=language,
            success=success,
            response_time=response_time,
            source=source,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry
