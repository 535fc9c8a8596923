"""
Deferred auto-titling of new conversations
"""
import asyncio
import logging
from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from config.settings import settings
from database import AsyncSessionLocal
from services.conversation_service import ConversationService, derive_title

logger = logging.getLogger(__name__)


class AutoTitleScheduler:
    """
    Schedules a delayed rename of a conversation to a prefix of its first
    user message. At most one task is pending per conversation; the rename
    itself goes through rename_if_default, so a manual rename made while the
    task waits is kept.
    """

    def __init__(self, session_factory: async_sessionmaker, delay_seconds: float):
        self.session_factory = session_factory
        self.delay_seconds = delay_seconds
        self._tasks: Dict[str, asyncio.Task] = {}

    def schedule(self, conversation_id: str) -> asyncio.Task:
        existing = self._tasks.get(conversation_id)
        if existing is not None and not existing.done():
            return existing

        task = asyncio.create_task(self._run(conversation_id))
        self._tasks[conversation_id] = task
        task.add_done_callback(lambda t, cid=conversation_id: self._forget(cid, t))
        return task

    def cancel(self, conversation_id: str) -> bool:
        task = self._tasks.pop(conversation_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_all(self) -> int:
        return sum(1 for conversation_id in list(self._tasks) if self.cancel(conversation_id))

    def pending(self, conversation_id: str) -> Optional[asyncio.Task]:
        return self._tasks.get(conversation_id)

    def _forget(self, conversation_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(conversation_id) is task:
            del self._tasks[conversation_id]

    async def _run(self, conversation_id: str) -> bool:
        await asyncio.sleep(self.delay_seconds)

        async with self.session_factory() as session:
            try:
                service = ConversationService(session)
                first = await service.first_user_message(conversation_id)
                if first is None:
                    return False
                renamed = await service.rename_if_default(conversation_id, derive_title(first.content))
                await session.commit()
                return renamed
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Auto-title failed for conversation {conversation_id}: {e}", exc_info=True)
                return False


auto_titler = AutoTitleScheduler(AsyncSessionLocal, settings.auto_title_delay_seconds)
