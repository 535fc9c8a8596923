"""
ConversationRepository and MessageRepository for chat persistence
"""

import threading
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete

from config.settings import DEFAULT_CONVERSATION_TITLE
from database_models import Conversation, Message

_clock_lock = threading.Lock()
_last_timestamp: Optional[datetime] = None


def monotonic_utcnow() -> datetime:
    """
    Return the current UTC time, bumped by a microsecond when needed so that
    successive calls in this process are strictly increasing.
    """
    global _last_timestamp
    with _clock_lock:
        now = datetime.utcnow()
        if _last_timestamp is not None and now <= _last_timestamp:
            now = _last_timestamp + timedelta(microseconds=1)
        _last_timestamp = now
        return now


class ConversationRepository:
    """
    Repository class for Conversation database operations.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_conversation(self, user_id: str, language: str = "en",
                                  title: str = DEFAULT_CONVERSATION_TITLE) -> Conversation:
        now = monotonic_utcnow()
        conversation = Conversation(
            user_id=user_id,
            title=title,
            language=language,
            created_at=now,
            updated_at=now,
        )
        self.db.add(conversation)
        await self.db.flush()
        await self.db.refresh(conversation)
        return conversation

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        result = await self.db.execute(
            select(Conversation).where(Conversation.id == conversation_id)
        )
        return result.scalar_one_or_none()

    async def list_conversations(self, user_id: str) -> List[Conversation]:
        """Conversations for a user, most recently active first."""
        result = await self.db.execute(
            select(Conversation)
            .where(Conversation.user_id == user_id)
            .order_by(Conversation.updated_at.desc())
        )
        return list(result.scalars().all())

    async def touch(self, conversation_id: str, when: Optional[datetime] = None) -> None:
        await self.db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(updated_at=when or monotonic_utcnow())
        )

    async def set_title(self, conversation_id: str, title: str) -> bool:
        result = await self.db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(title=title)
        )
        return result.rowcount > 0

    async def set_title_if_current(self, conversation_id: str, expected_title: str, title: str) -> bool:
        """
        Conditional title update. Only rows still carrying expected_title are
        changed, in a single UPDATE statement.

        Returns:
            True if the title was changed, False otherwise
        """
        result = await self.db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .where(Conversation.title == expected_title)
            .values(title=title)
        )
        return result.rowcount > 0

    async def delete_conversation(self, conversation_id: str) -> bool:
        # SQLite does not enforce ON DELETE CASCADE without a pragma
        await self.db.execute(
            delete(Message).where(Message.conversation_id == conversation_id)
        )
        result = await self.db.execute(
            delete(Conversation).where(Conversation.id == conversation_id)
        )
        return result.rowcount > 0


class MessageRepository:
    """
    Repository class for Message database operations.
    Messages are append-only.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_message(self, message_data: dict) -> Message:
        """
        Insert a message.

        Args:
            message_data: Dictionary containing message data. Must include:
                - conversation_id: str
                - role: "user" | "assistant"
                - content: str
                Optional:
                - image_url, audio_url: str
                - metadata: dict
                - created_at: datetime (defaults to a strictly increasing now)

        Returns:
            Created Message object
        """
        message = Message(
            conversation_id=message_data["conversation_id"],
            role=message_data["role"],
            content=message_data["content"],
            image_url=message_data.get("image_url"),
            audio_url=message_data.get("audio_url"),
            message_metadata=message_data.get("metadata"),
            created_at=message_data.get("created_at") or monotonic_utcnow(),
        )
        self.db.add(message)
        await self.db.flush()
        await self.db.refresh(message)
        return message

    async def list_messages(self, conversation_id: str) -> List[Message]:
        """Messages in canonical order: ascending creation time."""
        result = await self.db.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        return list(result.scalars().all())

    async def first_user_message(self, conversation_id: str) -> Optional[Message]:
        result = await self.db.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .where(Message.role == "user")
            .order_by(Message.created_at.asc(), Message.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()
