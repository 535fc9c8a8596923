"""
Conversation Service - conversation and message persistence
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import DEFAULT_CONVERSATION_TITLE
from crud.conversation import ConversationRepository, MessageRepository, monotonic_utcnow
from database_models import Conversation, Message

logger = logging.getLogger(__name__)

AUTO_TITLE_MAX_LENGTH = 40


def derive_title(first_message: str) -> str:
    """First 40 characters of the message, with "..." when it was cut."""
    text = (first_message or "").strip()
    if len(text) > AUTO_TITLE_MAX_LENGTH:
        return text[:AUTO_TITLE_MAX_LENGTH] + "..."
    return text


def serialize_message(message: Message) -> Dict[str, Any]:
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "role": message.role,
        "content": message.content,
        "image_url": message.image_url,
        "audio_url": message.audio_url,
        "metadata": message.message_metadata,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }


def serialize_conversation(conversation: Conversation) -> Dict[str, Any]:
    return {
        "id": conversation.id,
        "user_id": conversation.user_id,
        "title": conversation.title,
        "language": conversation.language,
        "created_at": conversation.created_at.isoformat() if conversation.created_at else None,
        "updated_at": conversation.updated_at.isoformat() if conversation.updated_at else None,
    }


class ConversationService:
    """
    Appends messages to conversations and keeps updated_at current.

    Writes are flushed, not committed; callers decide transaction boundaries.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.conversation_repo = ConversationRepository(db)
        self.message_repo = MessageRepository(db)

    async def create_conversation(self, user_id: str, language: str = "en") -> Conversation:
        return await self.conversation_repo.create_conversation(user_id, language)

    async def list_conversations(self, user_id: str) -> List[Conversation]:
        return await self.conversation_repo.list_conversations(user_id)

    async def get_conversation(self, conversation_id: str, user_id: Optional[str] = None) -> Optional[Conversation]:
        """Fetch a conversation, optionally requiring that user_id owns it."""
        conversation = await self.conversation_repo.get_conversation(conversation_id)
        if conversation is None:
            return None
        if user_id is not None and conversation.user_id != user_id:
            return None
        return conversation

    async def _append(self, conversation_id: str, role: str, text: str,
                      image_url: Optional[str] = None, audio_url: Optional[str] = None,
                      metadata: Optional[dict] = None) -> Message:
        created_at = monotonic_utcnow()
        message = await self.message_repo.create_message({
            "conversation_id": conversation_id,
            "role": role,
            "content": text,
            "image_url": image_url,
            "audio_url": audio_url,
            "metadata": metadata,
            "created_at": created_at,
        })
        await self.conversation_repo.touch(conversation_id, created_at)
        return message

    async def append_user_message(self, conversation_id: str, text: str,
                                  image_url: Optional[str] = None, audio_url: Optional[str] = None,
                                  metadata: Optional[dict] = None) -> Message:
        return await self._append(conversation_id, "user", text, image_url, audio_url, metadata)

    async def append_assistant_message(self, conversation_id: str, text: str,
                                       metadata: Optional[dict] = None) -> Message:
        return await self._append(conversation_id, "assistant", text, metadata=metadata)

    async def load_history(self, conversation_id: str) -> List[Message]:
        return await self.message_repo.list_messages(conversation_id)

    async def first_user_message(self, conversation_id: str) -> Optional[Message]:
        return await self.message_repo.first_user_message(conversation_id)

    async def rename_if_default(self, conversation_id: str, candidate_title: str) -> bool:
        """
        Rename only while the title is still the system default, so a manual
        rename is never overwritten.

        Returns:
            True if the conversation was renamed
        """
        if not candidate_title:
            return False
        renamed = await self.conversation_repo.set_title_if_current(
            conversation_id, DEFAULT_CONVERSATION_TITLE, candidate_title
        )
        if renamed:
            logger.info(f"Auto-titled conversation {conversation_id}")
        return renamed

    async def rename_conversation(self, conversation_id: str, title: str) -> bool:
        return await self.conversation_repo.set_title(conversation_id, title)

    async def delete_conversation(self, conversation_id: str) -> bool:
        return await self.conversation_repo.delete_conversation(conversation_id)
