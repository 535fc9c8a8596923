"""
Chat Pipeline - usage-gated "send message, receive reply" orchestration
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import DEFAULT_CONVERSATION_TITLE
from crud.analytics import QueryAnalyticsRepository
from database_models import Message
from services.conversation_service import ConversationService, serialize_message
from services.fallback_responses import detect_query_type
from services.response_service import ResponseGenerator, HISTORY_WINDOW
from services.usage_service import UsageService, UNLIMITED

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_PROMPT = "Please analyze this image for any crop issues."

STATUS_OK = "ok"
STATUS_DENIED = "denied"
STATUS_ERROR = "error"
STATUS_INVALID = "invalid"
STATUS_NOT_FOUND = "not_found"


@dataclass
class SendResult:
    status: str
    user_message: Optional[Message] = None
    assistant_message: Optional[Message] = None
    remaining_messages: Optional[int] = None
    reply_source: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "user_message": serialize_message(self.user_message) if self.user_message else None,
            "assistant_message": serialize_message(self.assistant_message) if self.assistant_message else None,
            "remaining_messages": self.remaining_messages,
            "reply_source": self.reply_source,
        }


def is_valid_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
        return True
    except (ValueError, TypeError, AttributeError):
        return False


class ChatPipeline:
    """
    Runs one send in strict order:
    Gated -> UserPersisted -> Generating -> Persisted -> Done.

    Denied ends the run before any write. A failed store write ends it with
    an error result; the user message, once committed, is not rolled back.
    Counter and analytics updates after the reply is stored are best effort.
    """

    def __init__(
        self,
        db: AsyncSession,
        generator: Optional[ResponseGenerator] = None,
        usage_service: Optional[UsageService] = None,
        conversation_service: Optional[ConversationService] = None,
        auto_titler=None,
    ):
        """
        Initialize the pipeline.

        Args:
            db: AsyncSession used for all writes of this run
            generator: Reply producer (defaults to one built from settings)
            usage_service: Quota tracker (defaults to one on db)
            conversation_service: Message persistence (defaults to one on db)
            auto_titler: Optional AutoTitleScheduler for new conversations
        """
        self.db = db
        self.generator = generator or ResponseGenerator()
        self.usage_service = usage_service or UsageService(db)
        self.conversation_service = conversation_service or ConversationService(db)
        self.analytics_repo = QueryAnalyticsRepository(db)
        self.auto_titler = auto_titler

    async def send_and_respond(
        self,
        user_id: str,
        conversation_id: str,
        text: Optional[str],
        image_data_uri: Optional[str] = None,
    ) -> SendResult:
        # Validation happens before any store access
        if not user_id:
            return SendResult(status=STATUS_INVALID, error="Missing user identity")
        if not is_valid_uuid(conversation_id):
            return SendResult(status=STATUS_INVALID, error="Malformed conversation id")
        text = (text or "").strip()
        if not text and not image_data_uri:
            return SendResult(status=STATUS_INVALID, error="Message text or image is required")
        if not text:
            text = DEFAULT_IMAGE_PROMPT

        try:
            conversation = await self.conversation_service.get_conversation(conversation_id, user_id)
        except SQLAlchemyError as e:
            logger.error(f"Conversation lookup failed for {conversation_id}: {e}", exc_info=True)
            await self.db.rollback()
            return SendResult(status=STATUS_ERROR, error="Failed to load conversation")
        if conversation is None:
            return SendResult(status=STATUS_NOT_FOUND, error="Conversation not found")
        # Later rollbacks expire ORM state; keep what the run needs
        title, language = conversation.title, conversation.language

        # Idle -> Gated
        limits = await self.usage_service.check_limits(user_id)
        if not limits.can_send_message:
            logger.info(f"Message denied for user {user_id}: daily limit reached")
            return SendResult(status=STATUS_DENIED, remaining_messages=limits.remaining_messages,
                              error="Daily message limit reached")

        # Gated -> UserPersisted
        try:
            prior_messages = await self.conversation_service.load_history(conversation_id)
            user_message = await self.conversation_service.append_user_message(
                conversation_id, text, image_url=image_data_uri
            )
            await self.db.commit()
            self.db.expunge(user_message)
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist user message in {conversation_id}: {e}", exc_info=True)
            await self.db.rollback()
            return SendResult(status=STATUS_ERROR, error="Failed to save message")

        if (
            self.auto_titler is not None
            and title == DEFAULT_CONVERSATION_TITLE
            and not any(m.role == "user" for m in prior_messages)
        ):
            self.auto_titler.schedule(conversation_id)

        # UserPersisted -> Generating
        history = [{"role": m.role, "content": m.content} for m in prior_messages[-HISTORY_WINDOW:]]
        started = time.perf_counter()
        reply = await self.generator.generate(
            text,
            conversation_history=history,
            image_data=image_data_uri,
            is_paid_user=limits.is_paid_user,
            language=language,
        )
        response_time_ms = (time.perf_counter() - started) * 1000

        # Generating -> Persisted
        try:
            assistant_message = await self.conversation_service.append_assistant_message(
                conversation_id, reply.text, metadata={"source": reply.source}
            )
            await self.db.commit()
            self.db.expunge(assistant_message)
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist assistant reply in {conversation_id}: {e}", exc_info=True)
            await self.db.rollback()
            return SendResult(status=STATUS_ERROR, user_message=user_message,
                              reply_source=reply.source, error="Failed to save reply")

        # Persisted -> Done
        remaining = await self._record_usage(user_id, limits)
        await self._record_analytics(text, bool(image_data_uri), language,
                                     response_time_ms, reply.source)

        return SendResult(
            status=STATUS_OK,
            user_message=user_message,
            assistant_message=assistant_message,
            remaining_messages=remaining,
            reply_source=reply.source,
        )

    async def _record_usage(self, user_id: str, limits) -> int:
        incremented = await self.usage_service.increment_message_count(user_id)
        try:
            if incremented:
                await self.db.commit()
            else:
                await self.db.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Failed to commit message count for user {user_id}: {e}", exc_info=True)
            await self.db.rollback()
            incremented = False

        if not incremented:
            logger.warning(f"Message count not incremented for user {user_id}")
        if limits.is_paid_user:
            return UNLIMITED
        if incremented:
            return max(0, limits.remaining_messages - 1)
        return limits.remaining_messages

    async def _record_analytics(self, text: str, has_image: bool, language: str,
                                response_time_ms: float, source: str) -> None:
        try:
            await self.analytics_repo.record_query(
                query_type=detect_query_type(text, has_image),
                language=language or "en",
                success=True,
                response_time=round(response_time_ms, 2),
                source=source,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Failed to record query analytics: {e}")
            await self.db.rollback()
