"""
Chat Router - conversations and the usage-gated send endpoint
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user
from backend.utils.responses import success_response, error_response
from database import get_db
from jobs.auto_title import auto_titler
from services.chat_pipeline import (
    ChatPipeline,
    STATUS_OK,
    STATUS_DENIED,
    STATUS_INVALID,
    STATUS_NOT_FOUND,
    is_valid_uuid,
)
from services.conversation_service import (
    ConversationService,
    serialize_conversation,
    serialize_message,
)
from services.auth_service import SUPPORTED_LANGUAGES
from services.response_service import to_data_uri
from utils.shared_utils import log_endpoint_event

logger = logging.getLogger(__name__)

chat_router = APIRouter(prefix="/api/conversations", tags=["conversations"])

MAX_TITLE_LENGTH = 255

# Pipeline result status -> (HTTP status, error code)
SEND_ERRORS = {
    STATUS_DENIED: (429, "usage_limit_reached"),
    STATUS_INVALID: (400, "invalid_request"),
    STATUS_NOT_FOUND: (404, "conversation_not_found"),
}


# Request models
class CreateConversationRequest(BaseModel):
    language: Optional[str] = Field(default=None, description="Defaults to the user's language preference")


class RenameConversationRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)


class SendMessageRequest(BaseModel):
    text: Optional[str] = Field(default=None, description="Message text; may be blank when an image is attached")
    image_data: Optional[str] = Field(default=None, description="Data URI or bare base64 image")


async def _owned_conversation(service: ConversationService, conversation_id: str, user_id: str):
    if not is_valid_uuid(conversation_id):
        return None
    return await service.get_conversation(conversation_id, user_id)


def _not_found():
    return error_response("conversation_not_found", status=404, message="Conversation not found")


@chat_router.get("")
async def list_conversations(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Conversations of the current user, most recently active first"""
    conversations = await ConversationService(db).list_conversations(current_user["user_id"])
    return success_response({"conversations": [serialize_conversation(c) for c in conversations]})


@chat_router.post("")
async def create_conversation(
    request: CreateConversationRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    language = request.language or current_user.get("language_preference") or "en"
    if language not in SUPPORTED_LANGUAGES:
        return error_response("unsupported_language", status=400, message=f"Unsupported language: {language}")

    service = ConversationService(db)
    conversation = await service.create_conversation(current_user["user_id"], language)
    await db.commit()
    log_endpoint_event("/conversations", current_user["user_id"], "success", {"conversation_id": conversation.id})
    return success_response({"conversation": serialize_conversation(conversation)}, status=201)


@chat_router.get("/{conversation_id}/messages")
async def get_messages(
    conversation_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Conversation plus its full history in chronological order"""
    service = ConversationService(db)
    conversation = await _owned_conversation(service, conversation_id, current_user["user_id"])
    if conversation is None:
        return _not_found()

    messages = await service.load_history(conversation_id)
    return success_response({
        "conversation": serialize_conversation(conversation),
        "messages": [serialize_message(m) for m in messages],
    })


@chat_router.patch("/{conversation_id}")
async def rename_conversation(
    conversation_id: str,
    request: RenameConversationRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    title = request.title.strip()
    if not title:
        return error_response("invalid_title", status=400, message="Title must not be blank")

    service = ConversationService(db)
    conversation = await _owned_conversation(service, conversation_id, current_user["user_id"])
    if conversation is None:
        return _not_found()

    # A manual title always wins over the pending auto-title
    auto_titler.cancel(conversation_id)
    await service.rename_conversation(conversation_id, title)
    await db.commit()
    await db.refresh(conversation)
    log_endpoint_event(f"/conversations/{conversation_id}", current_user["user_id"], "renamed")
    return success_response({"conversation": serialize_conversation(conversation)})


@chat_router.delete("/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = ConversationService(db)
    conversation = await _owned_conversation(service, conversation_id, current_user["user_id"])
    if conversation is None:
        return _not_found()

    auto_titler.cancel(conversation_id)
    try:
        await service.delete_conversation(conversation_id)
        await db.commit()
    except SQLAlchemyError as e:
        logger.error(f"Failed to delete conversation {conversation_id}: {e}", exc_info=True)
        await db.rollback()
        return error_response("store_error", status=500, message="Failed to delete conversation")

    log_endpoint_event(f"/conversations/{conversation_id}", current_user["user_id"], "deleted")
    return success_response({"deleted": True})


@chat_router.post("/{conversation_id}/messages")
async def send_message(
    conversation_id: str,
    request: SendMessageRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Send a message and receive the assistant reply, subject to the daily quota"""
    user_id = current_user["user_id"]
    image_data_uri = to_data_uri(request.image_data) if request.image_data else None

    pipeline = ChatPipeline(db, auto_titler=auto_titler)
    result = await pipeline.send_and_respond(user_id, conversation_id, request.text, image_data_uri)

    log_endpoint_event(
        f"/conversations/{conversation_id}/messages",
        user_id,
        result.status,
        {"reply_source": result.reply_source, "remaining_messages": result.remaining_messages},
    )

    if result.status == STATUS_OK:
        return success_response(result.to_dict())

    status, error_code = SEND_ERRORS.get(result.status, (500, "store_error"))
    return error_response(error_code, status=status, message=result.error or "Request failed",
                          data=result.to_dict())
