"""
Auth Service - phone verification, registration and login
"""
import logging
import re
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auth_utils import generate_verification_code, hash_code, verify_code_hash
from config.settings import settings
from crud.subscription import SubscriptionRepository
from crud.user import UserRepository
from crud.verification import VerificationCodeRepository

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("en", "my")

PHONE_PATTERN = re.compile(r'^\+?[0-9]{7,15}$')


def normalize_phone(phone_number: str) -> str:
    """Strip spaces, dashes and parentheses from a phone number"""
    return re.sub(r'[\s\-()]', '', phone_number or "")


def validate_phone(phone_number: str) -> bool:
    return PHONE_PATTERN.match(phone_number or "") is not None


class AuthService:
    """
    Business logic for phone-number authentication.

    Codes are delivered out of band; this service only issues and checks
    them. All results are normalized dicts: {"data": ..., "is_error": False}
    or {"error": str, "is_error": True}.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.user_repo = UserRepository(db)
        self.subscription_repo = SubscriptionRepository(db)
        self.code_repo = VerificationCodeRepository(db)

    async def send_verification_code(self, phone_number: str):
        phone_number = normalize_phone(phone_number)
        if not validate_phone(phone_number):
            return {"error": "Invalid phone number", "is_error": True}

        code = generate_verification_code()
        expires_at = datetime.utcnow() + timedelta(minutes=settings.verification_code_ttl_minutes)
        try:
            await self.code_repo.create_code(phone_number, hash_code(code), expires_at)
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error storing verification code: {e}", exc_info=True)
            await self.db.rollback()
            return {"error": "Failed to send verification code", "is_error": True}

        # Delivery happens over the SMS side channel
        logger.info(f"Verification code issued for {phone_number}")
        return {"data": {"code": code, "expires_at": expires_at.isoformat()}, "is_error": False}

    async def verify_code(self, phone_number: str, code: str):
        """
        Consume the pending code for the phone number if it matches.

        Wrong guesses are committed immediately; after
        VERIFICATION_MAX_ATTEMPTS of them the code is burned.
        """
        phone_number = normalize_phone(phone_number)
        record = await self.code_repo.get_pending_code(phone_number)
        if record is None:
            return {"error": "Invalid or expired verification code", "is_error": True}

        if verify_code_hash(code or "", record.code_hash):
            await self.code_repo.mark_used(record.id)
            return {"data": True, "is_error": False}

        await self.code_repo.record_failed_attempt(record.id, settings.verification_max_attempts)
        await self.db.commit()
        logger.warning(f"Wrong verification code for {phone_number}")
        return {"error": "Invalid or expired verification code", "is_error": True}

    async def register_user(self, phone_number: str, name: str, code: str):
        phone_number = normalize_phone(phone_number)
        if not (name or "").strip():
            return {"error": "Name is required", "is_error": True}
        try:
            verification = await self.verify_code(phone_number, code)
            if verification["is_error"]:
                return verification

            existing_user = await self.user_repo.get_user_by_phone(phone_number)
            if existing_user:
                # Keep the consumed code consumed
                await self.db.commit()
                return {"error": "User already exists with this phone number", "is_error": True}

            user = await self.user_repo.create_user({
                "phone_number": phone_number,
                "name": name.strip(),
                "is_verified": True,
                "language_preference": "en",
            })
            await self.subscription_repo.create_free_subscription(user.id)
            await self.db.commit()
            return {"data": user, "is_error": False}
        except SQLAlchemyError as e:
            logger.error(f"Error registering user: {e}", exc_info=True)
            await self.db.rollback()
            return {"error": "Registration failed", "is_error": True}

    async def login_user(self, phone_number: str, code: str):
        phone_number = normalize_phone(phone_number)
        try:
            verification = await self.verify_code(phone_number, code)
            if verification["is_error"]:
                return verification

            user = await self.user_repo.get_user_by_phone(phone_number)
            if not user:
                await self.db.commit()
                return {"error": "User not found. Please register first.", "is_error": True}

            await self.user_repo.touch_last_login(user)
            await self.db.commit()
            return {"data": user, "is_error": False}
        except SQLAlchemyError as e:
            logger.error(f"Error logging in: {e}", exc_info=True)
            await self.db.rollback()
            return {"error": "Login failed", "is_error": True}

    async def update_language(self, user_id: str, language: str):
        if language not in SUPPORTED_LANGUAGES:
            return {"error": f"Unsupported language: {language}", "is_error": True}
        try:
            user = await self.user_repo.get_user_by_id(user_id)
            if not user:
                return {"error": "User not found", "is_error": True}
            await self.user_repo.update_user(user, {"language_preference": language})
            await self.db.commit()
            return {"data": user, "is_error": False}
        except SQLAlchemyError as e:
            logger.error(f"Error updating language: {e}", exc_info=True)
            await self.db.rollback()
            return {"error": "Failed to update language", "is_error": True}
