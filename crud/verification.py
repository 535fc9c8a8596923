"""
VerificationCodeRepository for one-time phone verification codes
"""

from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from database_models import VerificationCode


class VerificationCodeRepository:
    """
    At most one code per phone number is pending: issuing a new code
    retires the older ones.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_code(self, phone_number: str, code_hash: str, expires_at: datetime) -> VerificationCode:
        await self.retire_pending_codes(phone_number)
        record = VerificationCode(
            phone_number=phone_number,
            code_hash=code_hash,
            expires_at=expires_at,
            is_used=False,
            failed_attempts=0,
        )
        self.db.add(record)
        await self.db.flush()
        await self.db.refresh(record)
        return record

    async def retire_pending_codes(self, phone_number: str) -> None:
        await self.db.execute(
            update(VerificationCode)
            .where(VerificationCode.phone_number == phone_number)
            .where(VerificationCode.is_used.is_(False))
            .values(is_used=True)
        )

    async def get_pending_code(self, phone_number: str) -> Optional[VerificationCode]:
        """The newest unused, unexpired code for a phone number."""
        result = await self.db.execute(
            select(VerificationCode)
            .where(VerificationCode.phone_number == phone_number)
            .where(VerificationCode.is_used.is_(False))
            .where(VerificationCode.expires_at > datetime.utcnow())
            .order_by(VerificationCode.created_at.desc(), VerificationCode.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def mark_used(self, code_id: int) -> None:
        await self.db.execute(
            update(VerificationCode)
            .where(VerificationCode.id == code_id)
            .values(is_used=True)
        )

    async def record_failed_attempt(self, code_id: int, max_attempts: int) -> None:
        """Count a wrong guess; the code is burned once max_attempts is reached."""
        await self.db.execute(
            update(VerificationCode)
            .where(VerificationCode.id == code_id)
            .values(failed_attempts=VerificationCode.failed_attempts + 1)
        )
        await self.db.execute(
            update(VerificationCode)
            .where(VerificationCode.id == code_id)
            .where(VerificationCode.failed_attempts >= max_attempts)
            .values(is_used=True)
        )
