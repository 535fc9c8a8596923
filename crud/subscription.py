"""
SubscriptionRepository for database operations on Subscription model
"""

from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, or_

from config.settings import TIER_FREE, TIER_PAID
from database_models import Subscription


class SubscriptionRepository:
    """
    Repository class for Subscription database operations.
    A user has at most one current subscription: the latest active row.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_current_subscription(self, user_id: str) -> Optional[Subscription]:
        """
        Retrieve the user's current subscription.

        Rows whose expiry has passed are skipped, so a lapsed paid
        subscription is never reported as current.

        Args:
            user_id: User's ID

        Returns:
            Latest active, unexpired Subscription, or None
        """
        now = datetime.utcnow()
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .where(Subscription.is_active.is_(True))
            .where(or_(Subscription.expires_at.is_(None), Subscription.expires_at > now))
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create_free_subscription(self, user_id: str) -> Subscription:
        """Create the implicit free-tier row given to every new user."""
        subscription = Subscription(
            user_id=user_id,
            tier=TIER_FREE,
            is_active=True,
        )
        self.db.add(subscription)
        await self.db.flush()
        await self.db.refresh(subscription)
        return subscription

    async def upgrade_to_paid(
        self,
        user_id: str,
        payment_reference: Optional[str] = None,
        duration_days: Optional[int] = None,
    ) -> Subscription:
        """
        Switch a user to the paid tier.

        Deactivates every existing row for the user and inserts a new paid
        row so that it becomes the current subscription. A payment_reference
        that was already applied returns its row unchanged, so a redelivered
        checkout event does not restart the paid period.

        Args:
            user_id: User's ID
            payment_reference: Payment provider reference (e.g. Stripe session id)
            duration_days: Paid period length; None means no expiry

        Returns:
            The paid Subscription for this payment
        """
        if payment_reference:
            existing = await self.get_by_payment_reference(user_id, payment_reference)
            if existing is not None:
                return existing

        now = datetime.utcnow()
        await self.db.execute(
            update(Subscription)
            .where(Subscription.user_id == user_id)
            .where(Subscription.is_active.is_(True))
            .values(is_active=False)
        )
        subscription = Subscription(
            user_id=user_id,
            tier=TIER_PAID,
            started_at=now,
            expires_at=now + timedelta(days=duration_days) if duration_days else None,
            is_active=True,
            payment_reference=payment_reference,
            created_at=now,
        )
        self.db.add(subscription)
        await self.db.flush()
        await self.db.refresh(subscription)
        return subscription

    async def get_by_payment_reference(self, user_id: str, payment_reference: str) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .where(Subscription.tier == TIER_PAID)
            .where(Subscription.payment_reference == payment_reference)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
