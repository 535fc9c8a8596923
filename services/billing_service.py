"""
Billing Service - Stripe checkout for the paid tier
"""

import logging
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import stripe

from config.settings import settings
from crud.subscription import SubscriptionRepository

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"

# Initialize Stripe client
if settings.stripe_secret_key:
    stripe.api_key = settings.stripe_secret_key
else:
    logger.warning("STRIPE_SECRET_KEY is not set. Stripe functionality will be unavailable.")


class BillingService:
    """
    Service class for handling billing-related business logic.
    The checkout session carries the user id so the webhook can upgrade the right account.
    """

    def __init__(self, db: AsyncSession, subscription_repo: Optional[SubscriptionRepository] = None):
        """
        Initialize the billing service.

        Args:
            db: AsyncSession instance for database operations
            subscription_repo: Optional repository override
        """
        self.db = db
        self.subscription_repo = subscription_repo or SubscriptionRepository(db)

    async def create_checkout_session(self, user_id: str, phone_number: Optional[str] = None):
        """
        Create a Stripe Checkout session for the paid tier.

        Args:
            user_id: Authenticated user's ID, stored as client_reference_id
            phone_number: Optional phone number stored in session metadata

        Returns:
            Normalized response: {"data": url, "is_error": False} or {"error": str(e), "is_error": True}
        """
        if not settings.stripe_secret_key:
            logger.error("STRIPE_SECRET_KEY is not set. Cannot create checkout session.")
            return {"error": "STRIPE_SECRET_KEY is not set. Cannot create checkout session.", "is_error": True}

        if not settings.stripe_price_id:
            logger.error("STRIPE_PRICE_ID is not set. Cannot create checkout session.")
            return {"error": "STRIPE_PRICE_ID is not set. Cannot create checkout session.", "is_error": True}

        try:
            frontend_url = settings.frontend_url or "http://localhost:5173"

            checkout_session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                line_items=[{
                    "price": settings.stripe_price_id,
                    "quantity": 1,
                }],
                mode="payment",
                client_reference_id=user_id,
                success_url=f"{frontend_url}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{frontend_url}/billing/cancel",
                metadata={
                    "user_id": user_id,
                    "phone_number": phone_number or "",
                }
            )

            return {"data": checkout_session.url, "is_error": False}
        except stripe.StripeError as e:
            logger.error(f"Failed to create checkout session: {e}", exc_info=True)
            return {"error": str(e), "is_error": True}

    async def process_webhook(self, event):
        """
        Process a verified Stripe webhook event.

        A completed checkout upgrades the referenced user to the paid tier
        for PAID_SUBSCRIPTION_DAYS. Other event types are acknowledged only.

        Args:
            event: Verified Stripe Event object (from webhook signature verification)

        Returns:
            Normalized response: {"data": bool upgraded, "is_error": False} or
            {"error": str(e), "is_error": True, "retryable": bool}. retryable marks
            store failures that a redelivery of the event can still fix.
        """
        event_type = event["type"]
        logger.info(f"Processing Stripe webhook event: {event_type}")

        if event_type != CHECKOUT_COMPLETED:
            return {"data": False, "is_error": False}

        session = event["data"]["object"]
        metadata = session.get("metadata") or {}
        user_id = session.get("client_reference_id") or metadata.get("user_id")
        if not user_id:
            logger.error(f"Checkout session {session.get('id')} has no user reference")
            return {"error": "Checkout session has no user reference", "is_error": True, "retryable": False}

        try:
            await self.subscription_repo.upgrade_to_paid(
                user_id,
                payment_reference=session.get("id"),
                duration_days=settings.paid_subscription_days,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to upgrade user {user_id}: {e}", exc_info=True)
            await self.db.rollback()
            return {"error": str(e), "is_error": True, "retryable": True}

        logger.info(f"User {user_id} upgraded to paid tier")
        return {"data": True, "is_error": False}
