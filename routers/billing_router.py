"""
Billing Router - API endpoints for Stripe billing integration
Webhook is defined FIRST to avoid middleware conflicts
"""

import logging
from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
import stripe

from auth import get_current_user
from backend.utils.responses import success_response, error_response
from config.settings import settings
from database import get_db
from services.billing_service import BillingService
from utils.shared_utils import log_endpoint_event

logger = logging.getLogger(__name__)

# Create billing router
billing_router = APIRouter(prefix="/api/billing", tags=["billing"])


def _webhook_ack(ok: bool, status_code: int = 200, **extra) -> JSONResponse:
    # Stripe retries anything that is not a 2xx
    return JSONResponse(status_code=status_code, content={"ok": ok, "received": True, **extra})


# WEBHOOK ENDPOINT - MUST BE DEFINED FIRST TO AVOID MIDDLEWARE CONFLICTS
@billing_router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Handle Stripe webhook events with signature verification.

    Only verified events are processed. Returns 200 OK to Stripe unless the
    upgrade could not be stored, in which case a 500 asks Stripe to redeliver.
    """
    webhook_secret = settings.stripe_webhook_secret
    if not webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET environment variable is not set")
        return _webhook_ack(False, error="Webhook secret not configured")

    # Raw body is required for signature verification
    payload = await request.body()

    stripe_signature = request.headers.get("stripe-signature")
    if not stripe_signature:
        logger.error("Missing Stripe-Signature header")
        return _webhook_ack(False, error="Missing signature header")

    try:
        event = stripe.Webhook.construct_event(payload, stripe_signature, webhook_secret)
    except stripe.SignatureVerificationError as e:
        logger.error(f"Stripe webhook signature verification failed: {e}")
        return _webhook_ack(False, error="Invalid webhook signature")
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {e}")
        return _webhook_ack(False, error="Invalid payload format")

    result = await BillingService(db).process_webhook(event)
    if result.get("retryable"):
        return _webhook_ack(False, status_code=500, error="Failed to apply event", event_type=event["type"])
    return _webhook_ack(not result["is_error"], event_type=event["type"])


@billing_router.post("/checkout")
async def create_checkout_session(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create a Stripe Checkout session that upgrades the caller to the paid tier"""
    user_id = current_user["user_id"]
    result = await BillingService(db).create_checkout_session(user_id, current_user.get("phone_number"))
    if result["is_error"]:
        log_endpoint_event("/billing/checkout", user_id, "error", {"error": result["error"]})
        return error_response("checkout_failed", status=502, message=result["error"])
    log_endpoint_event("/billing/checkout", user_id, "success")
    return success_response({"url": result["data"]})
