"""
Stripe webhook endpoint for lead acceptance payments.

No JWT auth - Stripe signature verification only.
"""
import logging

from fastapi import APIRouter, HTTPException, Request

from leadrouter.config import get_settings
from leadrouter.services.payment_webhooks import handle_payment_webhook

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(request: Request):
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    if not sig_header and get_settings().stripe_webhook_secret:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")

    result = await handle_payment_webhook(payload, sig_header)

    if result["error"] == "Invalid signature":
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    if result["error"]:
        logger.error("Webhook processing error: %s", result["error"])
        # 200 so Stripe does not retry a payload we cannot parse
        return {"received": True, "error": result["error"]}

    return {"received": True, "event_type": result["event_type"], "handled": result["handled"]}
