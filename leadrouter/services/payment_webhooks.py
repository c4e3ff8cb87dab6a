"""
Stripe webhook processing for lead acceptance payments.

Completes acceptances whose charge finished after the accept call returned
(3-D Secure, processing), and resolves failed or abandoned payments.
Only PaymentIntents tagged with metadata.type == "lead_acceptance" are handled.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadrouter.config import get_settings
from leadrouter.database import async_session_factory
from leadrouter.models.lead import Lead, LeadStatus
from leadrouter.models.lead_event import LeadEvent
from leadrouter.models.user import User
from leadrouter.services import lead_events
from leadrouter.services.lead_engine import (
    LEAD_ACCEPTANCE,
    finalize_acceptance,
    publish_proposal_received,
)
from leadrouter.services.payments import _get_stripe, _run_sync
from leadrouter.utils.locks import lead_lock

logger = logging.getLogger(__name__)


async def handle_payment_webhook(payload: bytes, sig_header: Optional[str]) -> dict:
    """
    Process a Stripe webhook event.
    Verifies signature, then dispatches to the appropriate handler.

    Returns: {"event_type": str, "handled": bool, "error": str|None}
    """
    settings = get_settings()

    if not settings.stripe_webhook_secret and settings.app_env == "development":
        logger.warning("Stripe webhook secret not set, skipping signature check (development)")
        try:
            event = json.loads(payload)
        except (ValueError, TypeError) as e:
            return {"event_type": None, "handled": False, "error": f"Invalid payload: {e}"}
    else:
        try:
            stripe = _get_stripe()
        except ValueError as e:
            logger.error("Stripe not configured: %s", str(e))
            return {"event_type": None, "handled": False, "error": str(e)}
        try:
            await _run_sync(
                stripe.Webhook.construct_event,
                payload, sig_header, settings.stripe_webhook_secret,
            )
        except stripe.SignatureVerificationError:
            logger.warning("Stripe webhook signature verification failed")
            return {"event_type": None, "handled": False, "error": "Invalid signature"}
        except Exception as e:
            logger.error("Stripe webhook parsing failed: %s", str(e))
            return {"event_type": None, "handled": False, "error": str(e)}
        # Signature is valid; work from the raw JSON as plain dicts
        event = json.loads(payload)

    event_type = event.get("type")
    intent = (event.get("data") or {}).get("object") or {}
    metadata = intent.get("metadata") or {}

    logger.info("Stripe webhook received: %s", event_type, extra={"event_type": event_type})

    if metadata.get("type") != LEAD_ACCEPTANCE:
        return {"event_type": event_type, "handled": False, "error": None}

    if event_type == "payment_intent.succeeded":
        await _handle_succeeded(intent)
    elif event_type == "payment_intent.payment_failed":
        await _handle_failed(intent)
    elif event_type == "payment_intent.canceled":
        await _handle_canceled(intent)
    else:
        logger.info("Unhandled Stripe event type: %s", event_type)
        return {"event_type": event_type, "handled": False, "error": None}

    return {"event_type": event_type, "handled": True, "error": None}


async def _find_lead(db: AsyncSession, intent: dict) -> Optional[Lead]:
    """Lead from intent metadata, else by stored intent id."""
    lead_id = (intent.get("metadata") or {}).get("leadId")
    if lead_id:
        try:
            lead = await db.get(Lead, uuid.UUID(lead_id), populate_existing=True)
        except ValueError:
            lead = None
        if lead is not None:
            return lead

    result = await db.execute(
        select(Lead).where(Lead.stripe_payment_intent_id == intent.get("id"))
    )
    return result.scalar_one_or_none()


async def _handle_succeeded(intent: dict) -> None:
    intent_id = intent.get("id")
    metadata = intent.get("metadata") or {}

    async with async_session_factory() as db:
        lead = await _find_lead(db, intent)
        if lead is None:
            logger.warning("Payment %s succeeded for unknown lead %s", intent_id, metadata.get("leadId"))
            return

        async with lead_lock(lead.id):
            await db.refresh(lead)
            if lead.status == LeadStatus.ACCEPTED.value:
                logger.info("Lead %s already finalized, webhook is a replay", str(lead.id)[:8])
                return

            description = None
            price = None
            if not lead.pending_proposal:
                description = metadata.get("proposalDescription")
                price = metadata.get("proposalPrice")
            if lead.lead_cost is None and intent.get("amount") is not None:
                lead.lead_cost = int(intent["amount"])

            proposal = await finalize_acceptance(db, lead, intent_id, description, price)
            await db.commit()

        if proposal is not None:
            await publish_proposal_received(db, lead, proposal)


async def _handle_failed(intent: dict) -> None:
    """Lead stays open so the provider can retry with another payment method."""
    intent_id = intent.get("id")
    error = (intent.get("last_payment_error") or {}).get("message")

    async with async_session_factory() as db:
        lead = await _find_lead(db, intent)
        if lead is None:
            logger.warning("Payment %s failed for unknown lead", intent_id)
            return

        async with lead_lock(lead.id):
            await db.refresh(lead)
            if not lead.is_pending or lead.stripe_payment_intent_id != intent_id:
                logger.info(
                    "Ignoring payment failure %s for lead %s (status=%s)",
                    intent_id, str(lead.id)[:8], lead.status,
                )
                return

            lead.stripe_payment_intent_id = None
            lead.drop_metadata("pendingProposal")
            db.add(LeadEvent(
                lead_id=lead.id,
                service_request_id=lead.service_request_id,
                action="lead_payment_failed",
                message=error or "Acceptance payment failed",
                data={"payment_intent_id": intent_id},
            ))
            await db.commit()

        logger.warning(
            "Lead %s acceptance payment failed: %s", str(lead.id)[:8], error,
            extra={"lead_id": str(lead.id), "payment_intent_id": intent_id},
        )
        provider = await db.get(User, lead.provider_id)
        lead_events.publish(lead_events.LeadPaymentFailed(
            lead_id=str(lead.id),
            provider_email=provider.email if provider else None,
            provider_name=provider.display_name if provider else "there",
            project_title=(lead.extra_data or {}).get("projectTitle") or "your lead",
        ))


async def _handle_canceled(intent: dict) -> None:
    intent_id = intent.get("id")

    async with async_session_factory() as db:
        lead = await _find_lead(db, intent)
        if lead is None:
            logger.warning("Payment %s canceled for unknown lead", intent_id)
            return

        async with lead_lock(lead.id):
            await db.refresh(lead)
            if not lead.is_pending or lead.stripe_payment_intent_id != intent_id:
                logger.info(
                    "Ignoring cancellation %s for lead %s (status=%s)",
                    intent_id, str(lead.id)[:8], lead.status,
                )
                return

            lead.status = LeadStatus.CANCELLED.value
            lead.drop_metadata("pendingProposal")
            db.add(LeadEvent(
                lead_id=lead.id,
                service_request_id=lead.service_request_id,
                action="lead_cancelled",
                message="Acceptance payment was canceled",
                data={
                    "payment_intent_id": intent_id,
                    "cancellation_reason": intent.get("cancellation_reason"),
                    "cancelled_at": datetime.now(timezone.utc).isoformat(),
                },
            ))
            await db.commit()

        logger.info("Lead %s cancelled after payment %s was canceled", str(lead.id)[:8], intent_id)
