"""
Lead domain events - decouples the lifecycle engine from notification delivery.

The engine publishes an event after its transaction commits. Each event is
handled on a background task so a slow or failing mail provider never delays
or breaks an accept/reject call.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Union

from leadrouter.services import notifications

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProposalReceived:
    lead_id: str
    customer_email: Optional[str]
    customer_name: str
    provider_name: str
    project_title: str
    price: str


@dataclass(frozen=True)
class LeadRejected:
    lead_id: str
    customer_email: Optional[str]
    customer_name: str
    provider_name: str
    project_title: str
    reason: str


@dataclass(frozen=True)
class LeadAssigned:
    lead_id: str
    provider_email: Optional[str]
    provider_name: str
    project_title: str
    zip_code: Optional[str] = None
    is_fallback: bool = False


@dataclass(frozen=True)
class LeadPaymentFailed:
    lead_id: str
    provider_email: Optional[str]
    provider_name: str
    project_title: str


LeadEvent = Union[ProposalReceived, LeadRejected, LeadAssigned, LeadPaymentFailed]

# Strong references so pending tasks are not garbage collected mid-flight
_pending: set[asyncio.Task] = set()


async def handle(event: LeadEvent) -> bool:
    """Deliver one event through the notifier. Returns delivery success."""
    notifier = notifications.get_notifier()

    if isinstance(event, ProposalReceived):
        return await notifier.send(event.customer_email, notifications.PROPOSAL_RECEIVED, {
            "customer_name": event.customer_name,
            "provider_name": event.provider_name,
            "project_title": event.project_title,
            "price": event.price,
        })
    if isinstance(event, LeadRejected):
        return await notifier.send(event.customer_email, notifications.LEAD_DECLINED, {
            "customer_name": event.customer_name,
            "provider_name": event.provider_name,
            "project_title": event.project_title,
            "reason": event.reason,
        })
    if isinstance(event, LeadAssigned):
        return await notifier.send(event.provider_email, notifications.NEW_LEAD, {
            "provider_name": event.provider_name,
            "project_title": event.project_title,
            "zip_code": event.zip_code,
            "is_fallback": event.is_fallback,
        })
    if isinstance(event, LeadPaymentFailed):
        return await notifier.send(event.provider_email, notifications.LEAD_PAYMENT_FAILED, {
            "provider_name": event.provider_name,
            "project_title": event.project_title,
        })

    logger.error("Unhandled lead event type: %s", type(event).__name__)
    return False


async def _run(event: LeadEvent) -> None:
    try:
        await handle(event)
    except Exception as e:
        logger.error(
            "Lead event %s for lead %s failed: %s",
            type(event).__name__, event.lead_id[:8], str(e), exc_info=True,
        )


def publish(event: LeadEvent) -> Optional[asyncio.Task]:
    """Schedule delivery of an event. Must be called from a running loop."""
    try:
        task = asyncio.get_running_loop().create_task(_run(event))
    except RuntimeError:
        logger.warning("No running loop, dropping %s for lead %s", type(event).__name__, event.lead_id[:8])
        return None
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def drain() -> None:
    """Wait for all in-flight event deliveries (shutdown and tests)."""
    if _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)
