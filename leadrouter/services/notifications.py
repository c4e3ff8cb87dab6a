"""
Notification sink - best-effort delivery of lead lifecycle messages.

The engine never waits on or fails because of a notification. Every send is
routed to a template-specific email; failures are logged and reported as False.
"""
import logging
from typing import Any, Awaitable, Callable, Optional

from leadrouter.services import email as email_service
from leadrouter.utils.logging import mask_email

logger = logging.getLogger(__name__)

NEW_LEAD = "new_lead"
PROPOSAL_RECEIVED = "proposal_received"
LEAD_DECLINED = "lead_declined"
LEAD_PAYMENT_FAILED = "lead_payment_failed"


def _templates() -> dict[str, Callable[..., Awaitable[dict]]]:
    return {
        NEW_LEAD: email_service.send_new_lead,
        PROPOSAL_RECEIVED: email_service.send_proposal_received,
        LEAD_DECLINED: email_service.send_lead_declined,
        LEAD_PAYMENT_FAILED: email_service.send_lead_payment_failed,
    }


class NotificationSink:
    """Email-backed notifier. `send` never raises."""

    async def send(self, to: Optional[str], template: str, data: dict[str, Any]) -> bool:
        if not to:
            logger.info("Skipping %s notification: recipient has no email", template)
            return False

        sender = _templates().get(template)
        if sender is None:
            logger.error("Unknown notification template: %s", template)
            return False

        try:
            result = await sender(to, **data)
        except Exception as e:
            logger.error(
                "Notification %s to %s failed: %s",
                template, mask_email(to), str(e), exc_info=True,
            )
            return False

        if result.get("error"):
            logger.warning(
                "Notification %s to %s not delivered: %s",
                template, mask_email(to), result["error"],
            )
            return False
        return True


_notifier: Optional[NotificationSink] = None


def get_notifier() -> NotificationSink:
    global _notifier
    if _notifier is None:
        _notifier = NotificationSink()
    return _notifier


def set_notifier(notifier: Optional[NotificationSink]) -> None:
    """Swap the process-wide notifier (tests install a capturing fake)."""
    global _notifier
    _notifier = notifier
