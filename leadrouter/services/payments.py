"""
Charge gateway - the opaque "charge the provider" capability used on lead acceptance.

The engine only depends on the ChargeGateway protocol. StripeChargeGateway is the
production adapter: it creates and confirms a PaymentIntent in one call. All Stripe
calls are synchronous and run via run_in_executor to avoid blocking the event loop.
Charges are never retried automatically - the provider sees the gateway's message
and decides whether to try again.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from leadrouter.config import get_settings
from leadrouter.errors import PaymentFailed

logger = logging.getLogger(__name__)

SUCCEEDED = "succeeded"
REQUIRES_ACTION = "requires_action"
PROCESSING = "processing"
FAILED = "failed"
CANCELED = "canceled"

# Stripe PaymentIntent statuses -> charge outcome
_STRIPE_STATUS_MAP = {
    "succeeded": SUCCEEDED,
    "requires_action": REQUIRES_ACTION,
    "requires_confirmation": REQUIRES_ACTION,
    "requires_capture": PROCESSING,
    "processing": PROCESSING,
    "requires_payment_method": FAILED,
    "canceled": CANCELED,
}


@dataclass(frozen=True)
class ChargeResult:
    status: str
    id: str
    client_secret: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    @property
    def awaiting_customer(self) -> bool:
        return self.status in (REQUIRES_ACTION, PROCESSING)


class ChargeGateway(Protocol):
    async def create_and_confirm(
        self,
        amount_cents: int,
        currency: str,
        payment_method: str,
        metadata: dict,
    ) -> ChargeResult: ...

    async def retrieve(self, charge_id: str) -> ChargeResult: ...


def _get_stripe():
    """Get configured Stripe module with per-request API key. Raises if not configured."""
    import stripe
    settings = get_settings()
    if not settings.stripe_secret_key:
        raise ValueError("Stripe secret key not configured")
    stripe.api_key = settings.stripe_secret_key
    stripe.max_network_retries = 0
    return stripe


async def _run_sync(func, *args, **kwargs):
    """Run a synchronous Stripe SDK call in the default thread pool executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: func(*args, **kwargs))


def _to_result(intent) -> ChargeResult:
    status = _STRIPE_STATUS_MAP.get(intent.status, FAILED)
    error = None
    last_error = getattr(intent, "last_payment_error", None)
    if last_error:
        error = getattr(last_error, "message", None)
    return ChargeResult(
        status=status,
        id=intent.id,
        client_secret=getattr(intent, "client_secret", None),
        error=error,
    )


class StripeChargeGateway:
    """PaymentIntent-backed gateway. Metadata values are stringified for Stripe."""

    async def create_and_confirm(
        self,
        amount_cents: int,
        currency: str,
        payment_method: str,
        metadata: dict,
    ) -> ChargeResult:
        stripe = _get_stripe()
        try:
            intent = await _run_sync(
                stripe.PaymentIntent.create,
                amount=amount_cents,
                currency=currency,
                payment_method=payment_method,
                confirm=True,
                off_session=False,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                metadata={k: str(v) for k, v in metadata.items() if v is not None},
            )
        except stripe.StripeError as e:
            message = getattr(e, "user_message", None) or str(e)
            logger.warning(
                "Stripe charge failed for lead %s: %s",
                str(metadata.get("leadId", ""))[:8], message,
            )
            intent_id = None
            error_obj = getattr(e, "error", None)
            if error_obj is not None and getattr(error_obj, "payment_intent", None):
                intent_id = error_obj.payment_intent.get("id")
            raise PaymentFailed(message, payment_intent_id=intent_id) from e

        result = _to_result(intent)
        logger.info(
            "Stripe payment intent %s for lead %s: %s",
            result.id, str(metadata.get("leadId", ""))[:8], result.status,
        )
        return result

    async def retrieve(self, charge_id: str) -> ChargeResult:
        stripe = _get_stripe()
        try:
            intent = await _run_sync(stripe.PaymentIntent.retrieve, charge_id)
        except stripe.StripeError as e:
            message = getattr(e, "user_message", None) or str(e)
            raise PaymentFailed(message, payment_intent_id=charge_id) from e
        return _to_result(intent)


_gateway: Optional[ChargeGateway] = None


def get_charge_gateway() -> ChargeGateway:
    global _gateway
    if _gateway is None:
        _gateway = StripeChargeGateway()
    return _gateway
