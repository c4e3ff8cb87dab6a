"""
Lead routing error taxonomy.

Every engine failure the caller can act on is one of these. The API layer
maps them to HTTP responses via `code` and `http_status`; `extra` carries
the fields a client needs (current vs. max lead count, gateway message).
"""
from typing import Any, Optional


class LeadRoutingError(Exception):
    """Base class for engine errors surfaced to callers."""

    code = "lead_routing_error"
    http_status = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.extra}


class NotFound(LeadRoutingError):
    code = "not_found"
    http_status = 404


class Unauthorized(LeadRoutingError):
    code = "unauthorized"
    http_status = 403


class InvalidState(LeadRoutingError):
    code = "invalid_state"
    http_status = 409


class ValidationError(LeadRoutingError):
    code = "validation_error"
    http_status = 422


class AlreadyAccepted(LeadRoutingError):
    code = "already_accepted"
    http_status = 409


class QuotaExceeded(LeadRoutingError):
    code = "quota_exceeded"
    http_status = 403

    def __init__(self, current_count: int, max_leads: int):
        super().__init__(
            f"Monthly lead limit reached ({current_count}/{max_leads}). "
            "Upgrade your plan to accept more leads.",
            current_count=current_count,
            max_leads=max_leads,
        )
        self.current_count = current_count
        self.max_leads = max_leads


class PaymentFailed(LeadRoutingError):
    """Charge declined or errored. The gateway message is passed through as-is."""

    code = "payment_failed"
    http_status = 402

    def __init__(self, message: str, payment_intent_id: Optional[str] = None):
        super().__init__(message, payment_intent_id=payment_intent_id)
        self.payment_intent_id = payment_intent_id


class InvalidAmount(ValueError):
    """Raised by the payout calculator for non-positive totals."""

    code = "invalid_amount"
    http_status = 422
