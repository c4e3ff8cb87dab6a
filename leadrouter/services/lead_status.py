"""
Provider-facing lead views.

Storage status (LeadStatus) plus the presence of a payment intent map onto the
status a provider sees in their inbox. The list filter is derived from the same
mapping so the two can never disagree.
"""
import enum
import logging
import math
import uuid
from typing import Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from leadrouter.models.lead import Lead, LeadStatus, PENDING_STATUSES

logger = logging.getLogger(__name__)


class DisplayStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    PAYMENT_FAILED = "PAYMENT_FAILED"


def to_display_status(status: str, payment_intent_id: Optional[str]) -> DisplayStatus:
    if status in PENDING_STATUSES:
        return DisplayStatus.PAYMENT_PENDING if payment_intent_id else DisplayStatus.PENDING
    if status == LeadStatus.ACCEPTED.value:
        return DisplayStatus.ACCEPTED
    if status == LeadStatus.REJECTED.value:
        return DisplayStatus.REJECTED
    if status == LeadStatus.CANCELLED.value:
        return DisplayStatus.PAYMENT_FAILED
    logger.warning("Unknown lead status %r, showing as pending", status)
    return DisplayStatus.PENDING


def display_status_filter(display_status: DisplayStatus):
    """SQL criterion selecting leads that display as `display_status`."""
    if display_status == DisplayStatus.PENDING:
        return and_(Lead.status.in_(PENDING_STATUSES), Lead.stripe_payment_intent_id.is_(None))
    if display_status == DisplayStatus.PAYMENT_PENDING:
        return and_(Lead.status.in_(PENDING_STATUSES), Lead.stripe_payment_intent_id.is_not(None))
    if display_status == DisplayStatus.ACCEPTED:
        return Lead.status == LeadStatus.ACCEPTED.value
    if display_status == DisplayStatus.REJECTED:
        return Lead.status == LeadStatus.REJECTED.value
    return Lead.status == LeadStatus.CANCELLED.value


def mask_name(name: Optional[str]) -> Optional[str]:
    """'Jane Doe' -> 'Jane D***'. Single names pass through."""
    if not name:
        return name
    parts = name.split()
    if len(parts) < 2:
        return parts[0]
    return f"{parts[0]} {parts[-1][0]}***"


def mask_email(email: Optional[str]) -> Optional[str]:
    """'jane@example.com' -> 'j***@example.com'."""
    if not email or "@" not in email:
        return None if not email else "***"
    local, domain = email.split("@", 1)
    return f"{local[:1]}***@{domain}"


def mask_phone(phone: Optional[str]) -> Optional[str]:
    if not phone:
        return phone
    digits = [c for c in phone if c.isdigit()]
    if len(digits) < 4:
        return "***"
    return "***-***-" + "".join(digits[-4:])


def serialize_lead(lead: Lead) -> dict:
    """Lead as shown to its provider. Contact details stay masked until accepted."""
    meta = lead.extra_data or {}
    accepted = lead.status == LeadStatus.ACCEPTED.value
    return {
        "id": str(lead.id),
        "service_request_id": str(lead.service_request_id) if lead.service_request_id else None,
        "status": lead.status,
        "display_status": to_display_status(lead.status, lead.stripe_payment_intent_id).value,
        "category_id": lead.category_id,
        "lead_cost": lead.lead_cost,
        "project_title": meta.get("projectTitle"),
        "project_description": meta.get("projectDescription"),
        "zip_code": meta.get("zipCode"),
        "preferred_date": meta.get("preferredDate"),
        "preferred_time": meta.get("preferredTime"),
        "attachments": meta.get("attachments") or [],
        "is_fallback_lead": bool(meta.get("isFallbackLead")),
        "customer_name": lead.customer_name if accepted else mask_name(lead.customer_name),
        "customer_email": lead.customer_email if accepted else mask_email(lead.customer_email),
        "customer_phone": lead.customer_phone if accepted else mask_phone(lead.customer_phone),
        "rejection_reason": lead.rejection_reason,
        "created_at": lead.created_at.isoformat() if lead.created_at else None,
        "accepted_at": lead.accepted_at.isoformat() if lead.accepted_at else None,
    }


async def list_provider_leads(
    db: AsyncSession,
    provider_user_id: uuid.UUID,
    display_status: Optional[DisplayStatus] = None,
    page: int = 1,
    page_size: int = 20,
) -> dict:
    """Paginated inbox of a provider's leads, newest first."""
    page = max(1, page)
    page_size = min(max(1, page_size), 100)

    conditions = [Lead.provider_id == provider_user_id]
    if display_status is not None:
        conditions.append(display_status_filter(display_status))

    total = (await db.execute(
        select(func.count()).select_from(Lead).where(*conditions)
    )).scalar() or 0

    result = await db.execute(
        select(Lead)
        .where(*conditions)
        .order_by(Lead.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    leads = result.scalars().all()

    return {
        "leads": [serialize_lead(lead) for lead in leads],
        "total": total,
        "page": page,
        "pages": math.ceil(total / page_size) if total else 0,
    }
