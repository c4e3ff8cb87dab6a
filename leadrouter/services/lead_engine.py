"""
Lead lifecycle engine - routing, acceptance and rejection of leads.

State machine per lead:
    submitted/routed --accept, charge succeeded--> accepted
    submitted/routed --accept, charge needs action/processing--> unchanged (intent stored)
    submitted/routed --reject--> rejected, then next alternative provider
    submitted/routed --payment intent canceled--> cancelled (see payment_webhooks)

accept and reject run under a per-lead Redis lock. The lead row's version
column catches anything the lock misses (Redis down, lock expired).
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from leadrouter.config import get_settings
from leadrouter.errors import (
    AlreadyAccepted,
    InvalidState,
    NotFound,
    PaymentFailed,
    QuotaExceeded,
    Unauthorized,
    ValidationError,
)
from leadrouter.models.alternative_provider import AlternativeProviderSelection
from leadrouter.models.lead import Lead, LeadStatus, RejectionReason
from leadrouter.models.lead_event import LeadEvent
from leadrouter.models.proposal import Proposal
from leadrouter.models.service_request import ServiceRequest
from leadrouter.models.user import Business, ProviderProfile, User
from leadrouter.services import lead_events
from leadrouter.services.lead_status import to_display_status
from leadrouter.services.payments import (
    CANCELED,
    FAILED,
    ChargeGateway,
    ChargeResult,
    get_charge_gateway,
)
from leadrouter.services.pricing import LeadPricing, get_lead_pricing
from leadrouter.services.reassignment import assign_next_alternative, has_live_lead, notify_assigned
from leadrouter.services.subscriptions import (
    get_monthly_accepted_leads_count,
    get_subscription_benefits,
)
from leadrouter.utils.locks import lead_lock

logger = logging.getLogger(__name__)

LEAD_ACCEPTANCE = "lead_acceptance"
MAX_METADATA_DESCRIPTION = 200

REJECTION_LABELS = {
    RejectionReason.TOO_FAR.value: "The job location is too far away",
    RejectionReason.TOO_EXPENSIVE.value: "The lead cost is too high for this job",
    RejectionReason.NOT_RELEVANT.value: "The job is outside the provider's services",
}


@dataclass
class AcceptResult:
    status: str
    lead_id: str
    payment_intent_id: Optional[str] = None
    client_secret: Optional[str] = None
    lead_cost: Optional[int] = None
    contact_details: Optional[dict[str, Any]] = None
    proposal_id: Optional[str] = None
    display_status: Optional[str] = None


@dataclass
class RejectResult:
    status: str
    lead_id: str
    reassigned_lead_id: Optional[str] = None


@dataclass
class RoutingResult:
    service_request_id: str
    lead_ids: list[str] = field(default_factory=list)
    primary_lead_id: Optional[str] = None


async def _commit(db: AsyncSession) -> None:
    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise InvalidState("Lead was modified concurrently, reload and try again")


async def _load_owned_lead(db: AsyncSession, lead_id: uuid.UUID, provider_user_id: uuid.UUID) -> Lead:
    lead = await db.get(Lead, lead_id, populate_existing=True)
    if lead is None:
        raise NotFound("Lead not found")
    if lead.provider_id != provider_user_id:
        raise Unauthorized("This lead belongs to another provider")
    return lead


async def _provider_profile(db: AsyncSession, user_id: uuid.UUID) -> Optional[ProviderProfile]:
    result = await db.execute(select(ProviderProfile).where(ProviderProfile.user_id == user_id))
    return result.scalar_one_or_none()


def _contact_details(lead: Lead) -> dict[str, Optional[str]]:
    return {
        "name": lead.customer_name,
        "email": lead.customer_email,
        "phone": lead.customer_phone,
    }


def _parse_price(price) -> Decimal:
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Price must be a number")
    if not value.is_finite() or value <= 0:
        raise ValidationError("Price must be greater than 0")
    return value.quantize(Decimal("0.01"))


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

async def route_service_request(
    db: AsyncSession,
    service_request: ServiceRequest,
    primary_business_id: Optional[uuid.UUID] = None,
    fallback_business_ids: Optional[list[uuid.UUID]] = None,
    alternative_provider_ids: Optional[list[uuid.UUID]] = None,
    now: Optional[datetime] = None,
) -> RoutingResult:
    """
    Create the initial leads for a new service request.

    With a primary business the request gets one priority lead; fallback
    businesses are stored on it for the sweep and the ranked alternatives are
    recorded for rejections. Without one, every selected business gets a lead.
    """
    now = now or datetime.now(timezone.utc)
    settings = get_settings()
    fallback_business_ids = [b for b in (fallback_business_ids or []) if b != primary_business_id]
    routing = RoutingResult(service_request_id=str(service_request.id))
    created: list[Lead] = []

    if primary_business_id is not None:
        business = await db.get(Business, primary_business_id)
        if business is None or not business.is_active or business.owner_id is None:
            raise ValidationError("Primary business is not available for leads")
        owner = await db.get(User, business.owner_id)
        if owner is None:
            raise ValidationError("Primary business has no owner")

        expires_at = now + timedelta(hours=settings.priority_window_hours)
        lead = Lead(
            service_request_id=service_request.id,
            customer_id=service_request.customer_id,
            provider_id=owner.id,
            business_id=business.id,
            category_id=service_request.category_id,
            status=LeadStatus.SUBMITTED.value,
            extra_data={
                **service_request.snapshot(),
                "priorityExpiresAt": expires_at.isoformat(),
                "fallbackBusinessIds": [str(b) for b in fallback_business_ids],
            },
        )
        db.add(lead)
        created.append(lead)

        for position, provider_profile_id in enumerate(alternative_provider_ids or [], start=1):
            db.add(AlternativeProviderSelection(
                service_request_id=service_request.id,
                provider_id=provider_profile_id,
                position=position,
            ))

        profile = await _provider_profile(db, owner.id)
        if profile is not None:
            service_request.primary_provider_id = profile.id
        service_request.status = "LEAD_ASSIGNED"
    else:
        selected = list(service_request.selected_business_ids or [])
        seen_owners: set[uuid.UUID] = set()
        for raw_id in selected:
            try:
                business_id = raw_id if isinstance(raw_id, uuid.UUID) else uuid.UUID(str(raw_id))
            except ValueError:
                logger.warning("Ignoring malformed business id %r on request %s", raw_id, str(service_request.id)[:8])
                continue
            business = await db.get(Business, business_id)
            if business is None or not business.is_active or business.owner_id is None:
                continue
            if business.owner_id in seen_owners:
                continue
            seen_owners.add(business.owner_id)
            if await has_live_lead(db, service_request.id, business.owner_id):
                continue
            owner = await db.get(User, business.owner_id)
            if owner is None:
                continue
            lead = Lead(
                service_request_id=service_request.id,
                customer_id=service_request.customer_id,
                provider_id=owner.id,
                business_id=business.id,
                category_id=service_request.category_id,
                status=LeadStatus.SUBMITTED.value,
                extra_data=service_request.snapshot(),
            )
            db.add(lead)
            created.append(lead)

    await db.flush()
    for lead in created:
        db.add(LeadEvent(
            lead_id=lead.id,
            service_request_id=service_request.id,
            action="lead_routed",
            message="Lead created for provider",
            data={"business_id": str(lead.business_id), "priority": primary_business_id is not None},
        ))
    await db.commit()

    routing.lead_ids = [str(lead.id) for lead in created]
    if primary_business_id is not None and created:
        routing.primary_lead_id = str(created[0].id)

    logger.info(
        "Request %s routed: %d leads (priority=%s)",
        str(service_request.id)[:8], len(created), primary_business_id is not None,
    )
    await notify_assigned(db, created)
    return routing


# ---------------------------------------------------------------------------
# Acceptance
# ---------------------------------------------------------------------------

async def finalize_acceptance(
    db: AsyncSession,
    lead: Lead,
    charge_id: str,
    description: Optional[str] = None,
    price=None,
    now: Optional[datetime] = None,
) -> Optional[Proposal]:
    """
    Mark a paid lead accepted and create the provider's proposal.

    Shared by the immediate-success path and the payment webhook. A lead that
    is already accepted is left alone and None is returned. Flushes only.
    """
    now = now or datetime.now(timezone.utc)
    lead_short = str(lead.id)[:8]

    if lead.status == LeadStatus.ACCEPTED.value:
        logger.info("Lead %s already accepted, finalize skipped", lead_short)
        return None
    if not lead.is_pending:
        logger.error(
            "Payment %s succeeded for lead %s in status %s, needs manual refund review",
            charge_id, lead_short, lead.status,
        )
        return None

    pending = lead.pending_proposal or {}
    description = description or pending.get("description") or ""
    price = price if price is not None else pending.get("price")

    if lead.customer_id is not None:
        customer = await db.get(User, lead.customer_id)
        if customer is not None:
            lead.customer_name = customer.display_name
            lead.customer_email = customer.email
            lead.customer_phone = customer.phone

    lead.status = LeadStatus.ACCEPTED.value
    lead.accepted_at = now
    lead.stripe_payment_intent_id = charge_id
    lead.drop_metadata("pendingProposal")

    proposal = None
    profile = await _provider_profile(db, lead.provider_id)
    service_request = None
    if lead.service_request_id is not None:
        service_request = await db.get(ServiceRequest, lead.service_request_id)

    if profile is None or service_request is None:
        logger.error(
            "Lead %s accepted without proposal: profile=%s request=%s",
            lead_short, profile is not None, service_request is not None,
        )
    elif price is None:
        logger.error("Lead %s accepted without proposal: no price recorded", lead_short)
    else:
        proposal = Proposal(
            service_request_id=service_request.id,
            provider_id=profile.id,
            lead_id=lead.id,
            details=description,
            price=Decimal(str(price)).quantize(Decimal("0.01")),
            status="SENT",
            payment_status="pending",
        )
        db.add(proposal)
        service_request.primary_provider_id = profile.id
        service_request.status = "LEAD_ASSIGNED"

    await db.flush()
    db.add(LeadEvent(
        lead_id=lead.id,
        service_request_id=lead.service_request_id,
        action="lead_accepted",
        message="Lead fee paid, contact details released",
        data={
            "payment_intent_id": charge_id,
            "lead_cost": lead.lead_cost,
            "proposal_id": str(proposal.id) if proposal else None,
        },
    ))
    logger.info(
        "Lead %s accepted (intent %s)", lead_short, charge_id,
        extra={"lead_id": str(lead.id), "payment_intent_id": charge_id},
    )
    return proposal


async def publish_proposal_received(db: AsyncSession, lead: Lead, proposal: Proposal) -> None:
    provider = await db.get(User, lead.provider_id)
    meta = lead.extra_data or {}
    lead_events.publish(lead_events.ProposalReceived(
        lead_id=str(lead.id),
        customer_email=lead.customer_email,
        customer_name=lead.customer_name or "there",
        provider_name=provider.display_name if provider else "A provider",
        project_title=meta.get("projectTitle") or "your service request",
        price=f"{proposal.price:.2f}",
    ))


async def _check_existing_intent(
    db: AsyncSession,
    lead: Lead,
    gateway: ChargeGateway,
) -> Optional[AcceptResult]:
    """
    Resolve a previous acceptance attempt on this lead.

    Returns the stored continuation when the customer still has to act,
    raises AlreadyAccepted when it went through, and clears the intent
    when it failed so a fresh charge can be made.
    """
    existing: ChargeResult = await gateway.retrieve(lead.stripe_payment_intent_id)

    if existing.succeeded:
        proposal = await finalize_acceptance(db, lead, existing.id)
        await _commit(db)
        if proposal is not None:
            await publish_proposal_received(db, lead, proposal)
        raise AlreadyAccepted("Lead was already accepted", payment_intent_id=existing.id)

    if existing.awaiting_customer:
        return AcceptResult(
            status=existing.status,
            lead_id=str(lead.id),
            payment_intent_id=existing.id,
            client_secret=existing.client_secret,
            lead_cost=lead.lead_cost,
            display_status=to_display_status(lead.status, lead.stripe_payment_intent_id).value,
        )

    if existing.status in (FAILED, CANCELED):
        logger.info(
            "Clearing %s payment intent %s on lead %s", existing.status, existing.id, str(lead.id)[:8],
        )
        lead.stripe_payment_intent_id = None
        lead.drop_metadata("pendingProposal")
        await _commit(db)
    return None


async def accept_lead(
    db: AsyncSession,
    lead_id: uuid.UUID,
    provider_user_id: uuid.UUID,
    description: str,
    price,
    payment_method: str,
    gateway: Optional[ChargeGateway] = None,
    pricing: Optional[LeadPricing] = None,
    now: Optional[datetime] = None,
) -> AcceptResult:
    """
    Charge the provider the lead fee and, once paid, accept the lead.

    Raises NotFound, Unauthorized, InvalidState, AlreadyAccepted,
    ValidationError, QuotaExceeded or PaymentFailed.
    """
    gateway = gateway or get_charge_gateway()
    pricing = pricing or get_lead_pricing()
    now = now or datetime.now(timezone.utc)

    async with lead_lock(lead_id):
        lead = await _load_owned_lead(db, lead_id, provider_user_id)
        if lead.status == LeadStatus.ACCEPTED.value:
            raise AlreadyAccepted("Lead was already accepted", payment_intent_id=lead.stripe_payment_intent_id)
        if not lead.is_pending:
            raise InvalidState(f"Lead cannot be accepted in status {lead.status}")

        if lead.stripe_payment_intent_id:
            continuation = await _check_existing_intent(db, lead, gateway)
            if continuation is not None:
                return continuation

        if not description or not description.strip():
            raise ValidationError("Proposal description is required")
        price_value = _parse_price(price)
        if not payment_method or not str(payment_method).strip():
            raise ValidationError("Payment method is required")

        benefits = await get_subscription_benefits(db, provider_user_id, now=now)
        if benefits.max_leads_per_month is not None:
            current = await get_monthly_accepted_leads_count(db, provider_user_id, now=now)
            if current >= benefits.max_leads_per_month:
                raise QuotaExceeded(current_count=current, max_leads=benefits.max_leads_per_month)

        cost = pricing.lead_cost(lead.category_id, benefits)
        description = description.strip()

        charge = await gateway.create_and_confirm(
            cost,
            get_settings().stripe_currency,
            payment_method,
            {
                "leadId": str(lead.id),
                "serviceRequestId": str(lead.service_request_id) if lead.service_request_id else None,
                "providerId": str(provider_user_id),
                "type": LEAD_ACCEPTANCE,
                "proposalDescription": description[:MAX_METADATA_DESCRIPTION],
                "proposalPrice": str(price_value),
            },
        )

        if charge.succeeded:
            lead.lead_cost = cost
            proposal = await finalize_acceptance(db, lead, charge.id, description, price_value, now=now)
            await _commit(db)
            if proposal is not None:
                await publish_proposal_received(db, lead, proposal)
            return AcceptResult(
                status=LeadStatus.ACCEPTED.value,
                lead_id=str(lead.id),
                payment_intent_id=charge.id,
                lead_cost=cost,
                contact_details=_contact_details(lead),
                proposal_id=str(proposal.id) if proposal else None,
                display_status=to_display_status(lead.status, charge.id).value,
            )

        if charge.awaiting_customer:
            lead.stripe_payment_intent_id = charge.id
            lead.lead_cost = cost
            lead.merge_metadata(pendingProposal={"description": description, "price": str(price_value)})
            db.add(LeadEvent(
                lead_id=lead.id,
                service_request_id=lead.service_request_id,
                action="lead_payment_pending",
                message=f"Acceptance payment {charge.status}",
                data={"payment_intent_id": charge.id, "lead_cost": cost},
            ))
            await _commit(db)
            logger.info(
                "Lead %s acceptance awaiting customer (%s)", str(lead.id)[:8], charge.status,
                extra={"lead_id": str(lead.id), "payment_intent_id": charge.id},
            )
            return AcceptResult(
                status=charge.status,
                lead_id=str(lead.id),
                payment_intent_id=charge.id,
                client_secret=charge.client_secret,
                lead_cost=cost,
                display_status=to_display_status(lead.status, charge.id).value,
            )

        logger.warning(
            "Lead %s acceptance charge %s: %s", str(lead.id)[:8], charge.status, charge.error,
        )
        raise PaymentFailed(charge.error or "Payment failed", payment_intent_id=charge.id)


# ---------------------------------------------------------------------------
# Rejection
# ---------------------------------------------------------------------------

async def reject_lead(
    db: AsyncSession,
    lead_id: uuid.UUID,
    provider_user_id: uuid.UUID,
    reason: str,
    reason_other: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RejectResult:
    """
    Decline a lead and hand the request to the next alternative provider.

    The rejection is committed before reassignment is attempted, so a
    reassignment failure is logged and never undoes it.
    """
    now = now or datetime.now(timezone.utc)

    async with lead_lock(lead_id):
        lead = await _load_owned_lead(db, lead_id, provider_user_id)
        if not lead.is_pending:
            raise InvalidState(f"Lead cannot be rejected in status {lead.status}")

        try:
            reason_enum = RejectionReason(reason)
        except ValueError:
            raise ValidationError(
                "Invalid rejection reason",
                allowed=[r.value for r in RejectionReason],
            )
        other_text = (reason_other or "").strip()
        if reason_enum == RejectionReason.OTHER and not other_text:
            raise ValidationError("Please describe the reason for rejecting this lead")

        lead.status = LeadStatus.REJECTED.value
        lead.rejection_reason = reason_enum.value
        lead.rejection_reason_other = other_text if reason_enum == RejectionReason.OTHER else None
        lead.rejected_at = now
        db.add(LeadEvent(
            lead_id=lead.id,
            service_request_id=lead.service_request_id,
            action="lead_rejected",
            message=f"Rejected: {reason_enum.value}",
            data={"reason": reason_enum.value, "reason_other": lead.rejection_reason_other},
        ))
        await _commit(db)

        lead_id_str = str(lead.id)
        service_request_id = lead.service_request_id
        logger.info(
            "Lead %s rejected (%s)", lead_id_str[:8], reason_enum.value,
            extra={"lead_id": lead_id_str, "provider_id": str(provider_user_id)},
        )

        customer = await db.get(User, lead.customer_id) if lead.customer_id else None
        provider = await db.get(User, lead.provider_id)
        lead_events.publish(lead_events.LeadRejected(
            lead_id=lead_id_str,
            customer_email=customer.email if customer else None,
            customer_name=customer.display_name if customer else "there",
            provider_name=provider.display_name if provider else "The provider",
            project_title=(lead.extra_data or {}).get("projectTitle") or "your service request",
            reason=other_text if reason_enum == RejectionReason.OTHER else REJECTION_LABELS[reason_enum.value],
        ))

    reassigned_id = None
    if service_request_id is not None:
        try:
            new_lead = await assign_next_alternative(
                db, service_request_id, provider_user_id, uuid.UUID(lead_id_str), now=now,
            )
            await db.commit()
            if new_lead is not None:
                reassigned_id = str(new_lead.id)
                await notify_assigned(db, [new_lead])
        except IntegrityError as e:
            await db.rollback()
            reassigned_id = None
            logger.warning("Alternative assignment lost a race for lead %s: %s", lead_id_str[:8], str(e))
        except Exception as e:
            await db.rollback()
            reassigned_id = None
            logger.error(
                "Alternative assignment failed for lead %s: %s", lead_id_str[:8], str(e), exc_info=True,
            )

    return RejectResult(
        status=LeadStatus.REJECTED.value,
        lead_id=lead_id_str,
        reassigned_lead_id=reassigned_id,
    )
