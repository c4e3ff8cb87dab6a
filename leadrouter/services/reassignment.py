"""
Lead reassignment - moves a service request on to other providers.

Two triggers:
- A provider rejects: the next ranked alternative provider gets a routed lead.
- A priority lead sits untouched past its window: every fallback business owner
  gets a submitted lead (run by the fallback sweep).

Both paths share the live-lead checks and rely on the partial unique index on
(service_request_id, provider_id) as the final guard. They only flush; the
caller commits, and an IntegrityError from a racing insert propagates to it.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from dateutil.parser import isoparse
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from leadrouter.config import get_settings
from leadrouter.models.alternative_provider import AlternativeProviderSelection
from leadrouter.models.lead import Lead, LeadStatus, LIVE_STATUSES, PENDING_STATUSES
from leadrouter.models.lead_event import LeadEvent
from leadrouter.models.service_request import ServiceRequest
from leadrouter.models.user import Business, ProviderProfile, User
from leadrouter.services import lead_events

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    processed_count: int = 0
    assigned_count: int = 0
    errors: list[str] = field(default_factory=list)


async def has_live_lead(
    db: AsyncSession,
    service_request_id: uuid.UUID,
    provider_user_id: uuid.UUID,
) -> bool:
    result = await db.execute(
        select(Lead.id).where(
            and_(
                Lead.service_request_id == service_request_id,
                Lead.provider_id == provider_user_id,
                Lead.status.in_(LIVE_STATUSES),
            )
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def has_accepted_lead(db: AsyncSession, service_request_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(Lead.id).where(
            and_(
                Lead.service_request_id == service_request_id,
                Lead.status == LeadStatus.ACCEPTED.value,
            )
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def _business_for_owner(db: AsyncSession, owner_id: uuid.UUID) -> Optional[Business]:
    result = await db.execute(
        select(Business).where(Business.owner_id == owner_id).order_by(Business.created_at).limit(1)
    )
    return result.scalar_one_or_none()


async def assign_next_alternative(
    db: AsyncSession,
    service_request_id: uuid.UUID,
    rejected_provider_user_id: uuid.UUID,
    failed_lead_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> Optional[Lead]:
    """
    Route the request to the highest-ranked eligible alternative provider.

    Skips candidates whose profile or user is gone, the rejecting provider,
    inactive profiles and providers already holding a live lead for the
    request. Returns the new lead, or None when nobody is eligible.
    """
    now = now or datetime.now(timezone.utc)
    request_short = str(service_request_id)[:8]

    service_request = await db.get(ServiceRequest, service_request_id)
    if service_request is None:
        logger.warning("Alternative assignment skipped: service request %s not found", request_short)
        return None

    if await has_accepted_lead(db, service_request_id):
        logger.info("Alternative assignment skipped: request %s already has an accepted lead", request_short)
        return None

    result = await db.execute(
        select(AlternativeProviderSelection)
        .where(AlternativeProviderSelection.service_request_id == service_request_id)
        .order_by(AlternativeProviderSelection.position)
    )
    selections = result.scalars().all()

    for selection in selections:
        profile = await db.get(ProviderProfile, selection.provider_id)
        if profile is None:
            continue
        user = await db.get(User, profile.user_id)
        if user is None:
            continue
        if user.id == rejected_provider_user_id:
            continue
        if not profile.is_active:
            logger.debug("Skipping inactive alternative provider %s", str(profile.id)[:8])
            continue
        if await has_live_lead(db, service_request_id, user.id):
            continue

        business = await _business_for_owner(db, user.id)
        lead = Lead(
            service_request_id=service_request_id,
            customer_id=service_request.customer_id,
            provider_id=user.id,
            business_id=business.id if business else None,
            category_id=service_request.category_id,
            status=LeadStatus.ROUTED.value,
            routed_at=now,
            extra_data={
                **service_request.snapshot(),
                "assignedFrom": str(failed_lead_id),
                "position": selection.position,
            },
        )
        db.add(lead)
        await db.flush()

        db.add(LeadEvent(
            lead_id=lead.id,
            service_request_id=service_request_id,
            action="lead_reassigned",
            message=f"Routed to alternative provider at position {selection.position}",
            data={"assigned_from": str(failed_lead_id), "position": selection.position},
        ))

        logger.info(
            "Request %s reassigned to alternative provider %s (position %d)",
            request_short, str(user.id)[:8], selection.position,
        )
        return lead

    logger.info("No eligible alternative provider for request %s", request_short)
    return None


def _as_uuid(value) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


async def assign_fallback_leads(
    db: AsyncSession,
    service_request_id: uuid.UUID,
    fallback_business_ids: list,
    now: Optional[datetime] = None,
) -> list[Lead]:
    """
    Create submitted leads for every active fallback business with an owner.

    Nothing is created when the request already has an accepted lead.
    Owners already holding a live lead for the request are skipped.
    """
    now = now or datetime.now(timezone.utc)
    request_short = str(service_request_id)[:8]

    business_ids = [bid for bid in (_as_uuid(v) for v in fallback_business_ids or []) if bid]
    if not business_ids:
        return []

    service_request = await db.get(ServiceRequest, service_request_id)
    if service_request is None:
        logger.warning("Fallback assignment skipped: service request %s not found", request_short)
        return []

    if await has_accepted_lead(db, service_request_id):
        logger.info("Fallback assignment skipped: request %s already has an accepted lead", request_short)
        return []

    result = await db.execute(
        select(Business).where(
            and_(
                Business.id.in_(business_ids),
                Business.is_active.is_(True),
                Business.owner_id.is_not(None),
            )
        )
    )
    businesses = result.scalars().all()

    created: list[tuple[Lead, User]] = []
    seen_owners: set[uuid.UUID] = set()
    for business in businesses:
        if business.owner_id in seen_owners:
            continue
        seen_owners.add(business.owner_id)
        if await has_live_lead(db, service_request_id, business.owner_id):
            continue
        owner = await db.get(User, business.owner_id)
        if owner is None:
            continue

        lead = Lead(
            service_request_id=service_request_id,
            customer_id=service_request.customer_id,
            provider_id=owner.id,
            business_id=business.id,
            category_id=service_request.category_id,
            status=LeadStatus.SUBMITTED.value,
            extra_data={
                **service_request.snapshot(),
                "isFallbackLead": True,
                "priorityExpired": True,
            },
        )
        db.add(lead)
        created.append((lead, owner))

    if not created:
        return []

    await db.flush()
    for lead, _owner in created:
        db.add(LeadEvent(
            lead_id=lead.id,
            service_request_id=service_request_id,
            action="lead_fallback_assigned",
            message="Priority window expired, routed to fallback business",
            data={"business_id": str(lead.business_id)},
        ))

    logger.info("Request %s: %d fallback leads created", request_short, len(created))
    return [lead for lead, _owner in created]


def _fallback_candidates(rows, now: datetime, limit: int) -> list[uuid.UUID]:
    due = []
    for lead_id, meta in rows:
        meta = meta or {}
        if not meta.get("priorityExpiresAt") or not meta.get("fallbackBusinessIds"):
            continue
        if meta.get("fallbackAssignedAt"):
            continue
        try:
            expires_at = isoparse(meta["priorityExpiresAt"])
        except (TypeError, ValueError):
            logger.warning("Lead %s has unparseable priorityExpiresAt", str(lead_id)[:8])
            continue
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at <= now:
            due.append((expires_at, lead_id))
    due.sort(key=lambda item: item[0])
    return [lead_id for _expires, lead_id in due[:limit]]


async def run_fallback_sweep(
    db: AsyncSession,
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
) -> SweepResult:
    """
    Reassign untouched priority leads whose window has expired.

    Each expired lead is processed once: it is stamped with fallbackAssignedAt
    in the same commit as the fallback leads. A failure on one lead is logged,
    rolled back and retried on the next sweep; it never aborts the batch.
    """
    now = now or datetime.now(timezone.utc)
    batch_size = batch_size or get_settings().fallback_sweep_batch_size
    sweep = SweepResult()

    rows = (await db.execute(
        select(Lead.id, Lead.extra_data).where(Lead.status.in_(PENDING_STATUSES))
    )).all()
    candidate_ids = _fallback_candidates(rows, now, batch_size)

    for lead_id in candidate_ids:
        try:
            lead = await db.get(Lead, lead_id, populate_existing=True)
            if lead is None or not lead.is_pending:
                continue
            sweep.processed_count += 1

            meta = lead.extra_data or {}
            created = await assign_fallback_leads(
                db, lead.service_request_id, meta.get("fallbackBusinessIds", []), now=now,
            )
            lead.merge_metadata(
                fallbackAssignedAt=now.isoformat(),
                fallbackLeadIds=[str(new_lead.id) for new_lead in created],
            )
            db.add(LeadEvent(
                lead_id=lead.id,
                service_request_id=lead.service_request_id,
                action="lead_priority_expired",
                message=f"Priority window expired, {len(created)} fallback leads created",
                data={"fallback_lead_ids": [str(new_lead.id) for new_lead in created]},
            ))
            await db.commit()
            sweep.assigned_count += len(created)
        except Exception as e:
            await db.rollback()
            sweep.errors.append(str(lead_id))
            logger.error(
                "Fallback sweep failed for lead %s: %s", str(lead_id)[:8], str(e), exc_info=True,
            )
            continue

        if created:
            await notify_assigned(db, created, is_fallback=True)

    if sweep.processed_count:
        logger.info(
            "Fallback sweep: processed=%d assigned=%d errors=%d",
            sweep.processed_count, sweep.assigned_count, len(sweep.errors),
        )
    return sweep


async def notify_assigned(db: AsyncSession, leads: list[Lead], is_fallback: bool = False) -> None:
    """Tell each provider about their new lead. Call after the leads are committed."""
    for lead in leads:
        owner = await db.get(User, lead.provider_id)
        meta = lead.extra_data or {}
        lead_events.publish(lead_events.LeadAssigned(
            lead_id=str(lead.id),
            provider_email=owner.email if owner else None,
            provider_name=owner.display_name if owner else "there",
            project_title=meta.get("projectTitle") or "Service request",
            zip_code=meta.get("zipCode"),
            is_fallback=is_fallback,
        ))
