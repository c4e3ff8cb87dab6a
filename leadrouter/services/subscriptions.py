"""
Subscription benefits and monthly lead quota lookups.

Central source of truth for what a provider's plan gives them at accept time:
lead discount percentage and the monthly accepted-lead cap.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from leadrouter.models.lead import Lead, LeadStatus
from leadrouter.models.subscription import UserSubscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubscriptionBenefits:
    has_active_subscription: bool = False
    tier: str = "BASIC"
    lead_discount_percent: float = 0.0
    max_leads_per_month: Optional[int] = None
    priority_boost_points: int = 0
    plan_name: Optional[str] = None


NO_SUBSCRIPTION = SubscriptionBenefits()


async def get_subscription_benefits(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> SubscriptionBenefits:
    """
    Resolve the active plan for a provider user.

    A subscription past its current_period_end counts as inactive.
    Lookup failures degrade to no subscription (full price, no quota).
    """
    now = now or datetime.now(timezone.utc)
    try:
        result = await db.execute(
            select(UserSubscription)
            .where(
                and_(
                    UserSubscription.user_id == user_id,
                    UserSubscription.status == "ACTIVE",
                )
            )
            .order_by(UserSubscription.created_at.desc())
            .limit(1)
        )
        subscription = result.scalar_one_or_none()
    except Exception as e:
        logger.error("Subscription lookup failed for user %s: %s", str(user_id)[:8], str(e))
        return NO_SUBSCRIPTION

    if not subscription or not subscription.plan:
        return NO_SUBSCRIPTION

    period_end = subscription.current_period_end
    if period_end is not None:
        if period_end.tzinfo is None:
            period_end = period_end.replace(tzinfo=timezone.utc)
        if period_end < now:
            return NO_SUBSCRIPTION

    plan = subscription.plan
    tier = plan.tier or "BASIC"

    return SubscriptionBenefits(
        has_active_subscription=True,
        tier=tier,
        lead_discount_percent=float(plan.lead_discount_percent or 0),
        max_leads_per_month=plan.max_leads_per_month,
        priority_boost_points=int(plan.priority_boost_points or 0),
        plan_name=plan.name,
    )


def month_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Return [start of month, start of next month) in UTC."""
    start = now.astimezone(timezone.utc).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


async def get_monthly_accepted_leads_count(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> int:
    """Count leads this provider paid for and accepted in the current calendar month."""
    start, end = month_bounds(now or datetime.now(timezone.utc))
    result = await db.execute(
        select(func.count()).select_from(Lead).where(
            and_(
                Lead.provider_id == user_id,
                Lead.status == LeadStatus.ACCEPTED.value,
                Lead.stripe_payment_intent_id.is_not(None),
                Lead.accepted_at >= start,
                Lead.accepted_at < end,
            )
        )
    )
    return result.scalar() or 0
