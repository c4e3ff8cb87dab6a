"""
Tests for leadrouter/services/subscriptions.py - plan benefits and monthly quota.
"""
from datetime import datetime, timedelta, timezone

from leadrouter.services.subscriptions import (
    get_monthly_accepted_leads_count,
    get_subscription_benefits,
    month_bounds,
)


class TestSubscriptionBenefits:
    async def test_no_subscription(self, db, make):
        user, _profile, _business = await make.provider()
        benefits = await get_subscription_benefits(db, user.id)
        assert benefits.has_active_subscription is False
        assert benefits.max_leads_per_month is None
        assert benefits.tier == "BASIC"

    async def test_active_plan(self, db, make):
        user, _profile, _business = await make.provider()
        await make.subscription(user, discount=15, max_leads=30, tier="PREMIUM")

        benefits = await get_subscription_benefits(db, user.id)
        assert benefits.has_active_subscription is True
        assert benefits.lead_discount_percent == 15.0
        assert benefits.max_leads_per_month == 30
        assert benefits.tier == "PREMIUM"

    async def test_expired_period_counts_as_none(self, db, make):
        user, _profile, _business = await make.provider()
        await make.subscription(
            user, discount=20, current_period_end=datetime.now(timezone.utc) - timedelta(days=1),
        )
        benefits = await get_subscription_benefits(db, user.id)
        assert benefits.has_active_subscription is False

    async def test_cancelled_subscription_ignored(self, db, make):
        user, _profile, _business = await make.provider()
        await make.subscription(user, discount=20, status="CANCELLED")
        benefits = await get_subscription_benefits(db, user.id)
        assert benefits.has_active_subscription is False


class TestMonthlyAcceptedCount:
    async def test_counts_only_paid_acceptances_this_month(self, db, make):
        now = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        customer = await make.customer()
        provider, _profile, _business = await make.provider()

        for i in range(3):
            request = await make.service_request(customer)
            await make.lead(
                request, provider, status="accepted",
                stripe_payment_intent_id=f"pi_{i}", accepted_at=now - timedelta(days=i),
            )
        # Last month
        request = await make.service_request(customer)
        await make.lead(
            request, provider, status="accepted",
            stripe_payment_intent_id="pi_old", accepted_at=datetime(2026, 9, 30, tzinfo=timezone.utc),
        )
        # Accepted without payment
        request = await make.service_request(customer)
        await make.lead(request, provider, status="accepted", accepted_at=now)
        # Still pending
        request = await make.service_request(customer)
        await make.lead(request, provider, status="submitted", stripe_payment_intent_id="pi_pending")

        assert await get_monthly_accepted_leads_count(db, provider.id, now=now) == 3

    def test_month_bounds_wraps_december(self):
        start, end = month_bounds(datetime(2026, 12, 15, tzinfo=timezone.utc))
        assert start == datetime(2026, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2027, 1, 1, tzinfo=timezone.utc)
