"""
Tests for leadrouter/services/pricing.py - lead cost and payout split arithmetic.
"""
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from leadrouter.errors import InvalidAmount
from leadrouter.services.pricing import (
    LeadPricing,
    PayoutCalculator,
    get_lead_pricing,
    get_payout_calculator,
)
from leadrouter.services.subscriptions import NO_SUBSCRIPTION, SubscriptionBenefits


def _benefits(discount: float, active: bool = True) -> SubscriptionBenefits:
    return SubscriptionBenefits(has_active_subscription=active, lead_discount_percent=discount)


# ---------------------------------------------------------------------------
# LeadPricing
# ---------------------------------------------------------------------------

class TestLeadCost:
    def test_default_cost_without_subscription(self):
        assert LeadPricing().lead_cost(1, NO_SUBSCRIPTION) == 2000

    def test_category_override(self):
        pricing = LeadPricing(category_pricing={7: 3500})
        assert pricing.lead_cost(7, None) == 3500
        assert pricing.lead_cost(8, None) == 2000

    def test_fifteen_percent_discount(self):
        assert LeadPricing().lead_cost(1, _benefits(15)) == 1700

    def test_discount_ignored_when_subscription_inactive(self):
        assert LeadPricing().lead_cost(1, _benefits(50, active=False)) == 2000

    def test_zero_discount_is_full_price(self):
        assert LeadPricing().lead_cost(1, _benefits(0)) == 2000

    def test_rounds_half_up(self):
        # 999 * 0.5 = 499.5 off -> 499.5 -> 500
        assert LeadPricing(default_cost_cents=999).lead_cost(None, _benefits(50)) == 500

    def test_never_below_one_cent(self):
        assert LeadPricing().lead_cost(1, _benefits(100)) == 1
        assert LeadPricing(default_cost_cents=1).lead_cost(1, _benefits(99)) == 1

    def test_non_increasing_in_discount(self):
        pricing = LeadPricing(default_cost_cents=2999)
        costs = [pricing.lead_cost(1, _benefits(pct)) for pct in range(0, 101, 5)]
        assert costs == sorted(costs, reverse=True)
        assert all(cost >= 1 for cost in costs)


# ---------------------------------------------------------------------------
# PayoutCalculator
# ---------------------------------------------------------------------------

class TestPayoutSplit:
    def test_hundred_dollars_ten_percent(self):
        split = PayoutCalculator(fee_percentage=0.10, minimum_fee=0).payout_split(100)
        assert split.total_cents == 10000
        assert split.provider_amount == Decimal("90.00")
        assert split.platform_fee == Decimal("10.00")

    def test_minimum_fee_applies(self):
        split = PayoutCalculator(fee_percentage=0.10, minimum_fee=5).payout_split("20.00")
        assert split.platform_fee_cents == 500
        assert split.provider_amount_cents == 1500

    def test_parts_sum_to_total(self):
        calc = PayoutCalculator(fee_percentage=0.125, minimum_fee=0.5)
        for total in ("1.99", "33.33", "87.65", "1234.56"):
            split = calc.payout_split(total)
            assert split.provider_amount_cents + split.platform_fee_cents == split.total_cents
            assert split.platform_fee_cents >= 50
            assert split.provider_amount_cents >= 0

    def test_minimum_fee_above_total_leaves_provider_negative(self):
        split = PayoutCalculator(fee_percentage=0.125, minimum_fee=0.5).payout_split("0.01")
        assert split.total_cents == 1
        assert split.platform_fee_cents == 50
        assert split.provider_amount_cents == -49
        assert split.provider_amount == Decimal("-0.49")

    def test_accepts_decimal_input(self):
        split = PayoutCalculator().payout_split(Decimal("49.99"))
        assert split.total_cents == 4999
        assert split.platform_fee_cents == 500

    @pytest.mark.parametrize("total", [0, -5, "0.00", None, "abc"])
    def test_invalid_totals_rejected(self, total):
        with pytest.raises(InvalidAmount):
            PayoutCalculator().payout_split(total)


# ---------------------------------------------------------------------------
# Settings-derived factories
# ---------------------------------------------------------------------------

class TestFactories:
    def test_pricing_from_settings(self):
        settings = MagicMock(default_lead_cost_cents=2500, category_pricing={3: 4000})
        with patch("leadrouter.services.pricing.get_settings", return_value=settings):
            pricing = get_lead_pricing()
        assert pricing.base_cost(3) == 4000
        assert pricing.base_cost(1) == 2500

    def test_calculator_from_settings(self):
        settings = MagicMock(platform_fee_percentage=0.2, platform_fee_minimum=1.0)
        with patch("leadrouter.services.pricing.get_settings", return_value=settings):
            calc = get_payout_calculator()
        assert calc.fee_percentage == 0.2
        assert calc.minimum_fee == 1.0
