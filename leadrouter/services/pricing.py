"""
Lead pricing and payout split arithmetic.

All money math is done in integer cents with Decimal ROUND_HALF_UP so that
amounts shown to providers match what is charged to the cent.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional, Union

from leadrouter.config import get_settings
from leadrouter.errors import InvalidAmount
from leadrouter.services.subscriptions import SubscriptionBenefits

logger = logging.getLogger(__name__)

DEFAULT_LEAD_COST_CENTS = 2000  # $20.00
MINIMUM_LEAD_COST_CENTS = 1

Number = Union[int, float, str, Decimal]


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_dollars(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


@dataclass
class LeadPricing:
    """Per-category acceptance fee with subscription discounts."""

    default_cost_cents: int = DEFAULT_LEAD_COST_CENTS
    category_pricing: dict[int, int] = field(default_factory=dict)

    def base_cost(self, category_id: Optional[int]) -> int:
        if category_id is not None and category_id in self.category_pricing:
            return int(self.category_pricing[category_id])
        return int(self.default_cost_cents)

    def lead_cost(
        self,
        category_id: Optional[int],
        benefits: Optional[SubscriptionBenefits] = None,
    ) -> int:
        """
        Cost in cents a provider pays to accept a lead.

        Discount applies only with an active subscription and a positive
        percentage. Never drops below one cent.
        """
        base = self.base_cost(category_id)
        if not benefits or not benefits.has_active_subscription:
            return base

        pct = Decimal(str(benefits.lead_discount_percent or 0))
        if pct <= 0:
            return base

        discounted = Decimal(base) - Decimal(base) * pct / Decimal(100)
        return max(MINIMUM_LEAD_COST_CENTS, round_half_up(discounted))


@dataclass(frozen=True)
class PayoutSplit:
    total_cents: int
    provider_amount_cents: int
    platform_fee_cents: int

    @property
    def provider_amount(self) -> Decimal:
        return cents_to_dollars(self.provider_amount_cents)

    @property
    def platform_fee(self) -> Decimal:
        return cents_to_dollars(self.platform_fee_cents)

    @property
    def total(self) -> Decimal:
        return cents_to_dollars(self.total_cents)


@dataclass
class PayoutCalculator:
    """Platform fee split for proposal payments."""

    fee_percentage: float = 0.10
    minimum_fee: float = 0.0

    def payout_split(self, total: Optional[Number]) -> PayoutSplit:
        """
        Split a positive total into provider amount and platform fee, in cents.

        The fee is never below ``minimum_fee`` and the two parts always add up
        to the total. So when the minimum fee exceeds the total the provider
        amount is negative (0.01 with a 0.50 minimum gives -49 cents): the
        provider owes the difference. Callers that pay out must check
        ``provider_amount_cents`` before moving money.
        """
        if total is None:
            raise InvalidAmount("Total amount is required")
        try:
            total_dec = Decimal(str(total))
        except (InvalidOperation, ValueError):
            raise InvalidAmount(f"Total amount is not a number: {total!r}")
        if not total_dec.is_finite() or total_dec <= 0:
            raise InvalidAmount("Total amount must be greater than 0")

        total_cents = round_half_up(total_dec * 100)
        percentage_fee = round_half_up(Decimal(total_cents) * Decimal(str(self.fee_percentage)))
        minimum_fee_cents = round_half_up(Decimal(str(self.minimum_fee)) * 100)
        fee_cents = max(percentage_fee, minimum_fee_cents)

        return PayoutSplit(
            total_cents=total_cents,
            provider_amount_cents=total_cents - fee_cents,
            platform_fee_cents=fee_cents,
        )


def get_lead_pricing() -> LeadPricing:
    settings = get_settings()
    return LeadPricing(
        default_cost_cents=settings.default_lead_cost_cents,
        category_pricing=dict(settings.category_pricing),
    )


def get_payout_calculator() -> PayoutCalculator:
    settings = get_settings()
    return PayoutCalculator(
        fee_percentage=settings.platform_fee_percentage,
        minimum_fee=settings.platform_fee_minimum,
    )
