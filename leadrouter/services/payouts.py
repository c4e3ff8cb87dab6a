"""
Payout reconciler - a provider's earnings and payout bookkeeping.

Reads succeeded proposal payments. Amounts already recorded by payout
processing win; otherwise the split is recomputed with the fee calculator.
Nothing here moves money.
"""
import logging
import math
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadrouter.errors import InvalidAmount, NotFound
from leadrouter.models.proposal import Proposal
from leadrouter.models.user import ProviderProfile
from leadrouter.services.pricing import PayoutCalculator, get_payout_calculator

logger = logging.getLogger(__name__)

PAYOUT_STATUSES = ("pending", "processing", "completed", "failed")
ZERO = Decimal("0.00")


@dataclass
class PayoutStats:
    total_earnings: Decimal = ZERO
    total_payouts: Decimal = ZERO
    pending_payouts: Decimal = ZERO
    completed_payouts: int = 0
    failed_payouts: int = 0


@dataclass
class PayoutReport:
    payouts: list[dict[str, Any]] = field(default_factory=list)
    stats: PayoutStats = field(default_factory=PayoutStats)
    total: int = 0
    page: int = 1
    pages: int = 0


def _normalize_status(proposal: Proposal) -> str:
    status = proposal.payout_status or "pending"
    if status not in PAYOUT_STATUSES:
        logger.warning(
            "Proposal %s has unknown payout status %r, treating as pending",
            str(proposal.id)[:8], status,
        )
        return "pending"
    return status


def _amounts(proposal: Proposal, calculator: PayoutCalculator) -> tuple[Decimal, Decimal]:
    """Provider amount and platform fee in dollars."""
    if proposal.provider_payout_amount is not None:
        return (
            Decimal(proposal.provider_payout_amount),
            Decimal(proposal.platform_fee_amount or 0),
        )
    try:
        split = calculator.payout_split(proposal.price)
    except InvalidAmount as e:
        logger.warning("Proposal %s has no payable amount: %s", str(proposal.id)[:8], str(e))
        return ZERO, ZERO
    return split.provider_amount, split.platform_fee


def _sort_key(proposal: Proposal):
    # payout_processed_at desc, then paid_at desc; missing dates sort last
    processed = proposal.payout_processed_at
    paid = proposal.paid_at
    return (
        processed is not None,
        processed.timestamp() if processed else 0,
        paid is not None,
        paid.timestamp() if paid else 0,
    )


async def get_payouts(
    db: AsyncSession,
    provider_user_id: uuid.UUID,
    page: int = 1,
    page_size: int = 10,
    calculator: Optional[PayoutCalculator] = None,
) -> PayoutReport:
    """
    Payout history and totals for a provider.

    Stats cover every succeeded payment, not only the requested page.
    Failed payouts are counted separately and left out of both totals.
    """
    calculator = calculator or get_payout_calculator()
    page = max(1, page)
    page_size = min(max(1, page_size), 100)

    profile = (await db.execute(
        select(ProviderProfile).where(ProviderProfile.user_id == provider_user_id)
    )).scalar_one_or_none()
    if profile is None:
        raise NotFound("Provider profile not found")

    result = await db.execute(
        select(Proposal).where(
            Proposal.provider_id == profile.id,
            Proposal.payment_status == "succeeded",
        )
    )
    proposals = sorted(result.scalars().all(), key=_sort_key, reverse=True)

    stats = PayoutStats()
    rows = []
    for proposal in proposals:
        status = _normalize_status(proposal)
        provider_amount, platform_fee = _amounts(proposal, calculator)
        price = Decimal(proposal.price or 0)

        stats.total_earnings += price
        if status == "completed":
            stats.total_payouts += provider_amount
            stats.completed_payouts += 1
        elif status in ("pending", "processing"):
            stats.pending_payouts += provider_amount
        else:
            stats.failed_payouts += 1
            logger.warning(
                "Payout for proposal %s failed, needs manual review", str(proposal.id)[:8],
                extra={"provider_id": str(provider_user_id)},
            )

        rows.append({
            "proposal_id": str(proposal.id),
            "service_request_id": str(proposal.service_request_id),
            "lead_id": str(proposal.lead_id) if proposal.lead_id else None,
            "amount": price,
            "provider_amount": provider_amount,
            "platform_fee": platform_fee,
            "payout_status": status,
            "paid_at": proposal.paid_at.isoformat() if proposal.paid_at else None,
            "payout_processed_at": (
                proposal.payout_processed_at.isoformat() if proposal.payout_processed_at else None
            ),
            "stripe_transfer_id": proposal.stripe_transfer_id,
        })

    total = len(rows)
    start = (page - 1) * page_size
    return PayoutReport(
        payouts=rows[start:start + page_size],
        stats=stats,
        total=total,
        page=page,
        pages=math.ceil(total / page_size) if total else 0,
    )
