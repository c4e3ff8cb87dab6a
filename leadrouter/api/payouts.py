"""
Provider payout endpoint - earnings, payout history and totals.
"""
import logging
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leadrouter.api.auth import get_current_provider_id
from leadrouter.api.errors import to_http
from leadrouter.database import get_db
from leadrouter.errors import LeadRoutingError
from leadrouter.schemas.api_responses import PayoutListResponse, PayoutStatsResponse
from leadrouter.services.payouts import get_payouts

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/provider", tags=["provider"])


@router.get("/payouts", response_model=PayoutListResponse)
async def get_provider_payouts(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    provider_id: uuid.UUID = Depends(get_current_provider_id),
    db: AsyncSession = Depends(get_db),
):
    try:
        report = await get_payouts(db, provider_id, page=page, page_size=per_page)
    except LeadRoutingError as e:
        raise to_http(e)

    return PayoutListResponse(
        payouts=report.payouts,
        stats=PayoutStatsResponse(**report.stats.__dict__),
        total=report.total,
        page=report.page,
        pages=report.pages,
    )
