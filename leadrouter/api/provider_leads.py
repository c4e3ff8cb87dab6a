"""
Provider lead endpoints - inbox, accept and reject.
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leadrouter.api.auth import get_current_provider_id
from leadrouter.api.errors import to_http
from leadrouter.database import get_db
from leadrouter.errors import LeadRoutingError
from leadrouter.schemas.api_responses import (
    AcceptLeadRequest,
    AcceptLeadResponse,
    ProviderLeadListResponse,
    RejectLeadRequest,
    RejectLeadResponse,
)
from leadrouter.services import lead_engine
from leadrouter.services.lead_status import DisplayStatus, list_provider_leads

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/provider", tags=["provider"])


@router.get("/leads", response_model=ProviderLeadListResponse)
async def get_provider_leads(
    status: Optional[DisplayStatus] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    provider_id: uuid.UUID = Depends(get_current_provider_id),
    db: AsyncSession = Depends(get_db),
):
    """List the provider's leads, optionally filtered by display status."""
    return await list_provider_leads(db, provider_id, status, page, per_page)


@router.patch("/leads/{lead_id}/accept", response_model=AcceptLeadResponse)
async def accept_lead(
    lead_id: uuid.UUID,
    body: AcceptLeadRequest,
    provider_id: uuid.UUID = Depends(get_current_provider_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Pay the lead fee and accept the lead.

    200 with status "accepted" reveals contact details. "requires_action" or
    "processing" returns a client secret for the frontend to finish payment.
    """
    try:
        result = await lead_engine.accept_lead(
            db,
            lead_id,
            provider_id,
            description=body.description,
            price=body.price,
            payment_method=body.payment_method_id,
        )
    except LeadRoutingError as e:
        raise to_http(e)
    return AcceptLeadResponse(**result.__dict__)


@router.patch("/leads/{lead_id}/reject", response_model=RejectLeadResponse)
async def reject_lead(
    lead_id: uuid.UUID,
    body: RejectLeadRequest,
    provider_id: uuid.UUID = Depends(get_current_provider_id),
    db: AsyncSession = Depends(get_db),
):
    """Reject the lead; the request moves on to the next alternative provider."""
    try:
        result = await lead_engine.reject_lead(
            db, lead_id, provider_id, body.reason, body.reason_other,
        )
    except LeadRoutingError as e:
        raise to_http(e)
    return RejectLeadResponse(**result.__dict__)
