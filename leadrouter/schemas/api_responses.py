"""
Request and response schemas for the provider and scheduled-task endpoints.
"""
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class AcceptLeadRequest(BaseModel):
    description: str = Field(..., max_length=5000)
    price: Decimal
    payment_method_id: str


class RejectLeadRequest(BaseModel):
    reason: str
    reason_other: Optional[str] = Field(None, max_length=1000)


class ContactDetails(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class AcceptLeadResponse(BaseModel):
    status: str
    lead_id: str
    display_status: Optional[str] = None
    payment_intent_id: Optional[str] = None
    client_secret: Optional[str] = None
    lead_cost: Optional[int] = None
    contact_details: Optional[ContactDetails] = None
    proposal_id: Optional[str] = None


class RejectLeadResponse(BaseModel):
    status: str
    lead_id: str
    reassigned_lead_id: Optional[str] = None


class ProviderLead(BaseModel):
    id: str
    service_request_id: Optional[str] = None
    status: str
    display_status: str
    category_id: Optional[int] = None
    lead_cost: Optional[int] = None
    project_title: Optional[str] = None
    project_description: Optional[str] = None
    zip_code: Optional[str] = None
    preferred_date: Optional[str] = None
    preferred_time: Optional[str] = None
    attachments: list = []
    is_fallback_lead: bool = False
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[str] = None
    accepted_at: Optional[str] = None


class ProviderLeadListResponse(BaseModel):
    leads: list[ProviderLead]
    total: int
    page: int
    pages: int


class PayoutEntry(BaseModel):
    proposal_id: str
    service_request_id: str
    lead_id: Optional[str] = None
    amount: Decimal
    provider_amount: Decimal
    platform_fee: Decimal
    payout_status: str
    paid_at: Optional[str] = None
    payout_processed_at: Optional[str] = None
    stripe_transfer_id: Optional[str] = None


class PayoutStatsResponse(BaseModel):
    total_earnings: Decimal
    total_payouts: Decimal
    pending_payouts: Decimal
    completed_payouts: int
    failed_payouts: int = 0


class PayoutListResponse(BaseModel):
    payouts: list[PayoutEntry]
    stats: PayoutStatsResponse
    total: int
    page: int
    pages: int


class FallbackSweepResponse(BaseModel):
    success: bool = True
    processed_count: int
    assigned_count: int
    failed_count: int = 0
