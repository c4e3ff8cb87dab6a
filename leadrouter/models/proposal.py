"""
Proposal model - the provider's priced offer, created once a lead's acceptance fee is paid.
Payout fields are filled by payout processing; the reconciler reads them.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Text, Numeric, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from leadrouter.database import Base


class Proposal(Base):
    __tablename__ = "proposals"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    service_request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("service_requests.id"), nullable=False
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("provider_profiles.id"), nullable=False
    )  # provider profile id
    lead_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("leads.id")
    )

    details: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)  # dollars
    status: Mapped[str] = mapped_column(
        String(20), default="SENT", nullable=False
    )  # SENT, ACCEPTED, REJECTED

    # Customer payment for the proposal
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255))
    payment_status: Mapped[str] = mapped_column(
        String(20), default="pending", nullable=False
    )  # pending, succeeded, failed
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Payout bookkeeping
    provider_payout_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    platform_fee_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    payout_status: Mapped[Optional[str]] = mapped_column(
        String(20)
    )  # pending, processing, completed, failed
    payout_processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    stripe_transfer_id: Mapped[Optional[str]] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    service_request: Mapped["ServiceRequest"] = relationship(lazy="select")

    __table_args__ = (
        Index("ix_proposals_service_request_id", "service_request_id"),
        Index("ix_proposals_provider_payment", "provider_id", "payment_status"),
    )

    def __repr__(self) -> str:
        return f"<Proposal {str(self.id)[:8]} status={self.status} payout={self.payout_status}>"
