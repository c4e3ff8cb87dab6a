"""
Lead model - one routing attempt of a service request to one provider.
Lifecycle: submitted/routed → accepted | rejected. cancelled is set when the
acceptance payment is abandoned. Terminal leads are kept for audit and payouts.
"""
import enum
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Index, text
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from leadrouter.database import Base


class LeadStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    ROUTED = "routed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class RejectionReason(str, enum.Enum):
    TOO_FAR = "TOO_FAR"
    TOO_EXPENSIVE = "TOO_EXPENSIVE"
    NOT_RELEVANT = "NOT_RELEVANT"
    OTHER = "OTHER"


# Statuses a provider can still act on
PENDING_STATUSES = (LeadStatus.SUBMITTED.value, LeadStatus.ROUTED.value)

# At most one lead per (service request, provider) may be in one of these
LIVE_STATUSES = PENDING_STATUSES + (LeadStatus.ACCEPTED.value,)

_LIVE_WHERE = text("status IN ('submitted', 'routed', 'accepted')")


class Lead(Base):
    __tablename__ = "leads"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    service_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("service_requests.id")
    )
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id")
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )  # provider's user id, not profile id
    business_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("businesses.id")
    )
    category_id: Mapped[Optional[int]] = mapped_column(Integer)
    service_type: Mapped[Optional[str]] = mapped_column(String(120))

    status: Mapped[str] = mapped_column(
        String(20), default=LeadStatus.SUBMITTED.value, nullable=False
    )

    # Payment
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255))
    lead_cost: Mapped[Optional[int]] = mapped_column(Integer)  # cents

    # Contact details - withheld until accepted
    customer_name: Mapped[Optional[str]] = mapped_column(String(120))
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50))

    # Rejection
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(30))
    rejection_reason_other: Mapped[Optional[str]] = mapped_column(Text)

    # serviceRequestId, project snapshot, pendingProposal, priorityExpiresAt,
    # fallbackBusinessIds, assignedFrom, isFallbackLead, fallbackAssignedAt
    extra_data: Mapped[dict] = mapped_column("metadata", JSONB, default=dict)

    # Timestamps
    routed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    # Optimistic concurrency - a stale writer gets StaleDataError on flush
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    service_request: Mapped[Optional["ServiceRequest"]] = relationship(
        back_populates="leads", lazy="select"
    )
    events: Mapped[list["LeadEvent"]] = relationship(
        back_populates="lead", lazy="select", order_by="LeadEvent.created_at"
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_leads_service_request_id", "service_request_id"),
        Index("ix_leads_provider_status", "provider_id", "status"),
        Index("ix_leads_status", "status"),
        Index("ix_leads_payment_intent", "stripe_payment_intent_id"),
        Index(
            "uq_leads_live_request_provider",
            "service_request_id",
            "provider_id",
            unique=True,
            postgresql_where=_LIVE_WHERE,
            sqlite_where=_LIVE_WHERE,
        ),
    )

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUSES

    @property
    def pending_proposal(self) -> Optional[dict]:
        return (self.extra_data or {}).get("pendingProposal")

    def merge_metadata(self, **values) -> None:
        """Merge keys into the metadata blob. Reassigns so the JSON column is flagged dirty."""
        merged = dict(self.extra_data or {})
        merged.update(values)
        self.extra_data = merged

    def drop_metadata(self, *keys: str) -> None:
        remaining = {k: v for k, v in (self.extra_data or {}).items() if k not in keys}
        self.extra_data = remaining

    def __repr__(self) -> str:
        return f"<Lead {str(self.id)[:8]} status={self.status}>"
