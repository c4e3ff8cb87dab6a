"""
Lead event model - audit trail for every lead transition.
Used for support investigations and payout disputes.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from leadrouter.database import Base


class LeadEvent(Base):
    __tablename__ = "lead_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    lead_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("leads.id")
    )
    service_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("service_requests.id")
    )

    action: Mapped[str] = mapped_column(
        String(100), nullable=False
    )  # lead_routed, lead_payment_pending, lead_accepted, lead_rejected, lead_reassigned, ...
    message: Mapped[Optional[str]] = mapped_column(Text)
    data: Mapped[Optional[dict]] = mapped_column(JSONB)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    lead: Mapped[Optional["Lead"]] = relationship(back_populates="events")

    __table_args__ = (
        Index("ix_lead_events_lead_id", "lead_id"),
        Index("ix_lead_events_action", "action"),
        Index("ix_lead_events_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<LeadEvent {self.action}>"
