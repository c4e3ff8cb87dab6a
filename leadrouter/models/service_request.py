"""
Service request model - a customer's ask for work in a category and zip code.
Lifecycle: OPEN → LEAD_ASSIGNED → IN_PROGRESS → COMPLETED / CLOSED. Never deleted.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from leadrouter.database import Base


class ServiceRequest(Base):
    __tablename__ = "service_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    category_id: Mapped[int] = mapped_column(Integer, nullable=False)
    sub_category_id: Mapped[Optional[int]] = mapped_column(Integer)

    # Project
    zip_code: Mapped[str] = mapped_column(String(20), nullable=False)
    project_title: Mapped[str] = mapped_column(String(255), nullable=False)
    project_description: Mapped[str] = mapped_column(Text, nullable=False)
    preferred_date: Mapped[Optional[str]] = mapped_column(String(20))  # ISO date
    preferred_time: Mapped[Optional[str]] = mapped_column(String(50))
    attachments: Mapped[Optional[list]] = mapped_column(JSONB, default=list)

    # Routing
    status: Mapped[str] = mapped_column(String(30), default="OPEN", nullable=False)
    primary_provider_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("provider_profiles.id")
    )
    selected_business_ids: Mapped[Optional[list]] = mapped_column(JSONB, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    customer: Mapped["User"] = relationship(lazy="select")
    leads: Mapped[list["Lead"]] = relationship(
        back_populates="service_request", lazy="select", order_by="Lead.created_at"
    )

    __table_args__ = (
        Index("ix_service_requests_customer_id", "customer_id"),
        Index("ix_service_requests_status", "status"),
    )

    def snapshot(self) -> dict:
        """Project fields copied onto every lead routed for this request."""
        return {
            "serviceRequestId": str(self.id),
            "projectTitle": self.project_title,
            "projectDescription": self.project_description,
            "zipCode": self.zip_code,
            "preferredDate": self.preferred_date,
            "preferredTime": self.preferred_time,
            "attachments": list(self.attachments or []),
        }

    def __repr__(self) -> str:
        return f"<ServiceRequest {str(self.id)[:8]} status={self.status}>"
