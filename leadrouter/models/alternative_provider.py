"""
Alternative provider ranking for a service request.
Produced by the matching step; the engine walks it in position order on rejection.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Integer, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from leadrouter.database import Base


class AlternativeProviderSelection(Base):
    __tablename__ = "alternative_provider_selections"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    service_request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("service_requests.id"), nullable=False
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("provider_profiles.id"), nullable=False
    )  # provider profile id
    position: Mapped[int] = mapped_column(Integer, nullable=False)  # 1 = highest priority

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_alt_selections_request_position", "service_request_id", "position"),
    )

    def __repr__(self) -> str:
        return f"<AlternativeProviderSelection pos={self.position}>"
