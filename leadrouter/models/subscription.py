"""
Provider subscription plans - lead discounts and monthly lead quotas per tier.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Integer, Numeric, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from leadrouter.database import Base


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    tier: Mapped[str] = mapped_column(
        String(20), default="BASIC", nullable=False
    )  # BASIC, PREMIUM, PRO
    lead_discount_percent: Mapped[float] = mapped_column(Numeric(5, 2), default=0)
    max_leads_per_month: Mapped[Optional[int]] = mapped_column(Integer)  # None = unlimited
    priority_boost_points: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<SubscriptionPlan {self.name} tier={self.tier}>"


class UserSubscription(Base):
    __tablename__ = "user_subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("subscription_plans.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), default="ACTIVE", nullable=False
    )  # ACTIVE, CANCELLED, EXPIRED
    current_period_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    plan: Mapped["SubscriptionPlan"] = relationship(lazy="joined")

    __table_args__ = (
        Index("ix_user_subscriptions_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<UserSubscription user={str(self.user_id)[:8]} status={self.status}>"
