"""Initial schema - lead routing tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users (customers and provider owners)
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(120)),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("role", sa.String(20), nullable=False, server_default="customer"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "provider_profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_provider_profiles_user_id", "provider_profiles", ["user_id"], unique=True)

    op.create_table(
        "businesses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("city", sa.String(100)),
        sa.Column("state", sa.String(100)),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_businesses_owner_id", "businesses", ["owner_id"])

    # Subscriptions
    op.create_table(
        "subscription_plans",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("tier", sa.String(20), nullable=False, server_default="BASIC"),
        sa.Column("lead_discount_percent", sa.Numeric(5, 2), server_default="0"),
        sa.Column("max_leads_per_month", sa.Integer),
        sa.Column("priority_boost_points", sa.Integer, server_default="0"),
    )

    op.create_table(
        "user_subscriptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("plan_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("subscription_plans.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column("current_period_end", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_user_subscriptions_user_status", "user_subscriptions", ["user_id", "status"])

    # Service requests
    op.create_table(
        "service_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("category_id", sa.Integer, nullable=False),
        sa.Column("sub_category_id", sa.Integer),
        sa.Column("zip_code", sa.String(20), nullable=False),
        sa.Column("project_title", sa.String(255), nullable=False),
        sa.Column("project_description", sa.Text, nullable=False),
        sa.Column("preferred_date", sa.String(20)),
        sa.Column("preferred_time", sa.String(50)),
        sa.Column("attachments", postgresql.JSONB, server_default="[]"),
        sa.Column("status", sa.String(30), nullable=False, server_default="OPEN"),
        sa.Column("primary_provider_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("provider_profiles.id")),
        sa.Column("selected_business_ids", postgresql.JSONB, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_service_requests_customer_id", "service_requests", ["customer_id"])
    op.create_index("ix_service_requests_status", "service_requests", ["status"])

    # Leads
    op.create_table(
        "leads",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("service_request_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("service_requests.id")),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id")),
        sa.Column("provider_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("businesses.id")),
        sa.Column("category_id", sa.Integer),
        sa.Column("service_type", sa.String(120)),
        sa.Column("status", sa.String(20), nullable=False, server_default="submitted"),
        sa.Column("stripe_payment_intent_id", sa.String(255)),
        sa.Column("lead_cost", sa.Integer),
        sa.Column("customer_name", sa.String(120)),
        sa.Column("customer_email", sa.String(255)),
        sa.Column("customer_phone", sa.String(50)),
        sa.Column("rejection_reason", sa.String(30)),
        sa.Column("rejection_reason_other", sa.Text),
        sa.Column("metadata", postgresql.JSONB, server_default="{}"),
        sa.Column("routed_at", sa.DateTime(timezone=True)),
        sa.Column("accepted_at", sa.DateTime(timezone=True)),
        sa.Column("rejected_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
    )
    op.create_index("ix_leads_service_request_id", "leads", ["service_request_id"])
    op.create_index("ix_leads_provider_status", "leads", ["provider_id", "status"])
    op.create_index("ix_leads_status", "leads", ["status"])
    op.create_index("ix_leads_payment_intent", "leads", ["stripe_payment_intent_id"])
    # At most one live lead per (request, provider)
    op.create_index(
        "uq_leads_live_request_provider",
        "leads",
        ["service_request_id", "provider_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('submitted', 'routed', 'accepted')"),
    )

    # Proposals
    op.create_table(
        "proposals",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("service_request_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("service_requests.id"), nullable=False),
        sa.Column("provider_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("provider_profiles.id"), nullable=False),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leads.id")),
        sa.Column("details", sa.Text, nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="SENT"),
        sa.Column("stripe_payment_intent_id", sa.String(255)),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("paid_at", sa.DateTime(timezone=True)),
        sa.Column("provider_payout_amount", sa.Numeric(10, 2)),
        sa.Column("platform_fee_amount", sa.Numeric(10, 2)),
        sa.Column("payout_status", sa.String(20)),
        sa.Column("payout_processed_at", sa.DateTime(timezone=True)),
        sa.Column("stripe_transfer_id", sa.String(255)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_proposals_service_request_id", "proposals", ["service_request_id"])
    op.create_index("ix_proposals_provider_payment", "proposals", ["provider_id", "payment_status"])

    # Alternative provider ranking
    op.create_table(
        "alternative_provider_selections",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("service_request_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("service_requests.id"), nullable=False),
        sa.Column("provider_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("provider_profiles.id"), nullable=False),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_alt_selections_request_position",
        "alternative_provider_selections",
        ["service_request_id", "position"],
    )

    # Lead audit trail
    op.create_table(
        "lead_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leads.id")),
        sa.Column("service_request_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("service_requests.id")),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("message", sa.Text),
        sa.Column("data", postgresql.JSONB),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_lead_events_lead_id", "lead_events", ["lead_id"])
    op.create_index("ix_lead_events_action", "lead_events", ["action"])
    op.create_index("ix_lead_events_created_at", "lead_events", ["created_at"])


def downgrade() -> None:
    op.drop_table("lead_events")
    op.drop_table("alternative_provider_selections")
    op.drop_table("proposals")
    op.drop_table("leads")
    op.drop_table("service_requests")
    op.drop_table("user_subscriptions")
    op.drop_table("subscription_plans")
    op.drop_table("businesses")
    op.drop_table("provider_profiles")
    op.drop_table("users")
