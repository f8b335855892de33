"""create admin, lead, analytics and exclusion tables

Revision ID: 4f1a9c2e7b30
Revises: 
Create Date: 2026-10-19 09:12:44.120391

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '4f1a9c2e7b30'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "admin_users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("role", sa.Enum("OWNER", "ADMIN", "VIEWER", name="adminrole"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_admin_users_email", "admin_users", ["email"], unique=True)
    op.create_index("ix_admin_users_created_at", "admin_users", ["created_at"])

    op.create_table(
        "leads",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("lead_kind", sa.Enum("VENDOR", "SPONSOR", "VOLUNTEER", "SUBSCRIBER", name="leadkind"), nullable=False),
        sa.Column("business_name", sa.String(255), nullable=True),
        sa.Column("contact_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("website", sa.String(2048), nullable=True),
        sa.Column("source_path", sa.String(500), nullable=True),
        sa.Column("social_links", sa.Text(), nullable=True),
        sa.Column("tags", sa.Text(), nullable=True),
        sa.Column("meta", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_leads_lead_kind", "leads", ["lead_kind"])
    op.create_index("ix_leads_email", "leads", ["email"])
    op.create_index("ix_leads_created_at", "leads", ["created_at"])

    op.create_table(
        "analytics_visitors",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("anon_id", sa.String(128), nullable=False),
        sa.Column("first_seen_at", sa.DateTime(), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(), nullable=False),
        sa.Column("has_lead", sa.Boolean(), nullable=False),
        sa.Column("first_referrer", sa.String(2048), nullable=True),
        sa.Column("last_referrer", sa.String(2048), nullable=True),
        sa.Column("first_utm_source", sa.String(255), nullable=True),
        sa.Column("last_utm_source", sa.String(255), nullable=True),
        sa.Column("device_category", sa.String(50), nullable=True),
        sa.Column("browser_name", sa.String(100), nullable=True),
        sa.Column("os_name", sa.String(100), nullable=True),
        sa.Column("geo_country", sa.String(100), nullable=True),
        sa.Column("geo_city", sa.String(100), nullable=True),
    )
    op.create_index("ix_analytics_visitors_anon_id", "analytics_visitors", ["anon_id"], unique=True)
    op.create_index("ix_analytics_visitors_first_seen_at", "analytics_visitors", ["first_seen_at"])

    op.create_table(
        "analytics_sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("visitor_id", sa.Uuid(), sa.ForeignKey("analytics_visitors.id"), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("pageviews", sa.Integer(), nullable=False),
        sa.Column("events", sa.Integer(), nullable=False),
        sa.Column("landing_page", sa.String(2048), nullable=False),
        sa.Column("referrer", sa.String(2048), nullable=True),
        sa.Column("device_category", sa.String(50), nullable=False),
        sa.Column("browser_name", sa.String(100), nullable=False),
        sa.Column("os_name", sa.String(100), nullable=False),
        sa.Column("geo_country", sa.String(100), nullable=True),
        sa.Column("geo_city", sa.String(100), nullable=True),
        sa.Column("utm_source", sa.String(255), nullable=True),
        sa.Column("utm_medium", sa.String(255), nullable=True),
        sa.Column("utm_campaign", sa.String(255), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
    )
    op.create_index("ix_analytics_sessions_visitor_id", "analytics_sessions", ["visitor_id"])
    op.create_index("ix_analytics_sessions_started_at", "analytics_sessions", ["started_at"])

    op.create_table(
        "analytics_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("session_id", sa.Uuid(), sa.ForeignKey("analytics_sessions.id"), nullable=False),
        sa.Column("visitor_id", sa.Uuid(), sa.ForeignKey("analytics_visitors.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("label", sa.String(255), nullable=False),
        sa.Column("is_conversion", sa.Boolean(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_analytics_events_session_id", "analytics_events", ["session_id"])
    op.create_index("ix_analytics_events_visitor_id", "analytics_events", ["visitor_id"])
    op.create_index("ix_analytics_events_name", "analytics_events", ["name"])
    op.create_index("ix_analytics_events_occurred_at", "analytics_events", ["occurred_at"])

    op.create_table(
        "excluded_users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("session_id", sa.String(64), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("anon_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(500), nullable=False),
        sa.Column("excluded_by", sa.String(100), nullable=False),
        sa.Column("excluded_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_excluded_users_user_id", "excluded_users", ["user_id"])
    op.create_index("ix_excluded_users_anon_id", "excluded_users", ["anon_id"])


def downgrade() -> None:
    op.drop_table("excluded_users")
    op.drop_table("analytics_events")
    op.drop_table("analytics_sessions")
    op.drop_table("analytics_visitors")
    op.drop_table("leads")
    op.drop_table("admin_users")
    sa.Enum(name="leadkind").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="adminrole").drop(op.get_bind(), checkfirst=True)
