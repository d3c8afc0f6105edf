"""Création du schéma de télémétrie.

Rôle (fonctionnel) :
- users / projects / project_members : identités, tenants et rôles par projet.
- devices : registre des appareils, unique sur (project_id, device_id).
- events : événements bruts, index de lecture (project_id, timestamp) et (project_id, event_type, timestamp).
- metrics : buckets agrégés, unique sur la clé d’agrégation (… , dimensions_key).
- metric_definitions, auth_tokens.

Revision ID: 5d2e8c41a7f0
Revises:
Create Date: 2026-01-12
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Identifiants Alembic
revision: str = "5d2e8c41a7f0"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Application des changements de schéma."""
    bind = op.get_bind()
    json_type = postgresql.JSONB() if bind.dialect.name == "postgresql" else sa.JSON()
    ts = sa.DateTime(timezone=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("created_at", ts, nullable=False),
        sa.Column("updated_at", ts, nullable=False),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("api_key", sa.String(length=128), nullable=False, unique=True),
        sa.Column("owner_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("created_at", ts, nullable=False),
        sa.Column("updated_at", ts, nullable=False),
    )
    op.create_index("ix_projects_owner_id", "projects", ["owner_id"])

    op.create_table(
        "project_members",
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("created_at", ts, nullable=False),
        sa.CheckConstraint("role IN ('admin', 'member', 'viewer')", name="ck_project_members_role"),
    )
    op.create_index("ix_project_members_user_id", "project_members", ["user_id"])

    op.create_table(
        "devices",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("device_id", sa.String(length=255), nullable=False),
        sa.Column("platform", sa.String(length=50), nullable=False),
        sa.Column("os_version", sa.String(length=50), nullable=True),
        sa.Column("app_version", sa.String(length=50), nullable=True),
        sa.Column("first_seen", ts, nullable=False),
        sa.Column("last_seen", ts, nullable=False),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("country", sa.String(length=2), nullable=True),
        sa.UniqueConstraint("project_id", "device_id", name="uq_devices_project_device"),
    )
    op.create_index("ix_devices_last_seen", "devices", ["last_seen"])

    op.create_table(
        "events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("device_id", sa.Uuid(), sa.ForeignKey("devices.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_type", sa.String(length=100), nullable=False),
        sa.Column("event_name", sa.String(length=255), nullable=True),
        sa.Column("parameters", json_type, nullable=True),
        sa.Column("timestamp", ts, nullable=False),
        sa.Column("received_at", ts, nullable=False),
    )
    op.create_index("ix_events_device_id", "events", ["device_id"])
    op.create_index("ix_events_project_ts", "events", ["project_id", "timestamp"])
    op.create_index("ix_events_project_type_ts", "events", ["project_id", "event_type", "timestamp"])

    op.create_table(
        "metrics",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("metric_type", sa.String(length=100), nullable=False),
        sa.Column("period", sa.String(length=20), nullable=False),
        sa.Column("period_start", ts, nullable=False),
        sa.Column("dimensions", json_type, nullable=False),
        sa.Column("dimensions_key", sa.Text(), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("created_at", ts, nullable=False),
        sa.Column("updated_at", ts, nullable=False),
        sa.UniqueConstraint(
            "project_id", "metric_type", "period", "period_start", "dimensions_key",
            name="uq_metrics_aggregation_key",
        ),
    )

    op.create_table(
        "metric_definitions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("metric_type", sa.String(length=100), nullable=False),
        sa.Column("period", sa.String(length=20), nullable=False),
        sa.Column("dimensions", json_type, nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", ts, nullable=False),
        sa.Column("updated_at", ts, nullable=False),
        sa.UniqueConstraint("project_id", "name", name="uq_metric_definitions_project_name"),
    )
    op.create_index("ix_metric_definitions_project_id", "metric_definitions", ["project_id"])

    op.create_table(
        "auth_tokens",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("expires_at", ts, nullable=False),
        sa.Column("last_used_at", ts, nullable=True),
        sa.Column("created_at", ts, nullable=False),
    )
    op.create_index("ix_auth_tokens_user_id", "auth_tokens", ["user_id"])


def downgrade() -> None:
    """Retour arrière des changements de schéma."""
    op.drop_index("ix_auth_tokens_user_id", table_name="auth_tokens")
    op.drop_table("auth_tokens")
    op.drop_index("ix_metric_definitions_project_id", table_name="metric_definitions")
    op.drop_table("metric_definitions")
    op.drop_table("metrics")
    op.drop_index("ix_events_project_type_ts", table_name="events")
    op.drop_index("ix_events_project_ts", table_name="events")
    op.drop_index("ix_events_device_id", table_name="events")
    op.drop_table("events")
    op.drop_index("ix_devices_last_seen", table_name="devices")
    op.drop_table("devices")
    op.drop_index("ix_project_members_user_id", table_name="project_members")
    op.drop_table("project_members")
    op.drop_index("ix_projects_owner_id", table_name="projects")
    op.drop_table("projects")
    op.drop_table("users")
