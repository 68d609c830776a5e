"""baseline CRM schema

Revision ID: a1c0f3e2b9d4
Revises:
Create Date: 2026-10-17

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "a1c0f3e2b9d4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=False),
        nullable=False,
        server_default=sa.func.current_timestamp(),
    )


def upgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)
    existing_tables = set(insp.get_table_names())

    def _has_index(table: str, name: str) -> bool:
        try:
            return any(ix.get("name") == name for ix in inspect(op.get_bind()).get_indexes(table))
        except Exception:
            return False

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("username", sa.String(150), nullable=False),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("full_name", sa.String(255), nullable=False),
            sa.Column("role", sa.String(32), nullable=False, server_default="staff"),
            _created_at(),
            sa.UniqueConstraint("username", name="uq_users_username"),
        )

    if "customers" not in existing_tables:
        op.create_table(
            "customers",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("phone", sa.String(64), nullable=False),
            sa.Column("email", sa.String(320), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            _created_at(),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=False),
                nullable=False,
                server_default=sa.func.current_timestamp(),
            ),
            sa.UniqueConstraint("phone", name="uq_customers_phone"),
        )

    if "contacts" not in existing_tables:
        op.create_table(
            "contacts",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("customer_id", sa.Integer(), nullable=False),
            sa.Column("contact_name", sa.String(255), nullable=False),
            sa.Column("position", sa.String(255), nullable=True),
            sa.Column("phone", sa.String(64), nullable=True),
            sa.Column("email", sa.String(320), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            _created_at(),
            sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        )

    if "opportunities" not in existing_tables:
        op.create_table(
            "opportunities",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("customer_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("value", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("stage", sa.String(32), nullable=False, server_default="prospecting"),
            sa.Column("probability", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("expected_close_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="active"),
            sa.Column("notes", sa.Text(), nullable=True),
            _created_at(),
            sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        )

    if "activities" not in existing_tables:
        op.create_table(
            "activities",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("customer_id", sa.Integer(), nullable=True),
            sa.Column("opportunity_id", sa.Integer(), nullable=True),
            sa.Column("type", sa.String(32), nullable=False),
            sa.Column("subject", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
            sa.Column("priority", sa.String(16), nullable=False, server_default="medium"),
            sa.Column("assigned_to", sa.Integer(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            _created_at(),
            sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
            sa.ForeignKeyConstraint(["opportunity_id"], ["opportunities.id"]),
            sa.ForeignKeyConstraint(["assigned_to"], ["users.id"]),
        )

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            _created_at(),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("actor_username", sa.String(150), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
        )

    if "app_settings" not in existing_tables:
        op.create_table(
            "app_settings",
            sa.Column("key", sa.String(128), primary_key=True, nullable=False),
            sa.Column("value_json", sa.Text(), nullable=False),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=False),
                nullable=False,
                server_default=sa.func.current_timestamp(),
            ),
            sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["updated_by_user_id"], ["users.id"], ondelete="SET NULL"),
        )

    for table, idx_name, cols in (
        ("customers", "idx_customers_name", ["name"]),
        ("customers", "idx_customers_created_at", ["created_at"]),
        ("contacts", "idx_contacts_customer_id", ["customer_id"]),
        ("opportunities", "idx_opportunities_customer_id", ["customer_id"]),
        ("opportunities", "idx_opportunities_stage", ["stage"]),
        ("activities", "idx_activities_due_date", ["due_date"]),
        ("activities", "idx_activities_customer_id", ["customer_id"]),
        ("activities", "idx_activities_opportunity_id", ["opportunity_id"]),
        ("audit_events", "idx_audit_events_entity", ["entity_type", "entity_id"]),
    ):
        if not _has_index(table, idx_name):
            op.create_index(idx_name, table, cols)


def downgrade() -> None:
    op.drop_index("idx_audit_events_entity", table_name="audit_events")
    op.drop_index("idx_activities_opportunity_id", table_name="activities")
    op.drop_index("idx_activities_customer_id", table_name="activities")
    op.drop_index("idx_activities_due_date", table_name="activities")
    op.drop_index("idx_opportunities_stage", table_name="opportunities")
    op.drop_index("idx_opportunities_customer_id", table_name="opportunities")
    op.drop_index("idx_contacts_customer_id", table_name="contacts")
    op.drop_index("idx_customers_created_at", table_name="customers")
    op.drop_index("idx_customers_name", table_name="customers")
    op.drop_table("app_settings")
    op.drop_table("audit_events")
    op.drop_table("activities")
    op.drop_table("opportunities")
    op.drop_table("contacts")
    op.drop_table("customers")
    op.drop_table("users")
