# backend/alembic/versions/001_reservation_core.py
"""Reservation engine core tables

Revision ID: 001_reservation_core
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001_reservation_core"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json_type(is_postgres: bool) -> sa.types.TypeEngine:
    return JSONB(astext_type=sa.Text()) if is_postgres else sa.JSON()


def _create_extension_prefer_extensions_schema(extension_name: str) -> None:
    """Create extension using extensions schema when available."""

    bind = op.get_bind()
    if bind is None or bind.dialect.name != "postgresql":
        return

    op.execute(
        f"""
        DO $$
        DECLARE
            extensions_schema_exists BOOLEAN;
            extension_installed BOOLEAN;
        BEGIN
            SELECT EXISTS (
                SELECT 1 FROM pg_namespace WHERE nspname = 'extensions'
            ) INTO extensions_schema_exists;

            SELECT EXISTS (
                SELECT 1 FROM pg_extension WHERE extname = '{extension_name}'
            ) INTO extension_installed;

            IF NOT extension_installed THEN
                IF extensions_schema_exists THEN
                    EXECUTE 'CREATE EXTENSION IF NOT EXISTS {extension_name} WITH SCHEMA extensions';
                ELSE
                    EXECUTE 'CREATE EXTENSION IF NOT EXISTS {extension_name}';
                END IF;
            END IF;
        END
        $$;
        """
    )


def upgrade() -> None:
    """Create reservation, slot lock, availability and outbox tables."""
    bind = op.get_bind()
    is_postgres = bind is not None and bind.dialect.name == "postgresql"
    json_type = _json_type(is_postgres)

    op.create_table(
        "reservations",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="confirmed"),
        sa.Column("staff_id", sa.String(64), nullable=True),
        sa.Column("location_id", sa.String(64), nullable=True),
        sa.Column("service_id", sa.String(64), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("customer_phone", sa.String(50), nullable=True),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("source", sa.String(30), nullable=False, server_default="internal"),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("start_at < end_at", name="ck_reservations_time_order"),
        sa.CheckConstraint(
            "status IN ('pending','confirmed','cancelled','completed')",
            name="ck_reservations_status",
        ),
    )
    op.create_index("ix_reservations_tenant_id", "reservations", ["tenant_id"])
    op.create_index("ix_reservations_status", "reservations", ["status"])
    op.create_index("ix_reservations_staff_id", "reservations", ["staff_id"])
    op.create_index("ix_reservations_location_id", "reservations", ["location_id"])
    op.create_index(
        "idx_reservations_tenant_window", "reservations", ["tenant_id", "start_at", "end_at"]
    )
    op.create_index("idx_reservations_tenant_staff", "reservations", ["tenant_id", "staff_id"])

    if is_postgres:
        # Storage-level guarantee: no two active reservations overlap on one resource
        _create_extension_prefer_extensions_schema("btree_gist")
        op.execute(
            """
            ALTER TABLE reservations
              ADD CONSTRAINT reservations_no_overlap_per_staff
              EXCLUDE USING gist (
                tenant_id WITH =,
                staff_id WITH =,
                tstzrange(start_at, end_at, '[)') WITH &&
              )
              WHERE (staff_id IS NOT NULL AND status IN ('pending','confirmed'))
            """
        )
        op.execute(
            """
            ALTER TABLE reservations
              ADD CONSTRAINT reservations_no_overlap_per_location
              EXCLUDE USING gist (
                tenant_id WITH =,
                location_id WITH =,
                tstzrange(start_at, end_at, '[)') WITH &&
              )
              WHERE (location_id IS NOT NULL AND status IN ('pending','confirmed'))
            """
        )

    op.create_table(
        "reservation_logs",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("reservation_id", sa.String(26), sa.ForeignKey("reservations.id"), nullable=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("actor_role", sa.String(30), nullable=True),
        sa.Column("notes", json_type, nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("ix_reservation_logs_reservation_id", "reservation_logs", ["reservation_id"])
    op.create_index("ix_reservation_logs_tenant_id", "reservation_logs", ["tenant_id"])

    op.create_table(
        "reservation_reminders",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column(
            "reservation_id", sa.String(26), sa.ForeignKey("reservations.id"), nullable=False
        ),
        sa.Column("remind_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("method", sa.String(30), nullable=False, server_default="whatsapp"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("reason", sa.String(20), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("ix_reservation_reminders_tenant_id", "reservation_reminders", ["tenant_id"])
    op.create_index(
        "ix_reservation_reminders_reservation_id", "reservation_reminders", ["reservation_id"]
    )
    op.create_index("ix_reservation_reminders_remind_at", "reservation_reminders", ["remind_at"])

    op.create_table(
        "reservation_services",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "reservation_id", sa.String(26), sa.ForeignKey("reservations.id"), nullable=False
        ),
        sa.Column("service_id", sa.String(64), nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index(
        "ix_reservation_services_reservation_id", "reservation_services", ["reservation_id"]
    )

    op.create_table(
        "slot_locks",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("slot_key", sa.String(64), nullable=False),
        sa.Column("resource_id", sa.String(64), nullable=True),
        sa.Column("session_id", sa.String(128), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("tenant_id", "slot_key", name="uq_slot_locks_tenant_slot_key"),
    )
    op.create_index("idx_slot_locks_expires_at", "slot_locks", ["expires_at"])

    op.create_table(
        "staff_availability",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("staff_id", sa.String(64), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("break_start", sa.Time(), nullable=True),
        sa.Column("break_end", sa.Time(), nullable=True),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "tenant_id", "staff_id", "day_of_week", name="uq_staff_availability_staff_day"
        ),
        sa.CheckConstraint(
            "day_of_week >= 0 AND day_of_week <= 6", name="ck_staff_availability_day"
        ),
        sa.CheckConstraint("start_time < end_time", name="ck_staff_availability_window"),
        sa.CheckConstraint(
            "(break_start IS NULL AND break_end IS NULL) OR "
            "(break_start IS NOT NULL AND break_end IS NOT NULL "
            "AND break_start >= start_time AND break_start < break_end "
            "AND break_end <= end_time)",
            name="ck_staff_availability_break_within_window",
        ),
    )
    op.create_index(
        "idx_staff_availability_tenant_staff", "staff_availability", ["tenant_id", "staff_id"]
    )

    op.create_table(
        "background_jobs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("payload", json_type, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="queued"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("available_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("ix_background_jobs_id", "background_jobs", ["id"])


def downgrade() -> None:
    """Drop reservation engine tables."""
    op.drop_table("background_jobs")
    op.drop_table("staff_availability")
    op.drop_table("slot_locks")
    op.drop_table("reservation_services")
    op.drop_table("reservation_reminders")
    op.drop_table("reservation_logs")
    op.drop_table("reservations")
