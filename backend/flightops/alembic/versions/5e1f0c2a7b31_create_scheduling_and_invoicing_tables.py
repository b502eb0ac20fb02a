"""Create fleet, scheduling, invoicing and audit tables.

Revision ID: 5e1f0c2a7b31
Revises:
Create Date: 2026-01-05 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "5e1f0c2a7b31"
down_revision = None
branch_labels = None
depends_on = None


BOOKING_STATUSES = (
    "unconfirmed",
    "confirmed",
    "briefing",
    "checkout",
    "flying",
    "checkin",
    "complete",
    "debrief",
    "cancelled",
)
BOOKING_TYPES = ("flight", "groundwork", "maintenance", "other")

# Live bookings only: cancelled rows never hold a resource.
_LIVE_BOOKING = "cancelled_at IS NULL AND status <> 'cancelled'"


def _in_list(column: str, values) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()

    # -------------------------
    # aircraft
    # -------------------------
    op.create_table(
        "aircraft",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("registration", sa.String(length=20), nullable=False),
        sa.Column("aircraft_type", sa.String(length=64), nullable=True),
        sa.Column("model", sa.String(length=64), nullable=True),
        sa.Column("record_hobbs", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("record_tacho", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("record_airswitch", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("display_order", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "registration", name="uq_aircraft_tenant_registration"),
    )
    op.create_index("ix_aircraft_id", "aircraft", ["id"])
    op.create_index("ix_aircraft_tenant_id", "aircraft", ["tenant_id"])
    op.create_index("ix_aircraft_tenant_active", "aircraft", ["tenant_id", "is_active"])

    # -------------------------
    # instructors / roster_rules
    # -------------------------
    op.create_table(
        "instructors",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("first_name", sa.String(length=128), nullable=True),
        sa.Column("last_name", sa.String(length=128), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_instructors_id", "instructors", ["id"])
    op.create_index("ix_instructors_tenant_id", "instructors", ["tenant_id"])
    op.create_index("ix_instructors_user_id", "instructors", ["user_id"])
    op.create_index("ix_instructors_tenant_active", "instructors", ["tenant_id", "is_active"])

    op.create_table(
        "roster_rules",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column(
            "instructor_id",
            sa.String(length=36),
            sa.ForeignKey("instructors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("effective_from", sa.Date(), nullable=False),
        sa.Column("effective_until", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_roster_rules_day_of_week"),
        sa.CheckConstraint("end_time > start_time", name="ck_roster_rules_window"),
        sa.CheckConstraint(
            "effective_until IS NULL OR effective_until >= effective_from",
            name="ck_roster_rules_effective_range",
        ),
    )
    op.create_index("ix_roster_rules_id", "roster_rules", ["id"])
    op.create_index("ix_roster_rules_tenant_id", "roster_rules", ["tenant_id"])
    op.create_index("ix_roster_rules_tenant_day", "roster_rules", ["tenant_id", "day_of_week", "is_active"])
    op.create_index("ix_roster_rules_instructor", "roster_rules", ["tenant_id", "instructor_id"])

    # -------------------------
    # bookings
    # -------------------------
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column(
            "aircraft_id",
            sa.String(length=36),
            sa.ForeignKey("aircraft.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "instructor_id",
            sa.String(length=36),
            sa.ForeignKey("instructors.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="unconfirmed"),
        sa.Column("booking_type", sa.String(length=32), nullable=False, server_default="flight"),
        sa.Column("purpose", sa.String(length=1000), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(length=36), nullable=True),
        sa.Column("cancellation_category_id", sa.String(length=36), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=500), nullable=True),
        sa.Column("cancelled_notes", sa.Text(), nullable=True),
        sa.Column(
            "checked_out_aircraft_id",
            sa.String(length=36),
            sa.ForeignKey("aircraft.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "checked_out_instructor_id",
            sa.String(length=36),
            sa.ForeignKey("instructors.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("eta", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fuel_on_board", sa.Integer(), nullable=True),
        sa.Column("route", sa.String(length=500), nullable=True),
        sa.Column("passengers", sa.String(length=500), nullable=True),
        sa.Column("hobbs_start", sa.Numeric(10, 2), nullable=True),
        sa.Column("hobbs_end", sa.Numeric(10, 2), nullable=True),
        sa.Column("tach_start", sa.Numeric(10, 2), nullable=True),
        sa.Column("tach_end", sa.Numeric(10, 2), nullable=True),
        sa.Column("airswitch_start", sa.Numeric(10, 2), nullable=True),
        sa.Column("airswitch_end", sa.Numeric(10, 2), nullable=True),
        sa.Column("flight_time_hobbs", sa.Numeric(8, 1), nullable=True),
        sa.Column("flight_time_tach", sa.Numeric(8, 1), nullable=True),
        sa.Column("flight_time_airswitch", sa.Numeric(8, 1), nullable=True),
        sa.Column("flight_time", sa.Numeric(8, 1), nullable=True),
        sa.Column("dual_time", sa.Numeric(8, 1), nullable=True),
        sa.Column("solo_time", sa.Numeric(8, 1), nullable=True),
        sa.Column("billing_basis", sa.String(length=16), nullable=True),
        sa.Column("billing_hours", sa.Numeric(8, 1), nullable=True),
        sa.Column("checkin_invoice_id", sa.String(length=36), nullable=True),
        sa.Column("checkin_approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checkin_approved_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("end_time > start_time", name="ck_bookings_time_order"),
        sa.CheckConstraint(_in_list("status", BOOKING_STATUSES), name="ck_bookings_status"),
        sa.CheckConstraint(_in_list("booking_type", BOOKING_TYPES), name="ck_bookings_type"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_tenant_id", "bookings", ["tenant_id"])
    op.create_index("ix_bookings_tenant_window", "bookings", ["tenant_id", "start_time", "end_time"])
    op.create_index("ix_bookings_aircraft_window", "bookings", ["aircraft_id", "start_time"])
    op.create_index("ix_bookings_instructor_window", "bookings", ["instructor_id", "start_time"])
    op.create_index("ix_bookings_user", "bookings", ["tenant_id", "user_id"])

    if bind.dialect.name == "postgresql":
        # btree_gist lets the exclusion constraints mix = on ids with && on ranges.
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            f"""
            ALTER TABLE bookings
            ADD CONSTRAINT ex_bookings_aircraft_overlap
            EXCLUDE USING gist (
                aircraft_id WITH =,
                tstzrange(start_time, end_time, '[)') WITH &&
            )
            WHERE ({_LIVE_BOOKING})
            """
        )
        op.execute(
            f"""
            ALTER TABLE bookings
            ADD CONSTRAINT ex_bookings_instructor_overlap
            EXCLUDE USING gist (
                instructor_id WITH =,
                tstzrange(start_time, end_time, '[)') WITH &&
            )
            WHERE (instructor_id IS NOT NULL AND {_LIVE_BOOKING})
            """
        )

    # -------------------------
    # invoices / invoice_items / invoice_payments
    # -------------------------
    op.create_table(
        "invoices",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("invoice_number", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column(
            "booking_id",
            sa.String(length=36),
            sa.ForeignKey("bookings.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", sa.String(length=9), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("paid_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reference", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tax_rate", sa.Numeric(6, 4), nullable=False, server_default="0"),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("tax_total", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_paid", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("balance_due", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("payment_method", sa.String(length=14), nullable=True),
        sa.Column("payment_reference", sa.String(length=255), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("tenant_id", "invoice_number", name="uq_invoices_tenant_number"),
    )
    op.create_index("ix_invoices_id", "invoices", ["id"])
    op.create_index("ix_invoices_tenant_id", "invoices", ["tenant_id"])
    op.create_index("ix_invoices_invoice_number", "invoices", ["invoice_number"])
    op.create_index("ix_invoices_booking_id", "invoices", ["booking_id"])
    op.create_index("ix_invoices_tenant_status", "invoices", ["tenant_id", "status"])
    op.create_index("ix_invoices_tenant_user", "invoices", ["tenant_id", "user_id"])

    op.create_table(
        "invoice_items",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column(
            "invoice_id",
            sa.String(length=36),
            sa.ForeignKey("invoices.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("chargeable_id", sa.String(length=36), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 3), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("tax_rate", sa.Numeric(6, 4), nullable=False, server_default="0"),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("rate_inclusive", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("line_total", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.String(length=36), nullable=True),
    )
    op.create_index("ix_invoice_items_id", "invoice_items", ["id"])
    op.create_index("ix_invoice_items_tenant_id", "invoice_items", ["tenant_id"])
    op.create_index("ix_invoice_items_invoice", "invoice_items", ["invoice_id"])

    op.create_table(
        "invoice_payments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column(
            "invoice_id",
            sa.String(length=36),
            sa.ForeignKey("invoices.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_method", sa.String(length=14), nullable=False),
        sa.Column("payment_reference", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_invoice_payments_id", "invoice_payments", ["id"])
    op.create_index("ix_invoice_payments_tenant_id", "invoice_payments", ["tenant_id"])
    op.create_index("ix_invoice_payments_invoice", "invoice_payments", ["invoice_id"])

    # -------------------------
    # audit_events
    # -------------------------
    op.create_table(
        "audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("actor_user_id", sa.String(length=36), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    for column in ("id", "tenant_id", "entity_type", "entity_id", "action", "actor_user_id", "occurred_at", "correlation_id"):
        op.create_index(f"ix_audit_events_{column}", "audit_events", [column])
    op.create_index("ix_audit_events_tenant_entity", "audit_events", ["tenant_id", "entity_type", "entity_id"])
    op.create_index("ix_audit_events_tenant_action", "audit_events", ["tenant_id", "action"])
    op.create_index(
        "ix_audit_events_tenant_time_desc",
        "audit_events",
        ["tenant_id", sa.text("occurred_at DESC")],
    )


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("invoice_payments")
    op.drop_table("invoice_items")
    op.drop_table("invoices")
    op.drop_table("bookings")
    op.drop_table("roster_rules")
    op.drop_table("instructors")
    op.drop_table("aircraft")
    # btree_gist stays installed.
