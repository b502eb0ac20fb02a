"""add aircraft time in service tracking

Revision ID: 8a3c6d1f2e47
Revises: 5e1f0c2a7b31
Create Date: 2026-02-02 00:00:00.000000
"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "8a3c6d1f2e47"
down_revision: Union[str, Sequence[str], None] = "5e1f0c2a7b31"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_BOOKING_COLUMNS = (
    ("total_hours_start", sa.Numeric(12, 4)),
    ("total_hours_end", sa.Numeric(12, 4)),
    ("applied_aircraft_delta", sa.Numeric(12, 4)),
    ("applied_total_time_method", sa.String(length=32)),
    ("correction_delta", sa.Numeric(12, 4)),
    ("corrected_at", sa.DateTime(timezone=True)),
    ("corrected_by", sa.String(length=36)),
    ("correction_reason", sa.String(length=1000)),
)


def upgrade() -> None:
    bind = op.get_bind()

    op.add_column(
        "aircraft",
        sa.Column(
            "total_time_in_service",
            sa.Numeric(12, 4),
            nullable=False,
            server_default="0",
        ),
    )
    op.add_column(
        "aircraft",
        sa.Column("total_time_method", sa.String(length=32), nullable=True),
    )
    for name, type_ in _BOOKING_COLUMNS:
        op.add_column("bookings", sa.Column(name, type_, nullable=True))

    if bind.dialect.name == "postgresql":
        op.create_check_constraint(
            "ck_aircraft_ttis_non_negative",
            "aircraft",
            "total_time_in_service >= 0",
        )


def downgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.drop_constraint("ck_aircraft_ttis_non_negative", "aircraft", type_="check")

    for name, _ in reversed(_BOOKING_COLUMNS):
        op.drop_column("bookings", name)
    op.drop_column("aircraft", "total_time_method")
    op.drop_column("aircraft", "total_time_in_service")
