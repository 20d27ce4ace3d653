"""Exclusion constraint against overlapping bookings of one vehicle.

The availability check under the vehicle row lock is the first layer; this
constraint keeps the table consistent when writes bypass the lifecycle.

Revision ID: 002_no_vehicle_overlap
Revises: 001_initial_schema
Create Date: 2026-10-19
"""

from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "002_no_vehicle_overlap"
down_revision = "001_initial_schema"
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parents[1] / "sql" / "002_no_vehicle_overlap.sql"


def upgrade() -> None:
    op.execute(_SQL_FILE.read_text(encoding="utf-8"))


def downgrade() -> None:
    op.execute(
        "ALTER TABLE reservations DROP CONSTRAINT IF EXISTS reservations_no_vehicle_overlap"
    )
