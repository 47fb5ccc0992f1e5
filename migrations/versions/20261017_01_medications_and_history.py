"""medications and medication_history tables

Revision ID: 20261017_01
Revises: None
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261017_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "medications",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("profile_id", sa.BigInteger(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("photo_uri", sa.String(), nullable=True),
        sa.Column("dosage", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("reminder_times_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        "medication_history",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("profile_id", sa.BigInteger(), nullable=False, server_default="1"),
        sa.Column("medication_id", sa.BigInteger(), nullable=False),
        sa.Column("medication_name", sa.String(), nullable=False),
        sa.Column("scheduled_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("taken_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("was_on_time", sa.Boolean(), nullable=False),
        sa.Column("action", sa.String(length=16), nullable=False, server_default="TAKEN"),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_index("ix_medication_history_medication_id", "medication_history", ["medication_id"])
    op.create_index("ix_medication_history_scheduled_time", "medication_history", ["scheduled_time"])


def downgrade() -> None:
    op.drop_index("ix_medication_history_scheduled_time", table_name="medication_history")
    op.drop_index("ix_medication_history_medication_id", table_name="medication_history")
    op.drop_table("medication_history")
    op.drop_table("medications")
