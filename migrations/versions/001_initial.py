"""Create family_contacts, escalation_alerts and medication_logs tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # Create enum type using raw SQL to avoid checkfirst issues with asyncpg
    op.execute(sa.text(
        "DO $$ BEGIN "
        "CREATE TYPE intakestatus AS ENUM ('taken', 'missed', 'skipped'); "
        "EXCEPTION WHEN duplicate_object THEN NULL; "
        "END $$"
    ))

    op.create_table(
        "family_contacts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("patient_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("relationship", sa.String(32), nullable=False, server_default="other"),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column(
            "is_emergency_contact",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("timezone", sa.String(64), nullable=True),
        sa.Column("notification_preferences", postgresql.JSONB(), nullable=True),
        *timestamps(),
    )
    op.create_index("ix_family_contacts_patient_id", "family_contacts", ["patient_id"])

    op.create_table(
        "escalation_alerts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("patient_id", sa.String(64), nullable=False),
        sa.Column("medication_id", sa.String(64), nullable=False),
        sa.Column("medication_name", sa.String(200), nullable=False),
        sa.Column("alert_type", sa.String(32), nullable=False, server_default="missed_dose"),
        sa.Column("severity", sa.String(16), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("escalation_level", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_escalation_alerts_patient_id", "escalation_alerts", ["patient_id"])
    op.create_index(
        "ix_escalation_alerts_medication_id", "escalation_alerts", ["medication_id"]
    )

    op.create_table(
        "medication_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("medication_id", sa.String(64), nullable=False),
        sa.Column("time_slot", sa.String(5), nullable=False),
        sa.Column("dose_date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM(name="intakestatus", create_type=False),
            nullable=False,
        ),
        sa.Column("taken_at", sa.DateTime(timezone=True), nullable=True),
        *timestamps(),
    )
    op.create_index("ix_medication_logs_medication_id", "medication_logs", ["medication_id"])
    # Intake lookups filter on the dose: medication, day and slot
    op.create_index(
        "ix_medication_logs_dose",
        "medication_logs",
        ["medication_id", "dose_date", "time_slot"],
    )


def downgrade() -> None:
    op.drop_index("ix_medication_logs_dose")
    op.drop_index("ix_medication_logs_medication_id")
    op.drop_table("medication_logs")
    op.drop_index("ix_escalation_alerts_medication_id")
    op.drop_index("ix_escalation_alerts_patient_id")
    op.drop_table("escalation_alerts")
    op.drop_index("ix_family_contacts_patient_id")
    op.drop_table("family_contacts")
    op.execute("DROP TYPE IF EXISTS intakestatus")
