"""create_custody_tables

Create the key registry, assignment ledger, delegation and transaction log
tables. Two partial unique indexes carry the custody invariants:
- one outstanding (pending, active, overdue) assignment per key
- one active delegation per (key, delegator, delegate)

Revision ID: 3c1f0a9d7b21
Revises:
Create Date: 2026-10-18 09:12:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "3c1f0a9d7b21"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "keys",
        sa.Column("id", sa.String(length=26), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("lab_name", sa.String(length=255), nullable=False),
        sa.Column("lab_number", sa.String(length=64), nullable=False),
        sa.Column("department", sa.String(length=255), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("requires_approval", sa.Boolean(), nullable=False),
        sa.Column("max_assignment_duration_hours", sa.Integer(), nullable=False),
        sa.Column("current_status", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("total_assignments", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_keys"),
    )
    op.create_index("ix_keys_department", "keys", ["department"], unique=False)

    op.create_table(
        "key_assignments",
        sa.Column("id", sa.String(length=26), nullable=False),
        sa.Column("key_id", sa.String(length=26), nullable=False),
        sa.Column("holder_id", sa.String(length=255), nullable=False),
        sa.Column("grantor_id", sa.String(length=255), nullable=False),
        sa.Column("assigned_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("access_type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("request_reason", sa.Text(), nullable=True),
        sa.Column("approval_required", sa.Boolean(), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.String(length=255), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_by", sa.String(length=255), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("collected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("collected_by", sa.String(length=255), nullable=True),
        sa.Column("returned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("returned_by", sa.String(length=255), nullable=True),
        sa.Column("return_reason", sa.Text(), nullable=True),
        sa.Column("actual_duration_hours", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(length=255), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("reminders_sent", sa.Integer(), nullable=False),
        sa.Column("last_reminder_sent", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["key_id"],
            ["keys.id"],
            name="fk_key_assignments_key_id_keys",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_key_assignments"),
    )
    op.create_index(
        "ix_key_assignments_key_id", "key_assignments", ["key_id"], unique=False
    )
    op.create_index(
        "ix_key_assignments_holder_id", "key_assignments", ["holder_id"], unique=False
    )
    op.create_index(
        "idx_key_assignments_status_due",
        "key_assignments",
        ["status", "due_date"],
        unique=False,
    )
    # At most one outstanding assignment per key; request inserts race on it
    op.create_index(
        "uq_key_assignments_outstanding_key",
        "key_assignments",
        ["key_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'active', 'overdue')"),
    )

    op.create_table(
        "key_delegations",
        sa.Column("id", sa.String(length=26), nullable=False),
        sa.Column("key_id", sa.String(length=26), nullable=False),
        sa.Column("assignment_id", sa.String(length=26), nullable=False),
        sa.Column("delegator_id", sa.String(length=255), nullable=False),
        sa.Column("delegate_id", sa.String(length=255), nullable=False),
        sa.Column("shared_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("can_collect", sa.Boolean(), nullable=False),
        sa.Column("can_return", sa.Boolean(), nullable=False),
        sa.Column("can_delegate", sa.Boolean(), nullable=False),
        sa.Column("access_count", sa.Integer(), nullable=False),
        sa.Column("last_accessed", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_by", sa.String(length=255), nullable=True),
        sa.Column("revocation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(length=255), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("parent_id", sa.String(length=26), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["key_id"],
            ["keys.id"],
            name="fk_key_delegations_key_id_keys",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["assignment_id"],
            ["key_assignments.id"],
            name="fk_key_delegations_assignment_id_key_assignments",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["parent_id"],
            ["key_delegations.id"],
            name="fk_key_delegations_parent_id_key_delegations",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_key_delegations"),
    )
    op.create_index(
        "ix_key_delegations_key_id", "key_delegations", ["key_id"], unique=False
    )
    op.create_index(
        "ix_key_delegations_assignment_id",
        "key_delegations",
        ["assignment_id"],
        unique=False,
    )
    op.create_index(
        "ix_key_delegations_delegator_id",
        "key_delegations",
        ["delegator_id"],
        unique=False,
    )
    op.create_index(
        "ix_key_delegations_delegate_id",
        "key_delegations",
        ["delegate_id"],
        unique=False,
    )
    op.create_index(
        "idx_key_delegations_status_expiry",
        "key_delegations",
        ["status", "expires_at"],
        unique=False,
    )
    # One active grant between the same two principals for a key
    op.create_index(
        "uq_key_delegations_active_pair",
        "key_delegations",
        ["key_id", "delegator_id", "delegate_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "key_transactions",
        sa.Column("id", sa.String(length=26), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("key_id", sa.String(length=26), nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("verifier_id", sa.String(length=255), nullable=True),
        sa.Column("assignment_id", sa.String(length=26), nullable=True),
        sa.Column("delegation_id", sa.String(length=26), nullable=True),
        sa.Column("delegate_id", sa.String(length=255), nullable=True),
        sa.Column("details", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.ForeignKeyConstraint(
            ["key_id"],
            ["keys.id"],
            name="fk_key_transactions_key_id_keys",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_key_transactions"),
    )
    op.create_index(
        "ix_key_transactions_actor_id", "key_transactions", ["actor_id"], unique=False
    )
    op.create_index(
        "ix_key_transactions_assignment_id",
        "key_transactions",
        ["assignment_id"],
        unique=False,
    )
    op.create_index(
        "idx_key_transactions_key_occurred",
        "key_transactions",
        ["key_id", "occurred_at"],
        unique=False,
    )
    op.create_index(
        "idx_key_transactions_occurred",
        "key_transactions",
        ["occurred_at"],
        unique=False,
    )
    # Retry queue for reminders whose delivery failed
    op.create_index(
        "idx_key_transactions_failed_reminders",
        "key_transactions",
        ["occurred_at"],
        unique=False,
        postgresql_where=sa.text("type = 'overdue_reminder' AND status = 'failed'"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("idx_key_transactions_failed_reminders", table_name="key_transactions")
    op.drop_index("idx_key_transactions_occurred", table_name="key_transactions")
    op.drop_index("idx_key_transactions_key_occurred", table_name="key_transactions")
    op.drop_index("ix_key_transactions_assignment_id", table_name="key_transactions")
    op.drop_index("ix_key_transactions_actor_id", table_name="key_transactions")
    op.drop_table("key_transactions")

    op.drop_index("uq_key_delegations_active_pair", table_name="key_delegations")
    op.drop_index("idx_key_delegations_status_expiry", table_name="key_delegations")
    op.drop_index("ix_key_delegations_delegate_id", table_name="key_delegations")
    op.drop_index("ix_key_delegations_delegator_id", table_name="key_delegations")
    op.drop_index("ix_key_delegations_assignment_id", table_name="key_delegations")
    op.drop_index("ix_key_delegations_key_id", table_name="key_delegations")
    op.drop_table("key_delegations")

    op.drop_index("uq_key_assignments_outstanding_key", table_name="key_assignments")
    op.drop_index("idx_key_assignments_status_due", table_name="key_assignments")
    op.drop_index("ix_key_assignments_holder_id", table_name="key_assignments")
    op.drop_index("ix_key_assignments_key_id", table_name="key_assignments")
    op.drop_table("key_assignments")

    op.drop_index("ix_keys_department", table_name="keys")
    op.drop_table("keys")
