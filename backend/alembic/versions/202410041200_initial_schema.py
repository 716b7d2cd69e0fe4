"""Initial Dreamplan scheduling schema."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "202410041200"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("timezone", sa.Text(), nullable=False, server_default=sa.text("'UTC'")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )

    op.create_table(
        "dreams",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("daily_minutes", sa.Integer(), nullable=True),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_dreams_user_id", "dreams", ["user_id"], unique=False)

    op.create_table(
        "areas",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("dream_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["dream_id"], ["dreams.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_areas_dream_id", "areas", ["dream_id"], unique=False)

    op.create_table(
        "actions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("area_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("dream_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("est_minutes", sa.Integer(), nullable=True),
        sa.Column("difficulty", sa.Text(), nullable=False, server_default=sa.text("'medium'")),
        sa.Column("repeat_every_days", sa.Integer(), nullable=True),
        sa.Column("repeat_until_date", sa.Date(), nullable=True),
        sa.Column("slice_count_target", sa.Integer(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("difficulty IN ('easy', 'medium', 'hard')", name="ck_actions_difficulty"),
        sa.ForeignKeyConstraint(["area_id"], ["areas.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["dream_id"], ["dreams.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_actions_area_id", "actions", ["area_id"], unique=False)
    op.create_index("ix_actions_dream_id", "actions", ["dream_id"], unique=False)
    op.create_index("ix_actions_user_id", "actions", ["user_id"], unique=False)

    op.create_table(
        "action_occurrences",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("action_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("area_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("dream_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("occurrence_no", sa.Integer(), nullable=False),
        sa.Column("planned_due_on", sa.Date(), nullable=False),
        sa.Column("due_on", sa.Date(), nullable=False),
        sa.Column("defer_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["action_id"], ["actions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["area_id"], ["areas.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["dream_id"], ["dreams.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("action_id", "occurrence_no", name="uq_action_occurrences_action_no"),
    )
    op.create_index("ix_action_occurrences_user_due", "action_occurrences", ["user_id", "due_on"], unique=False)
    op.create_index("ix_action_occurrences_dream_id", "action_occurrences", ["dream_id"], unique=False)

    op.create_table(
        "scheduling_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("dream_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("run_type", sa.Text(), nullable=False),
        sa.Column("occurrences_written", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("too_tight", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "payload",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("request_id", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["dream_id"], ["dreams.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_scheduling_log_user_id", "scheduling_log", ["user_id"], unique=False)
    op.create_index("ix_scheduling_log_dream_id", "scheduling_log", ["dream_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_scheduling_log_dream_id", table_name="scheduling_log")
    op.drop_index("ix_scheduling_log_user_id", table_name="scheduling_log")
    op.drop_table("scheduling_log")
    op.drop_index("ix_action_occurrences_dream_id", table_name="action_occurrences")
    op.drop_index("ix_action_occurrences_user_due", table_name="action_occurrences")
    op.drop_table("action_occurrences")
    op.drop_index("ix_actions_user_id", table_name="actions")
    op.drop_index("ix_actions_dream_id", table_name="actions")
    op.drop_index("ix_actions_area_id", table_name="actions")
    op.drop_table("actions")
    op.drop_index("ix_areas_dream_id", table_name="areas")
    op.drop_table("areas")
    op.drop_index("ix_dreams_user_id", table_name="dreams")
    op.drop_table("dreams")
    op.drop_table("users")
