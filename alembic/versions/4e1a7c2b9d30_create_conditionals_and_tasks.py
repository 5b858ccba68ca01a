"""Create users, conditionals and tasks tables

Revision ID: 4e1a7c2b9d30
Revises:
Create Date: 2026-02-02

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4e1a7c2b9d30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "conditionals",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("expected_date", sa.Date(), nullable=False),
        sa.Column("urgency", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("outcomes", sa.JSON(), nullable=False),
        sa.Column(
            "fallback_conditional_id",
            sa.String(),
            sa.ForeignKey("conditionals.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("fallback_postpone_days", sa.Integer(), nullable=True),
        sa.Column("selected_outcome_id", sa.String(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("color", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_conditionals_user_id"), "conditionals", ["user_id"], unique=False)
    op.create_index(op.f("ix_conditionals_expected_date"), "conditionals", ["expected_date"], unique=False)
    op.create_index(op.f("ix_conditionals_status"), "conditionals", ["status"], unique=False)
    op.create_index(
        op.f("ix_conditionals_fallback_conditional_id"), "conditionals", ["fallback_conditional_id"], unique=False
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("priority", sa.String(), nullable=False),
        sa.Column("deadline", sa.DateTime(), nullable=True),
        sa.Column("color", sa.String(), nullable=True),
        sa.Column("scope", sa.String(), nullable=False),
        sa.Column("scope_key", sa.String(), nullable=False),
        sa.Column("start_time", sa.String(), nullable=True),
        sa.Column("end_time", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("parent_task_id", sa.String(), sa.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True),
        sa.Column("contribution_percent", sa.Float(), nullable=True),
        sa.Column(
            "blocked_by_conditional_id",
            sa.String(),
            sa.ForeignKey("conditionals.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("original_scheduled_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_tasks_user_id"), "tasks", ["user_id"], unique=False)
    op.create_index(op.f("ix_tasks_scope"), "tasks", ["scope"], unique=False)
    op.create_index(op.f("ix_tasks_scope_key"), "tasks", ["scope_key"], unique=False)
    op.create_index(op.f("ix_tasks_parent_task_id"), "tasks", ["parent_task_id"], unique=False)
    op.create_index(
        op.f("ix_tasks_blocked_by_conditional_id"), "tasks", ["blocked_by_conditional_id"], unique=False
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("tasks")
    op.drop_table("conditionals")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")
