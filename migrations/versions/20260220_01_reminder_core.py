"""tasks, processed update ledger and sent reminder ledger

Revision ID: 20260220_01
Revises:
Create Date: 2026-02-20 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '20260220_01'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "tasks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("chat_id", sa.String(64), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("important", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("due_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("remind_every_minutes", sa.Integer(), nullable=True),
        sa.Column("next_reminder_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint(
            "remind_every_minutes IS NULL OR remind_every_minutes > 0",
            name="ck_tasks_remind_every_positive",
        ),
        sa.CheckConstraint(
            "status IN ('active', 'boxed', 'completed', 'canceled')",
            name="ck_tasks_status",
        ),
    )
    op.create_index("ix_tasks_chat_id_status", "tasks", ["chat_id", "status"])
    op.create_index("ix_tasks_status_next_reminder_at", "tasks", ["status", "next_reminder_at"])

    op.create_table(
        "processed_updates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("chat_id", sa.String(64), nullable=False, server_default=""),
        sa.Column("update_id", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("chat_id", "update_id", name="uq_processed_updates_chat_update"),
    )
    op.create_index("ix_processed_updates_created_at", "processed_updates", ["created_at"])

    op.create_table(
        "sent_reminders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "task_id",
            sa.String(36),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("scheduled_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("telegram_message_id", sa.String(32), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("task_id", "scheduled_at", name="uq_sent_reminders_task_scheduled"),
    )
    op.create_index("ix_sent_reminders_scheduled_at", "sent_reminders", ["scheduled_at"])


def downgrade() -> None:
    op.drop_index("ix_sent_reminders_scheduled_at", table_name="sent_reminders")
    op.drop_table("sent_reminders")
    op.drop_index("ix_processed_updates_created_at", table_name="processed_updates")
    op.drop_table("processed_updates")
    op.drop_index("ix_tasks_status_next_reminder_at", table_name="tasks")
    op.drop_index("ix_tasks_chat_id_status", table_name="tasks")
    op.drop_table("tasks")
