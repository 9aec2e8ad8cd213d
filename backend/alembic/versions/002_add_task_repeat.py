"""Add embedded repeat schedule columns to tasks

Revision ID: 002
Revises: 001
Create Date: 2025-09-18

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Check existing columns
    columns = {row[1] for row in conn.execute(text("PRAGMA table_info(tasks)")).fetchall()}

    # repeat holds the RepeatSpec as JSON; next run is its own column so the
    # scheduler can range-query it
    if "repeat" not in columns:
        conn.execute(text("ALTER TABLE tasks ADD COLUMN repeat TEXT"))

    if "repeat_next_run_at" not in columns:
        conn.execute(text("ALTER TABLE tasks ADD COLUMN repeat_next_run_at TEXT"))

    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_tasks_repeat_next_run ON tasks (repeat_next_run_at)"))


def downgrade() -> None:
    # SQLite doesn't support DROP COLUMN easily, so downgrade is a no-op
    conn = op.get_bind()
    conn.execute(text("DROP INDEX IF EXISTS ix_tasks_repeat_next_run"))
