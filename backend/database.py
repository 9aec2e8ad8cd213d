import sqlite3
import json
import uuid
from datetime import datetime
from typing import Optional
from contextlib import contextmanager

import config
from models import RecurringDefinition, RepeatSpec, Task, User
from utils import to_iso, utcnow

DATABASE_PATH = config.DATABASE_PATH

@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()

def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess
    import os

    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "-x", f"db_path={os.path.abspath(DATABASE_PATH)}", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )


# User operations
def _row_to_user(row) -> User:
    return User(id=row["id"], name=row["name"], email=row["email"], created_at=row["created_at"])

def create_user_db(name: str, email: Optional[str] = None, user_id: Optional[str] = None) -> User:
    user_id = user_id or str(uuid.uuid4())
    created_at = to_iso(utcnow())
    with get_db() as conn:
        conn.execute(
            "INSERT INTO users (id, name, email, created_at) VALUES (?, ?, ?, ?)",
            (user_id, name, email, created_at)
        )
        conn.commit()
    return User(id=user_id, name=name, email=email, created_at=created_at)

def get_user_db(user_id: str) -> Optional[User]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _row_to_user(row) if row else None


# Task operations
def _row_to_task(row) -> Task:
    """Convert a database row to a Task model."""
    repeat = None
    if row["repeat"]:
        repeat = RepeatSpec(**json.loads(row["repeat"]), next_run_at=row["repeat_next_run_at"])
    return Task(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        description=row["description"],
        due_date=row["due_date"],
        status=row["status"],
        repeat=repeat,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )

def _dump_repeat(repeat: Optional[RepeatSpec]) -> tuple[Optional[str], Optional[str]]:
    """Split a RepeatSpec into (JSON without next_run_at, next_run_at column)."""
    if repeat is None:
        return None, None
    return json.dumps(repeat.model_dump(exclude={"next_run_at"})), repeat.next_run_at

def create_task_db(
    user_id: str,
    title: str,
    description: Optional[str] = None,
    due_date: Optional[str] = None,
    status: str = "pending",
    repeat: Optional[RepeatSpec] = None,
    task_id: Optional[str] = None,
) -> Task:
    """Create a task. The id is an opaque uuid4 string unless one is given.
    due_date is an ISO 8601 UTC string (see utils.to_iso)."""
    task_id = task_id or str(uuid.uuid4())
    now = to_iso(utcnow())
    repeat_json, next_run_at = _dump_repeat(repeat)
    with get_db() as conn:
        conn.execute(
            """INSERT INTO tasks
               (id, user_id, title, description, due_date, status, repeat, repeat_next_run_at, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (task_id, user_id, title, description, due_date, status, repeat_json, next_run_at, now, now)
        )
        conn.commit()
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(row)

def get_task_db(task_id: str) -> Optional[Task]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(row) if row else None

def get_tasks_db(user_id: Optional[str] = None) -> list[Task]:
    with get_db() as conn:
        if user_id:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE user_id = ? ORDER BY due_date IS NULL, due_date, created_at",
                (user_id,)
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM tasks ORDER BY due_date IS NULL, due_date, created_at"
            ).fetchall()
        return [_row_to_task(row) for row in rows]

TASK_UPDATABLE_FIELDS = {"title", "description", "due_date", "status", "repeat_next_run_at"}

def update_task_db(task_id: str, **updates) -> Optional[Task]:
    """
    Update a task with any fields provided.
    Only updates fields that differ from current values.

    Args:
        task_id: Task ID to update
        **updates: Field names and values to update (title, description, due_date, status, repeat_next_run_at)
    """
    with get_db() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if not row:
            return None

        # Filter updates: only include fields that differ from current values
        changes = {
            field: value
            for field, value in updates.items()
            if field in TASK_UPDATABLE_FIELDS and row[field] != value
        }

        # Execute UPDATE only if there are actual changes
        if changes:
            changes["updated_at"] = to_iso(utcnow())
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [task_id]
            conn.execute(f"UPDATE tasks SET {set_clause} WHERE id = ?", values)
            conn.commit()

        # Return updated task (re-fetch to get current state)
        updated_row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(updated_row)

def delete_task_db(task_id: str) -> Optional[Task]:
    """Delete a task and return it, or None when it did not exist."""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if not row:
            return None
        conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        conn.commit()
        return _row_to_task(row)

def get_repeats_missing_next_run_db() -> list[Task]:
    """Tasks with an enabled repeat that has never been scheduled."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM tasks WHERE repeat IS NOT NULL AND repeat_next_run_at IS NULL"
        ).fetchall()
        tasks = [_row_to_task(row) for row in rows]
        return [task for task in tasks if task.repeat and task.repeat.enabled]

def get_due_repeats_db(now: datetime) -> list[Task]:
    """Tasks with an enabled repeat whose next run is at or before now."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM tasks WHERE repeat_next_run_at IS NOT NULL AND repeat_next_run_at <= ? ORDER BY repeat_next_run_at",
            (to_iso(now),)
        ).fetchall()
        tasks = [_row_to_task(row) for row in rows]
        return [task for task in tasks if task.repeat and task.repeat.enabled]


# Recurring definition operations
def _row_to_recurring(row) -> RecurringDefinition:
    return RecurringDefinition(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        description=row["description"],
        hour=row["hour"],
        minute=row["minute"],
        days_of_week=json.loads(row["days_of_week"]),
        start_date=row["start_date"],
        end_date=row["end_date"],
        next_run_at=row["next_run_at"],
        enabled=bool(row["enabled"]),
        created_at=row["created_at"],
    )

def create_recurring_db(
    user_id: str,
    title: str,
    hour: int,
    minute: int,
    days_of_week: list[int],
    next_run_at: str,
    description: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> RecurringDefinition:
    recurring_id = str(uuid.uuid4())
    now = to_iso(utcnow())
    with get_db() as conn:
        conn.execute(
            """INSERT INTO recurring_tasks
               (id, user_id, title, description, hour, minute, days_of_week, start_date, end_date, next_run_at, enabled, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?)""",
            (recurring_id, user_id, title, description, hour, minute, json.dumps(days_of_week),
             start_date or now, end_date, next_run_at, now)
        )
        conn.commit()
        row = conn.execute("SELECT * FROM recurring_tasks WHERE id = ?", (recurring_id,)).fetchone()
        return _row_to_recurring(row)

def get_recurring_db(recurring_id: str) -> Optional[RecurringDefinition]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM recurring_tasks WHERE id = ?", (recurring_id,)).fetchone()
        return _row_to_recurring(row) if row else None

def list_recurring_db(user_id: Optional[str] = None) -> list[RecurringDefinition]:
    with get_db() as conn:
        if user_id:
            rows = conn.execute(
                "SELECT * FROM recurring_tasks WHERE user_id = ? ORDER BY next_run_at", (user_id,)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM recurring_tasks ORDER BY next_run_at").fetchall()
        return [_row_to_recurring(row) for row in rows]

def disable_recurring_db(recurring_id: str) -> Optional[RecurringDefinition]:
    with get_db() as conn:
        cursor = conn.execute("UPDATE recurring_tasks SET enabled = 0 WHERE id = ?", (recurring_id,))
        conn.commit()
        if cursor.rowcount == 0:
            return None
    return get_recurring_db(recurring_id)

def get_due_recurring_db(now: datetime) -> list[RecurringDefinition]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM recurring_tasks WHERE enabled = 1 AND next_run_at <= ? ORDER BY next_run_at",
            (to_iso(now),)
        ).fetchall()
        return [_row_to_recurring(row) for row in rows]

def set_recurring_next_run_db(recurring_id: str, next_run_at: str) -> None:
    with get_db() as conn:
        conn.execute("UPDATE recurring_tasks SET next_run_at = ? WHERE id = ?", (next_run_at, recurring_id))
        conn.commit()
