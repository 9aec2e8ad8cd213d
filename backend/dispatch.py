"""
Execution of provider tool calls against the task store.

Arguments come from the model and are validated here. Update/delete are
scoped to the calling user. Invalid or past due dates are dropped with a note
instead of failing the call.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

import config
from completions import ToolCall
from database import create_task_db, delete_task_db, get_task_db, update_task_db
from errors import Forbidden, NotFound, ValidationError
from models import MAX_INTERVAL, RepeatSpec, Task
from scheduler import create_recurring, schedule_repeat
from utils import parse_instant, to_iso

logger = logging.getLogger(__name__)

STATUSES = ("pending", "done")
FREQUENCIES = ("daily", "weekly", "monthly")


def normalize_due_date(
    value: Any,
    msgs: dict,
    now: datetime,
    grace_seconds: int = config.DUE_DATE_GRACE_SECONDS,
) -> tuple[Optional[str], list[str]]:
    """Return (ISO due date or None, notes). Unparseable or past values are dropped."""
    if value is None or value == "":
        return None, []
    parsed = parse_instant(value)
    if parsed is None:
        return None, [msgs["note_invalid_due"]]
    if parsed < now - timedelta(seconds=grace_seconds):
        return None, [msgs["note_past_due"]]
    return to_iso(parsed), []


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _as_days(value: Any) -> Optional[list[int]]:
    if not isinstance(value, list):
        return None
    days = [_as_int(item) for item in value]
    return [day for day in days if day is not None and 0 <= day <= 6]


def sanitize_repeat(raw: Any) -> Optional[RepeatSpec]:
    """Keep only well-formed repeat fields from a model-supplied object."""
    if not isinstance(raw, dict):
        return None
    fields: dict = {}
    if isinstance(raw.get("enabled"), bool):
        fields["enabled"] = raw["enabled"]
    if raw.get("frequency") in FREQUENCIES:
        fields["frequency"] = raw["frequency"]
    interval = _as_int(raw.get("interval"))
    if interval is not None and 1 <= interval <= MAX_INTERVAL:
        fields["interval"] = interval
    days = _as_days(raw.get("days_of_week"))
    if days is not None:
        fields["days_of_week"] = days
    day_of_month = _as_int(raw.get("day_of_month"))
    if day_of_month is not None and 1 <= day_of_month <= 31:
        fields["day_of_month"] = day_of_month
    hour = _as_int(raw.get("hour"))
    if hour is not None and 0 <= hour <= 23:
        fields["hour"] = hour
    minute = _as_int(raw.get("minute"))
    if minute is not None and 0 <= minute <= 59:
        fields["minute"] = minute
    if fields.get("enabled") and "frequency" not in fields:
        fields["frequency"] = "weekly" if fields.get("days_of_week") else "daily"
    return RepeatSpec(**fields)


def _owned_task(task_id: str, user_id: str, msgs: dict) -> Task:
    existing = get_task_db(task_id)
    if existing is None:
        raise NotFound(msgs["error_task_not_found"])
    if existing.user_id != user_id:
        raise Forbidden(msgs["error_forbidden"])
    return existing


def create_task_call(args: dict, user_id: str, msgs: dict, now: datetime) -> dict:
    title = str(args.get("title") or "").strip()
    if not title:
        # Ask directly rather than spending another provider call
        return {"requires_confirmation": True, "assistant_message": msgs["ask_title"]}

    due_date, notes = normalize_due_date(args.get("due_date"), msgs, now)
    description = args.get("description") if isinstance(args.get("description"), str) else None
    status = args.get("status") if args.get("status") in STATUSES else "pending"
    repeat = schedule_repeat(sanitize_repeat(args.get("repeat")), now)

    created = create_task_db(
        user_id=user_id,
        title=title,
        description=description,
        due_date=due_date,
        status=status,
        repeat=repeat,
    )
    return {
        "message": msgs["task_created"],
        "assistant_message": msgs["task_created"],
        "data": created.model_dump(),
        "notes": notes,
    }


def update_task_call(args: dict, user_id: str, msgs: dict, now: datetime) -> dict:
    task_id = str(args.get("id") or "").strip()
    if not task_id:
        raise ValidationError(msgs["error_id_required_update"])
    _owned_task(task_id, user_id, msgs)

    patch: dict = {}
    notes: list[str] = []
    if isinstance(args.get("title"), str) and args["title"].strip():
        patch["title"] = args["title"].strip()
    if isinstance(args.get("description"), str):
        patch["description"] = args["description"]
    if args.get("status") in STATUSES:
        patch["status"] = args["status"]
    if isinstance(args.get("due_date"), str) and args["due_date"]:
        due_date, notes = normalize_due_date(args["due_date"], msgs, now)
        if due_date:
            patch["due_date"] = due_date

    updated = update_task_db(task_id, **patch)
    return {"message": msgs["task_updated"], "data": updated.model_dump(), "notes": notes}


def delete_task_call(args: dict, user_id: str, msgs: dict, now: datetime) -> dict:
    task_id = str(args.get("id") or "").strip()
    if not task_id:
        raise ValidationError(msgs["error_id_required_delete"])
    _owned_task(task_id, user_id, msgs)
    deleted = delete_task_db(task_id)
    return {"message": msgs["task_deleted"], "data": deleted.model_dump() if deleted else None}


def create_recurring_call(args: dict, user_id: str, msgs: dict, now: datetime) -> dict:
    title = str(args.get("title") or "").strip()
    hour = _as_int(args.get("hour"))
    minute = _as_int(args.get("minute"))
    if not title or hour is None or minute is None or not 0 <= hour <= 23 or not 0 <= minute <= 59:
        raise ValidationError(msgs["error_recurring_fields"])
    description = args.get("description") if isinstance(args.get("description"), str) else None
    definition = create_recurring(
        user_id=user_id,
        title=title,
        hour=hour,
        minute=minute,
        days_of_week=_as_days(args.get("days_of_week")),
        description=description,
        now=now,
    )
    return {"message": msgs["recurring_created"], "data": definition.model_dump()}


HANDLERS = {
    "create_task": create_task_call,
    "update_task": update_task_call,
    "delete_task": delete_task_call,
    "create_recurring": create_recurring_call,
}


def pick_tool_call(tool_calls: list[ToolCall]) -> Optional[ToolCall]:
    """First call naming a supported tool; only one call is executed per turn."""
    return next((call for call in tool_calls if call.name in HANDLERS), None)


def dispatch_tool_call(call: ToolCall, user_id: str, msgs: dict, now: datetime) -> dict:
    logger.info(f"Dispatching tool call {call.name} for user {user_id}")
    arguments = call.arguments if isinstance(call.arguments, dict) else {}
    return HANDLERS[call.name](arguments, user_id, msgs, now)
