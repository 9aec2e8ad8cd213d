from pydantic import BaseModel, Field
from typing import Literal, Optional

TaskStatus = Literal["pending", "done"]
Frequency = Literal["daily", "weekly", "monthly"]
MAX_INTERVAL = 366


class RepeatSpec(BaseModel):
    enabled: bool = False
    frequency: Optional[Frequency] = None
    interval: int = Field(default=1, ge=1, le=MAX_INTERVAL)
    days_of_week: Optional[list[int]] = None  # 0=Sun..6=Sat (UTC), weekly
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)  # clamped to month length
    hour: Optional[int] = Field(default=None, ge=0, le=23)  # UTC
    minute: Optional[int] = Field(default=None, ge=0, le=59)  # UTC
    next_run_at: Optional[str] = None  # ISO 8601 UTC, computed


class Task(BaseModel):
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    due_date: Optional[str] = None  # ISO 8601 UTC
    status: TaskStatus = "pending"
    repeat: Optional[RepeatSpec] = None
    created_at: str
    updated_at: str


class TaskCreate(BaseModel):
    user_id: str
    title: str
    description: Optional[str] = None
    due_date: Optional[str] = None
    status: TaskStatus = "pending"
    repeat: Optional[RepeatSpec] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[str] = None
    status: Optional[TaskStatus] = None


class RecurringDefinition(BaseModel):
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    hour: int
    minute: int
    days_of_week: list[int]
    start_date: str
    end_date: Optional[str] = None
    next_run_at: str
    enabled: bool = True
    created_at: str


class RecurringCreate(BaseModel):
    user_id: str
    title: str
    description: Optional[str] = None
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)
    days_of_week: Optional[list[int]] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class User(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    created_at: str


class Proposal(BaseModel):
    """Unconfirmed task the agent proposed in its last message."""
    title: str
    due_date: Optional[str] = None  # ISO 8601 UTC
    status: TaskStatus = "pending"
    description: Optional[str] = None
    assistant_message: str = ""


class TaskDraft(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[str] = None
    status: Optional[str] = None


class AgentRequest(BaseModel):
    # prompt/user_id are validated by the agent so that missing values give 400
    prompt: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    lang: Optional[str] = None
    confirm: bool = False
    draft: Optional[TaskDraft] = None


class CompletionBody(BaseModel):
    prompt: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    lang: Optional[str] = None
