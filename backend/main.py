import logging
from contextlib import asynccontextmanager
from typing import Optional

import anthropic
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
import database
from agent import TaskAgent
from completions import AnthropicProvider, CompletionRequest, CompletionsInvoker, CompletionsProvider
from database import (
    create_task_db,
    delete_task_db,
    disable_recurring_db,
    get_task_db,
    get_tasks_db,
    get_user_db,
    list_recurring_db,
    update_task_db,
)
from errors import AgentError, ProviderError, ValidationError
from models import AgentRequest, CompletionBody, RecurringCreate, TaskCreate, TaskUpdate
from prompts import COMPLETION_SYSTEM_PROMPTS, locale, messages_for
from rate_limiter import RateLimiter
from scheduler import SchedulerLoop, create_recurring, schedule_repeat
from session_store import InMemorySessionStore
from utils import parse_instant, to_iso, utcnow

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_provider() -> CompletionsProvider:
    return AnthropicProvider(anthropic.AsyncAnthropic(api_key=config.ANTHROPIC_API_KEY))


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    database.init_db()
    limiter = RateLimiter()
    app.state.invoker = CompletionsInvoker(build_provider(), limiter)
    app.state.agent = TaskAgent(app.state.invoker, InMemorySessionStore(), limiter)

    scheduler = SchedulerLoop() if config.SCHEDULER_ENABLED else None
    if scheduler:
        await scheduler.start()
    yield
    # Shutdown
    if scheduler:
        await scheduler.stop()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AgentError)
async def agent_error_handler(_request: Request, e: AgentError) -> JSONResponse:
    if e.status_code >= 500:
        logger.error(f"Request failed: {e.message}")
    return JSONResponse(status_code=e.status_code, content=e.to_dict())


def require_api_key() -> None:
    if not config.ANTHROPIC_API_KEY or config.ANTHROPIC_API_KEY == "your-api-key-here":
        raise ProviderError("API key not configured")


def parse_due_or_400(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    parsed = parse_instant(value)
    if parsed is None:
        raise HTTPException(status_code=400, detail="Invalid due_date")
    return to_iso(parsed)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/agent/chat")
async def agent_chat(body: AgentRequest, request: Request) -> dict:
    """Conversational endpoint: propose, confirm and commit tasks from free text."""
    require_api_key()
    return await request.app.state.agent.handle(body)


@app.post("/ai/completions")
async def ai_completions(body: CompletionBody, request: Request) -> dict:
    """Single-shot completion, rate limited per caller and model."""
    if not isinstance(body.prompt, str) or not body.prompt.strip():
        raise ValidationError(messages_for(body.lang)["error_prompt_required"])
    require_api_key()

    completion_request = CompletionRequest(
        messages=[{"role": "user", "content": body.prompt}],
        system=COMPLETION_SYSTEM_PROMPTS[locale(body.lang)] if body.lang else None,
        max_tokens=body.max_tokens or 256,
        temperature=body.temperature,
    )
    caller_key = request.client.host if request.client else "anon"
    invocation = await request.app.state.invoker.invoke(
        completion_request, body.model or config.DEFAULT_MODEL, caller_key
    )
    if not invocation.response.text.strip():
        raise ProviderError(messages_for(body.lang)["error_no_response"])
    return {"message": invocation.response.text, "model": invocation.model_used}


@app.post("/tasks", status_code=201)
def create_task(task_data: TaskCreate) -> dict:
    if get_user_db(task_data.user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    title = task_data.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="title is required")
    task = create_task_db(
        user_id=task_data.user_id,
        title=title,
        description=task_data.description,
        due_date=parse_due_or_400(task_data.due_date),
        status=task_data.status,
        repeat=schedule_repeat(task_data.repeat, utcnow()),
    )
    return task.model_dump()


@app.get("/tasks")
def get_tasks(user_id: Optional[str] = None) -> list[dict]:
    return [task.model_dump() for task in get_tasks_db(user_id)]


@app.get("/tasks/{task_id}")
def get_task(task_id: str) -> dict:
    task = get_task_db(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task.model_dump()


@app.patch("/tasks/{task_id}")
def update_task(task_id: str, task_data: TaskUpdate) -> dict:
    updates = task_data.model_dump(exclude_unset=True, exclude_none=True)
    if "due_date" in updates:
        updates["due_date"] = parse_due_or_400(updates["due_date"])
    result = update_task_db(task_id, **updates)
    if not result:
        raise HTTPException(status_code=404, detail="Task not found")
    return result.model_dump()


@app.delete("/tasks/{task_id}")
def delete_task(task_id: str) -> dict:
    if not delete_task_db(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"status": "deleted"}


@app.post("/recurring", status_code=201)
def create_recurring_endpoint(body: RecurringCreate) -> dict:
    if get_user_db(body.user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    title = body.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="title is required")
    definition = create_recurring(
        user_id=body.user_id,
        title=title,
        hour=body.hour,
        minute=body.minute,
        days_of_week=[day for day in body.days_of_week or [] if 0 <= day <= 6],
        description=body.description,
        start_date=body.start_date,
        end_date=body.end_date,
    )
    return {"message": "Recurring created", "data": definition.model_dump()}


@app.get("/recurring")
def list_recurring(user_id: Optional[str] = None) -> dict:
    return {"data": [definition.model_dump() for definition in list_recurring_db(user_id)]}


@app.post("/recurring/{recurring_id}/disable")
def disable_recurring(recurring_id: str) -> dict:
    definition = disable_recurring_db(recurring_id)
    if not definition:
        raise HTTPException(status_code=404, detail="Not found")
    return {"message": "Recurring disabled", "data": definition.model_dump()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
