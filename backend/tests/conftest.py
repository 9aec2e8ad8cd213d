"""
Shared pytest fixtures for backend tests.
Uses a temp-file SQLite database per test for isolation.
"""
import pytest
import sqlite3
import sys
import os
from datetime import datetime, timezone

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import config
import database
from agent import TaskAgent
from completions import Completion, CompletionsInvoker, ErrorKind, ProviderResult, ToolCall
from database import create_user_db
from rate_limiter import RateLimiter
from session_store import InMemorySessionStore

# Monday 2030-01-07 10:00 UTC
NOW = datetime(2030, 1, 7, 10, 0, tzinfo=timezone.utc)


class FakeProvider:
    """Scripted CompletionsProvider: returns queued results in order, recording each call."""

    def __init__(self):
        self.script: list[ProviderResult] = []
        self.calls = []

    def reply(self, text: str) -> "FakeProvider":
        self.script.append(ProviderResult.success(Completion(text=text)))
        return self

    def tool(self, name: str, **arguments) -> "FakeProvider":
        call = ToolCall(name=name, arguments=arguments, id=f"toolu_{len(self.script)}")
        self.script.append(ProviderResult.success(Completion(tool_calls=[call])))
        return self

    def rate_limit(self, retry_after_seconds=None) -> "FakeProvider":
        self.script.append(ProviderResult.failure(ErrorKind.RATE_LIMITED, "rate limit", retry_after_seconds))
        return self

    def fail(self, detail: str = "boom") -> "FakeProvider":
        self.script.append(ProviderResult.failure(ErrorKind.PROVIDER_ERROR, detail))
        return self

    async def complete(self, request, model):
        self.calls.append((request, model))
        if not self.script:
            return ProviderResult.failure(ErrorKind.PROVIDER_ERROR, "nothing scripted")
        result = self.script.pop(0)
        if result.ok:
            result.value.model = model
        return result


async def no_sleep(_seconds):
    return None


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE users (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT,
            created_at TEXT NOT NULL
        );

        CREATE TABLE tasks (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            due_date TEXT,
            status TEXT NOT NULL DEFAULT 'pending',
            repeat TEXT,
            repeat_next_run_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE recurring_tasks (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            hour INTEGER NOT NULL,
            minute INTEGER NOT NULL,
            days_of_week TEXT NOT NULL DEFAULT '[0, 1, 2, 3, 4, 5, 6]',
            start_date TEXT NOT NULL,
            end_date TEXT,
            next_run_at TEXT NOT NULL,
            enabled INTEGER DEFAULT 1,
            created_at TEXT NOT NULL
        );
    """)
    conn.commit()
    conn.close()

    yield db_path


@pytest.fixture
def user(test_db):
    return create_user_db("Alice", "alice@example.com", user_id="user-1")


@pytest.fixture
def other_user(test_db):
    return create_user_db("Bob", user_id="user-2")


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def limiter():
    # Generous limits so agent tests are not throttled
    return RateLimiter(max_attempts=100, window_seconds=60)


@pytest.fixture
def invoker(provider, limiter):
    return CompletionsInvoker(provider, limiter, fallback_models=[], sleep=no_sleep)


@pytest.fixture
def sessions():
    return InMemorySessionStore()


@pytest.fixture
def agent(test_db, invoker, sessions, limiter):
    return TaskAgent(invoker, sessions, limiter, default_model="test-model", clock=lambda: NOW)


@pytest.fixture
def app_client(test_db, monkeypatch, provider):
    """
    Create a test client for the FastAPI app.
    The provider is the scripted fake and the scheduler loop is off.
    """
    from fastapi.testclient import TestClient
    import main

    monkeypatch.setattr(config, "SCHEDULER_ENABLED", False)
    monkeypatch.setattr(config, "ANTHROPIC_API_KEY", "test-key")
    monkeypatch.setattr(main, "build_provider", lambda: provider)

    with TestClient(main.app) as client:
        yield client
