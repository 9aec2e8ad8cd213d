"""
Tests for FastAPI endpoints in main.py.
The completions provider is the scripted FakeProvider from conftest.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import config
from database import create_task_db


class TestHealth:
    def test_health(self, app_client):
        """Health check answers ok."""
        assert app_client.get("/health").json() == {"status": "ok"}


class TestTaskEndpoints:
    """Tests for /tasks endpoints."""

    def test_get_tasks_empty(self, app_client):
        """Empty database lists no tasks."""
        response = app_client.get("/tasks")
        assert response.status_code == 200
        assert response.json() == []

    def test_create_task(self, user, app_client):
        """Create a task; the due date comes back normalized to UTC."""
        response = app_client.post("/tasks", json={
            "user_id": "user-1",
            "title": "Write report",
            "due_date": "2030-02-01T09:00:00Z",
        })

        assert response.status_code == 201
        task = response.json()
        assert task["title"] == "Write report"
        assert task["due_date"] == "2030-02-01T09:00:00+00:00"
        assert task["status"] == "pending"

    def test_create_task_with_repeat_schedules_next_run(self, user, app_client):
        """An enabled repeat gets its next run computed on create."""
        response = app_client.post("/tasks", json={
            "user_id": "user-1",
            "title": "Stretch",
            "repeat": {"enabled": True, "frequency": "daily", "hour": 7, "minute": 0},
        })

        assert response.status_code == 201
        assert response.json()["repeat"]["next_run_at"].endswith("T07:00:00+00:00")

    def test_create_task_unknown_user(self, app_client):
        """Creating a task for an unknown user is a 404."""
        response = app_client.post("/tasks", json={"user_id": "nobody", "title": "X"})
        assert response.status_code == 404

    def test_create_task_invalid_due(self, user, app_client):
        """An unparseable due date is a 400."""
        response = app_client.post("/tasks", json={"user_id": "user-1", "title": "X", "due_date": "whenever"})
        assert response.status_code == 400

    def test_create_task_unrepresentable_due(self, user, app_client):
        """A due date that overflows when moved to UTC is a 400, not a crash."""
        response = app_client.post("/tasks", json={
            "user_id": "user-1", "title": "X", "due_date": "9999-12-31T23:59:00-01:00",
        })
        assert response.status_code == 400

    def test_create_task_repeat_interval_too_large(self, user, app_client):
        """Repeat intervals above the allowed maximum fail validation."""
        response = app_client.post("/tasks", json={
            "user_id": "user-1",
            "title": "Stretch",
            "repeat": {"enabled": True, "frequency": "daily", "interval": 10**9, "hour": 7, "minute": 0},
        })
        assert response.status_code == 422

    def test_get_tasks_by_user(self, test_db, app_client):
        """Filter tasks by user_id; no filter lists everyone's."""
        create_task_db("user-1", "Task 1")
        create_task_db("user-2", "Task 2")

        response = app_client.get("/tasks", params={"user_id": "user-1"})
        assert [task["title"] for task in response.json()] == ["Task 1"]
        assert len(app_client.get("/tasks").json()) == 2

    def test_get_task(self, test_db, app_client):
        """Fetch a single task by id; unknown ids are 404."""
        task = create_task_db("user-1", "Find me")

        response = app_client.get(f"/tasks/{task.id}")
        assert response.status_code == 200
        assert response.json()["title"] == "Find me"

        assert app_client.get("/tasks/nonexistent").status_code == 404

    def test_update_task(self, test_db, app_client):
        """Patch title and status."""
        task = create_task_db("user-1", "Old title")

        response = app_client.patch(f"/tasks/{task.id}", json={"title": "New title", "status": "done"})

        assert response.status_code == 200
        assert response.json()["title"] == "New title"
        assert response.json()["status"] == "done"

    def test_update_task_not_found(self, app_client):
        """Patching a missing task is a 404."""
        response = app_client.patch("/tasks/nonexistent", json={"title": "New title"})
        assert response.status_code == 404

    def test_delete_task(self, test_db, app_client):
        """Delete a task and confirm it is gone."""
        task = create_task_db("user-1", "Delete me")

        response = app_client.delete(f"/tasks/{task.id}")
        assert response.status_code == 200
        assert response.json()["status"] == "deleted"

        assert app_client.get("/tasks").json() == []

    def test_delete_task_not_found(self, app_client):
        """Deleting a missing task is a 404."""
        assert app_client.delete("/tasks/nonexistent").status_code == 404


class TestRecurringEndpoints:
    def test_create_list_disable(self, user, app_client):
        """Create, list and disable a recurring definition."""
        response = app_client.post("/recurring", json={
            "user_id": "user-1", "title": "Gym", "hour": 6, "minute": 30, "days_of_week": [1, 3, 5],
        })
        assert response.status_code == 201
        definition = response.json()["data"]
        assert definition["days_of_week"] == [1, 3, 5]

        listed = app_client.get("/recurring", params={"user_id": "user-1"}).json()["data"]
        assert [d["id"] for d in listed] == [definition["id"]]

        disabled = app_client.post(f"/recurring/{definition['id']}/disable")
        assert disabled.status_code == 200
        assert disabled.json()["data"]["enabled"] is False

    def test_defaults_to_every_day(self, user, app_client):
        """Recurring definitions without days run every day."""
        response = app_client.post("/recurring", json={"user_id": "user-1", "title": "Read", "hour": 21, "minute": 0})
        assert response.json()["data"]["days_of_week"] == [0, 1, 2, 3, 4, 5, 6]

    def test_hour_out_of_range(self, user, app_client):
        """Hours outside 0-23 fail request validation."""
        response = app_client.post("/recurring", json={"user_id": "user-1", "title": "Bad", "hour": 24, "minute": 0})
        assert response.status_code == 422

    def test_disable_missing(self, app_client):
        """Disabling a missing definition is a 404."""
        assert app_client.post("/recurring/nope/disable").status_code == 404


class TestAgentEndpoint:
    def test_open_turn(self, user, app_client, provider):
        """A text reply is returned as an open turn."""
        provider.reply("What time is the meeting?")

        response = app_client.post("/agent/chat", json={"prompt": "I have a meeting", "user_id": "user-1"})

        assert response.status_code == 200
        assert response.json() == {"requires_confirmation": True, "assistant_message": "What time is the meeting?"}

    def test_direct_confirm(self, user, app_client):
        """confirm plus draft commits straight away."""
        response = app_client.post("/agent/chat", json={
            "prompt": "confirm",
            "user_id": "user-1",
            "confirm": True,
            "draft": {"title": "Dentist"},
        })

        assert response.status_code == 200
        assert response.json()["data"]["title"] == "Dentist"
        assert response.json()["notes"] == []

    def test_missing_prompt(self, user, app_client):
        """Missing prompt is a 400 with the error shape."""
        response = app_client.post("/agent/chat", json={"user_id": "user-1"})

        assert response.status_code == 400
        assert response.json() == {"error": "prompt is required (string)"}

    def test_unknown_user(self, test_db, app_client):
        """Unknown user is a 404."""
        response = app_client.post("/agent/chat", json={"prompt": "hi", "user_id": "nobody"})
        assert response.status_code == 404

    def test_forbidden_tool_call(self, user, other_user, app_client, provider):
        """Tool call on another user's task is a 403."""
        task = create_task_db("user-2", "Not yours")
        provider.tool("delete_task", id=task.id)

        response = app_client.post("/agent/chat", json={"prompt": "delete it", "user_id": "user-1"})

        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden"}

    def test_turn_rate_limit(self, user, app_client):
        """Chat turns past the session limit are a 429 with retry_after_seconds."""
        body = {"prompt": "confirm", "user_id": "user-1", "confirm": True, "draft": {"title": "A"}}
        for _ in range(config.RATE_LIMIT_MAX):
            assert app_client.post("/agent/chat", json=body).status_code == 200

        response = app_client.post("/agent/chat", json=body)

        assert response.status_code == 429
        assert response.json()["retry_after_seconds"] > 0

    def test_provider_exhausted(self, user, app_client, provider):
        """Provider rate limits come back as a 429 carrying the provider's wait."""
        provider.rate_limit(120)

        response = app_client.post("/agent/chat", json={"prompt": "buy milk", "user_id": "user-1"})

        assert response.status_code == 429
        assert response.json()["retry_after_seconds"] == 120

    def test_api_key_not_configured(self, user, app_client, monkeypatch):
        """Placeholder API key is reported as a 500."""
        monkeypatch.setattr(config, "ANTHROPIC_API_KEY", "your-api-key-here")

        response = app_client.post("/agent/chat", json={"prompt": "hi", "user_id": "user-1"})

        assert response.status_code == 500
        assert response.json() == {"error": "API key not configured"}


class TestCompletionsEndpoint:
    def test_completion(self, app_client, provider):
        """Completion with lang gets the Indonesian system prompt."""
        provider.reply("Halo!")

        response = app_client.post("/ai/completions", json={"prompt": "Say hi", "lang": "id"})

        assert response.status_code == 200
        assert response.json() == {"message": "Halo!", "model": config.DEFAULT_MODEL}
        request, _ = provider.calls[0]
        assert request.system == "Jawab dalam bahasa Indonesia."
        assert request.max_tokens == 256

    def test_empty_completion(self, app_client, provider):
        """A completion with no text is reported as a provider error."""
        provider.reply("")

        response = app_client.post("/ai/completions", json={"prompt": "Say hi"})

        assert response.status_code == 500
        assert response.json() == {"error": "No response from model"}

    def test_prompt_required(self, app_client):
        """Missing prompt is a 400."""
        response = app_client.post("/ai/completions", json={})
        assert response.status_code == 400

    def test_provider_error(self, app_client, provider):
        """Non-rate-limit provider failures are a 500 carrying the detail."""
        provider.fail("model not found")

        response = app_client.post("/ai/completions", json={"prompt": "hi", "model": "nope"})

        assert response.status_code == 500
        assert "model not found" in response.json()["error"]
