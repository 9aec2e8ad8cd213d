"""
Error taxonomy for the agent and the task API.

Every AgentError knows the HTTP status it maps to; main.py turns them into
{"error": ..., "retry_after_seconds": ...} responses.
"""
from typing import Optional


class AgentError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(AgentError):
    status_code = 400


class NotFound(AgentError):
    status_code = 404


class Forbidden(AgentError):
    status_code = 403


class RateLimited(AgentError):
    """Local or provider-side rate limit. Always carries a retry-after estimate."""

    status_code = 429

    def __init__(self, message: str, retry_after_seconds: int = 60):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict:
        return {"error": self.message, "retry_after_seconds": self.retry_after_seconds}


class AllModelsExhausted(RateLimited):
    """Every candidate model was skipped or rejected for rate limiting."""

    def __init__(self, message: str, retry_after_seconds: int = 60, last_error: Optional[object] = None):
        super().__init__(message, retry_after_seconds)
        self.last_error = last_error


class ProviderError(AgentError):
    """Any non-rate-limit failure of the completions provider."""

    status_code = 500


class SchedulerItemFailure(AgentError):
    """One due recurring item failed during a scheduler tick."""

    def __init__(self, item_id: str, cause: Exception):
        super().__init__(f"Scheduled item {item_id} failed: {cause}")
        self.item_id = item_id
        self.cause = cause
