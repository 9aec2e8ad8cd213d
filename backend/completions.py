"""
Completions provider adapter and the invoker that wraps it with local rate
limiting, rate-limit retries and multi-model fallback.

Provider failures are returned as tagged ProviderResult values rather than
raised, so the retry/fallback logic branches on `kind` instead of parsing
error text.
"""
import asyncio
import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

import anthropic

import config
from errors import AllModelsExhausted, ProviderError
from rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

RATE_LIMIT_PATTERN = re.compile(r"rate\s*limit", re.IGNORECASE)
WAIT_SECONDS_PATTERN = re.compile(r"wait\s+(\d+)\s*seconds?", re.IGNORECASE)


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    PROVIDER_ERROR = "provider_error"
    TRANSPORT = "transport"


@dataclass
class ToolCall:
    name: str
    arguments: dict
    id: Optional[str] = None


@dataclass
class Completion:
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    model: str = ""
    raw: Any = None


@dataclass
class CompletionRequest:
    messages: list[dict]
    system: Optional[str] = None
    tools: Optional[list[dict]] = None
    tool_choice: Optional[str] = None  # "auto" | "any" | "none"
    max_tokens: int = 500
    temperature: Optional[float] = None


@dataclass
class ProviderResult:
    ok: bool
    value: Optional[Completion] = None
    kind: Optional[ErrorKind] = None
    detail: str = ""
    retry_after_seconds: Optional[int] = None

    @classmethod
    def success(cls, value: Completion) -> "ProviderResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, detail: str, retry_after_seconds: Optional[int] = None) -> "ProviderResult":
        return cls(ok=False, kind=kind, detail=detail, retry_after_seconds=retry_after_seconds)


@dataclass
class Invocation:
    response: Completion
    model_used: str


class CompletionsProvider(Protocol):
    async def complete(self, request: CompletionRequest, model: str) -> ProviderResult:
        ...


def parse_retry_after(headers: Any, message: str) -> Optional[int]:
    """Retry-after seconds from response headers, else from 'wait N seconds' in the message."""
    if headers is not None:
        raw = headers.get("retry-after") or headers.get("Retry-After")
        if raw:
            try:
                return int(float(str(raw)))
            except ValueError:
                pass
    match = WAIT_SECONDS_PATTERN.search(message or "")
    if match:
        return int(match.group(1))
    return None


def _headers_of(exc: Exception) -> Any:
    response = getattr(exc, "response", None)
    return getattr(response, "headers", None)


class AnthropicProvider:
    """CompletionsProvider backed by anthropic.AsyncAnthropic."""

    def __init__(self, client: anthropic.AsyncAnthropic):
        self._client = client

    async def complete(self, request: CompletionRequest, model: str) -> ProviderResult:
        kwargs: dict = {
            "model": model,
            "max_tokens": request.max_tokens,
            "messages": request.messages,
        }
        if request.system:
            kwargs["system"] = request.system
        if request.tools:
            kwargs["tools"] = request.tools
            if request.tool_choice:
                kwargs["tool_choice"] = {"type": request.tool_choice}
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.RateLimitError as e:
            return ProviderResult.failure(
                ErrorKind.RATE_LIMITED, str(e), parse_retry_after(_headers_of(e), str(e))
            )
        except anthropic.APIConnectionError as e:
            # includes APITimeoutError
            return ProviderResult.failure(ErrorKind.TRANSPORT, str(e))
        except anthropic.APIStatusError as e:
            if e.status_code == 429 or RATE_LIMIT_PATTERN.search(str(e)):
                return ProviderResult.failure(
                    ErrorKind.RATE_LIMITED, str(e), parse_retry_after(_headers_of(e), str(e))
                )
            return ProviderResult.failure(ErrorKind.PROVIDER_ERROR, str(e))
        except anthropic.APIError as e:
            if RATE_LIMIT_PATTERN.search(str(e)):
                return ProviderResult.failure(ErrorKind.RATE_LIMITED, str(e), parse_retry_after(None, str(e)))
            return ProviderResult.failure(ErrorKind.PROVIDER_ERROR, str(e))

        text_parts = []
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(name=block.name, arguments=dict(block.input or {}), id=block.id))
        return ProviderResult.success(
            Completion(text="".join(text_parts), tool_calls=tool_calls, model=model, raw=response)
        )


class CompletionsInvoker:
    def __init__(
        self,
        provider: CompletionsProvider,
        limiter: RateLimiter,
        fallback_models: Optional[list[str]] = None,
        max_retries: int = config.PROVIDER_MAX_RETRIES,
        max_wait_seconds: float = config.PROVIDER_MAX_WAIT_SECONDS,
        no_temperature_marker: str = config.NO_TEMPERATURE_MARKER,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.limiter = limiter
        self.fallback_models = config.FALLBACK_MODELS if fallback_models is None else fallback_models
        self.max_retries = max_retries
        self.max_wait_seconds = max_wait_seconds
        self.no_temperature_marker = no_temperature_marker
        self._sleep = sleep

    def model_order(self, primary: str) -> list[str]:
        """Primary first, then the fallbacks once each (primary excluded)."""
        order = [primary]
        for model in self.fallback_models:
            if model and model not in order:
                order.append(model)
        return order

    def prepare(self, request: CompletionRequest, model: str) -> CompletionRequest:
        if self.no_temperature_marker and self.no_temperature_marker in model:
            return replace(request, temperature=None)
        return request

    async def call_with_retries(self, request: CompletionRequest, model: str) -> ProviderResult:
        """Call one model, retrying provider rate limits up to max_retries times."""
        attempt = 0
        while True:
            result = await self.provider.complete(self.prepare(request, model), model)
            if result.ok or result.kind != ErrorKind.RATE_LIMITED or attempt >= self.max_retries:
                return result
            suggested = result.retry_after_seconds
            if suggested and suggested > self.max_wait_seconds:
                logger.warning(f"Model {model} asked to wait {suggested}s (> {self.max_wait_seconds}s), not retrying")
                return result
            wait = suggested if suggested else 2 ** attempt
            logger.info(f"Model {model} rate limited, retrying in {wait}s")
            await self._sleep(min(wait, self.max_wait_seconds))
            attempt += 1

    async def invoke(self, request: CompletionRequest, primary_model: str, caller_key: str) -> Invocation:
        last: Optional[ProviderResult] = None
        for model in self.model_order(primary_model):
            decision = self.limiter.check(f"{caller_key}:{model}")
            if not decision.admitted:
                logger.info(f"Local rate limit for {caller_key}:{model}, skipping")
                last = ProviderResult.failure(
                    ErrorKind.RATE_LIMITED,
                    f"Local rate limit for model {model}",
                    decision.retry_after_seconds,
                )
                continue

            result = await self.call_with_retries(request, model)
            if result.ok:
                return Invocation(response=result.value, model_used=model)
            if result.kind == ErrorKind.RATE_LIMITED:
                logger.warning(f"Model {model} exhausted by rate limits: {result.detail}")
                last = result
                continue
            logger.warning(f"Provider error on model {model}: {result.detail}")
            raise ProviderError(result.detail or "Provider error")

        retry_after = (last.retry_after_seconds if last else None) or 60
        raise AllModelsExhausted(
            f"All models rate limited. Try again in {retry_after}s.",
            retry_after_seconds=retry_after,
            last_error=last,
        )
