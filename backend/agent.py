"""
Conversational task agent.

One call to TaskAgent.handle() is one user turn. A turn either commits a task
(direct draft confirm, or confirming the session's pending proposal), edits
the pending proposal in place, or runs an open-ended provider turn with the
task tools attached. Cheap local checks always run before a provider call.
"""
import json
import logging
import re
from datetime import datetime
from typing import Callable, NamedTuple, Optional

import config
from completions import CompletionRequest, CompletionsInvoker
from database import create_task_db, get_user_db
from dispatch import STATUSES, dispatch_tool_call, normalize_due_date, pick_tool_call
from errors import AllModelsExhausted, NotFound, RateLimited, ValidationError
from models import AgentRequest, Proposal, TaskDraft
from nlu import (
    detect_language,
    extract_due_candidate,
    extract_new_title,
    extract_status,
    infer_title,
    is_confirmation,
    mentions_date,
    parse_clock_time_same_day,
)
from prompts import AGENT_SYSTEM_PROMPTS, CLASSIFIER_PROMPTS, MESSAGES, TOOLS, locale
from rate_limiter import RateLimiter
from session_store import Session, SessionStore
from utils import parse_instant, to_iso, utcnow

logger = logging.getLogger(__name__)

JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)
CLASSIFIER_MAX_TOKENS = 120


class Verdict(NamedTuple):
    confirm: bool
    status: Optional[str] = None


def parse_verdict(text: str) -> Optional[Verdict]:
    """Read the classifier's {"confirm", "status"} JSON, tolerating surrounding prose."""
    match = JSON_OBJECT_PATTERN.search(text or "")
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    status = parsed.get("status") if parsed.get("status") in STATUSES else None
    return Verdict(confirm=bool(parsed.get("confirm")), status=status)


class TaskAgent:
    def __init__(
        self,
        invoker: CompletionsInvoker,
        sessions: SessionStore,
        limiter: RateLimiter,
        default_model: str = config.DEFAULT_MODEL,
        grace_seconds: int = config.DUE_DATE_GRACE_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.invoker = invoker
        self.sessions = sessions
        self.limiter = limiter
        self.default_model = default_model
        self.grace_seconds = grace_seconds
        self._clock = clock

    def _rate_limited(self, msgs: dict, seconds: int) -> RateLimited:
        text = msgs["rate_limited"].format(
            max=self.limiter.max_attempts,
            window=int(self.limiter.window_seconds),
            seconds=seconds,
        )
        return RateLimited(text, retry_after_seconds=seconds)

    async def handle(self, request: AgentRequest) -> dict:
        prompt = request.prompt.strip() if isinstance(request.prompt, str) else ""
        lang = locale(request.lang or detect_language(prompt))
        msgs = MESSAGES[lang]

        if not prompt:
            raise ValidationError(msgs["error_prompt_required"])
        if not request.user_id:
            raise ValidationError(msgs["error_user_required"])
        if get_user_db(request.user_id) is None:
            raise NotFound(msgs["error_user_not_found"])

        session_key = request.session_id or request.user_id
        decision = self.limiter.check(session_key)
        if not decision.admitted:
            raise self._rate_limited(msgs, decision.retry_after_seconds)

        now = self._clock()
        model = request.model or self.default_model

        if request.confirm:
            return self.commit_draft(request.draft, request.user_id, msgs, now)

        session = self.sessions.get(session_key) or Session(key=session_key)
        if session.proposal is not None:
            result = await self._resolve_proposal(session, prompt, request, lang, msgs, model, now)
            if result is not None:
                return result

        try:
            return await self._open_turn(session, prompt, request, lang, msgs, model, now)
        except AllModelsExhausted as e:
            localized = self._rate_limited(msgs, e.retry_after_seconds)
            raise AllModelsExhausted(
                localized.message, retry_after_seconds=e.retry_after_seconds, last_error=e.last_error
            ) from e

    def commit_draft(self, draft: Optional[TaskDraft], user_id: str, msgs: dict, now: datetime) -> dict:
        """Direct-confirm path: persist the caller's draft without any NLU."""
        draft = draft or TaskDraft()
        title = (draft.title or "").strip()
        if not title:
            raise ValidationError(msgs["error_title_required_confirm"])
        status = draft.status if draft.status in STATUSES else "pending"
        return self._create(user_id, title, draft.description, draft.due_date, status, msgs, now)

    def _create(
        self,
        user_id: str,
        title: str,
        description: Optional[str],
        due_date: Optional[str],
        status: str,
        msgs: dict,
        now: datetime,
    ) -> dict:
        due, notes = normalize_due_date(due_date, msgs, now, self.grace_seconds)
        created = create_task_db(
            user_id=user_id,
            title=title,
            description=description,
            due_date=due,
            status=status,
        )
        logger.info(f"Committed task {created.id} for user {user_id}")
        return {"message": msgs["task_created"], "data": created.model_dump(), "notes": notes}

    def _commit_proposal(self, session: Session, user_id: str, status: str, msgs: dict, now: datetime) -> dict:
        proposal = session.proposal
        result = self._create(
            user_id, proposal.title.strip(), proposal.description, proposal.due_date, status, msgs, now
        )
        session.proposal = None
        self.sessions.set(session)
        return result

    def _repropose(self, session: Session, proposal: Proposal, template: str, msgs: dict) -> dict:
        message = msgs[template].format(title=proposal.title, when=proposal.due_date)
        session.proposal = proposal.model_copy(update={"assistant_message": message})
        self.sessions.set(session)
        return {"requires_confirmation": True, "assistant_message": message}

    async def _resolve_proposal(
        self,
        session: Session,
        prompt: str,
        request: AgentRequest,
        lang: str,
        msgs: dict,
        model: str,
        now: datetime,
    ) -> Optional[dict]:
        """Handle a reply to a pending proposal; None means fall through to an open turn."""
        proposal = session.proposal
        dated = mentions_date(prompt)

        base = parse_instant(proposal.due_date)
        adjusted = parse_clock_time_same_day(prompt, base) if base is not None and not dated else None

        new_title = extract_new_title(prompt)
        if new_title:
            update = {"title": new_title}
            if adjusted is not None:
                update["due_date"] = to_iso(adjusted)
            return self._repropose(session, proposal.model_copy(update=update), "title_updated", msgs)

        if adjusted is not None:
            return self._repropose(
                session, proposal.model_copy(update={"due_date": to_iso(adjusted)}), "time_adjusted", msgs
            )

        verdict = await self._classify(session.key, proposal, prompt, request, lang, model)
        if verdict is not None and verdict.confirm:
            status = verdict.status or extract_status(prompt) or proposal.status
            return self._commit_proposal(session, request.user_id, status, msgs, now)

        if is_confirmation(prompt) and not dated and proposal.title and proposal.due_date:
            status = extract_status(prompt) or proposal.status
            return self._commit_proposal(session, request.user_id, status, msgs, now)
        return None

    async def _classify(
        self,
        session_key: str,
        proposal: Proposal,
        prompt: str,
        request: AgentRequest,
        lang: str,
        model: str,
    ) -> Optional[Verdict]:
        """Ask the provider whether `prompt` accepts the proposal. Any failure yields None."""
        if not self.limiter.check(f"{session_key}:confirm").admitted:
            logger.info(f"Classifier skipped for {session_key}: rate limited")
            return None

        content = prompt
        if proposal.assistant_message:
            content = f"Assistant: {proposal.assistant_message}\nUser: {prompt}"
        classify_request = CompletionRequest(
            messages=[{"role": "user", "content": content}],
            system=CLASSIFIER_PROMPTS[lang],
            max_tokens=min(CLASSIFIER_MAX_TOKENS, request.max_tokens or CLASSIFIER_MAX_TOKENS),
            temperature=0,
        )
        result = await self.invoker.call_with_retries(classify_request, model)
        if not result.ok:
            logger.info(f"Classifier unavailable ({result.kind}): {result.detail}")
            return None
        return parse_verdict(result.value.text)

    async def _open_turn(
        self,
        session: Session,
        prompt: str,
        request: AgentRequest,
        lang: str,
        msgs: dict,
        model: str,
        now: datetime,
    ) -> dict:
        system = AGENT_SYSTEM_PROMPTS[lang].format(now=to_iso(now))
        history = session.messages + [{"role": "user", "content": prompt}]
        completion_request = CompletionRequest(
            messages=history,
            system=system,
            tools=TOOLS,
            tool_choice="auto",
            max_tokens=request.max_tokens or 500,
            temperature=request.temperature,
        )
        invocation = await self.invoker.invoke(completion_request, model, session.key)
        response = invocation.response
        logger.debug(f"Open turn for {session.key} answered by {invocation.model_used}")

        call = pick_tool_call(response.tool_calls)
        if call is not None:
            result = dispatch_tool_call(call, request.user_id, msgs, now)
            reply = result.get("assistant_message") or result.get("message")
            self._remember(session, system, history, reply)
            return result

        reply = response.text.strip()
        title = infer_title(prompt) or msgs["default_title"]
        due = extract_due_candidate(prompt, now)
        if not reply:
            if due is not None:
                when = to_iso(due)
                proposal_text = msgs["proposal"].format(subject=title.lower(), when=when, title=title)
                session.proposal = Proposal(title=title, due_date=when, assistant_message=proposal_text)
                reply = f"{proposal_text} {msgs['status_default']}"
            else:
                reply = " ".join(
                    [msgs["ask_title"], msgs["ask_due_date"], msgs["ask_description"], msgs["status_default"]]
                )
        elif due is not None:
            session.proposal = Proposal(title=title, due_date=to_iso(due), assistant_message=reply)

        self._remember(session, system, history, reply)
        return {"requires_confirmation": True, "assistant_message": reply}

    def _remember(self, session: Session, system: str, history: list[dict], reply: str) -> None:
        session.system = system
        session.messages = history + [{"role": "assistant", "content": reply}]
        self.sessions.set(session)
