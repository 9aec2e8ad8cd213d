"""
Per-conversation state: message history plus at most one pending proposal.

The default store keeps sessions in process memory; they vanish on restart.
Concurrent turns on one session key are last-write-wins.
"""
from dataclasses import dataclass, field
from typing import Optional, Protocol

from models import Proposal


@dataclass
class Session:
    key: str
    system: Optional[str] = None
    messages: list[dict] = field(default_factory=list)
    proposal: Optional[Proposal] = None


class SessionStore(Protocol):
    def get(self, key: str) -> Optional[Session]:
        ...

    def set(self, session: Session) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemorySessionStore:
    def __init__(self):
        self._sessions: dict[str, Session] = {}

    def get(self, key: str) -> Optional[Session]:
        return self._sessions.get(key)

    def set(self, session: Session) -> None:
        self._sessions[session.key] = session

    def delete(self, key: str) -> None:
        self._sessions.pop(key, None)

    def __len__(self) -> int:
        return len(self._sessions)
