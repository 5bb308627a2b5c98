"""Per-session conversation state: current itinerary, undo/redo history, turns."""

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from backend.itinerary_engine.config import Settings, get_settings
from backend.itinerary_engine.llm.client import CancelToken, ChatTurn
from backend.itinerary_engine.models.intent import Intent
from backend.itinerary_engine.models.itinerary import Itinerary
from backend.itinerary_engine.models.remediation import FlightConstraints

logger = logging.getLogger(__name__)

MAX_TURNS = 40


@dataclass
class HistoryEntry:
    """One applied mutation with the snapshots on either side of it."""

    intent: Intent
    before: Itinerary
    after: Itinerary


@dataclass
class SessionState:
    """Mutable state owned by exactly one session."""

    session_id: str
    created_at: float
    last_active_at: float
    max_history: int = 50
    itinerary: Itinerary | None = None
    flight: FlightConstraints | None = None
    undo_stack: list[HistoryEntry] = field(default_factory=list)
    redo_stack: list[HistoryEntry] = field(default_factory=list)
    turns: list[ChatTurn] = field(default_factory=list)
    last_activity_name: str | None = None
    last_day_number: int | None = None
    cancel_token: CancelToken | None = None

    def record(self, intent: Intent, before: Itinerary, after: Itinerary) -> None:
        """Push an applied mutation; a new branch of history discards the redo stack."""
        self.undo_stack.append(HistoryEntry(intent=intent, before=before, after=after))
        if len(self.undo_stack) > self.max_history:
            del self.undo_stack[: len(self.undo_stack) - self.max_history]
        self.redo_stack.clear()

    def replace_itinerary(self, itinerary: Itinerary) -> None:
        """Load a different itinerary; history referring to the old one is dropped."""
        if self.itinerary is not None and self.itinerary == itinerary:
            return
        self.itinerary = itinerary
        self.undo_stack.clear()
        self.redo_stack.clear()

    def add_turn(self, role: str, content: str) -> None:
        self.turns.append({"role": role, "content": content})
        if len(self.turns) > MAX_TURNS:
            del self.turns[: len(self.turns) - MAX_TURNS]

    def begin_request(self) -> CancelToken:
        """Cancel any in-flight request and hand out a fresh token."""
        if self.cancel_token is not None:
            self.cancel_token.cancel()
        self.cancel_token = CancelToken()
        return self.cancel_token

    def end_request(self, token: CancelToken) -> None:
        if self.cancel_token is token:
            self.cancel_token = None


class SessionStore:
    """In-process session registry with inactivity eviction.

    Sessions are created on first use and evicted once idle for longer than the
    TTL. Eviction runs on every access; there is no background sweeper.
    """

    def __init__(
        self,
        ttl_seconds: int | None = None,
        max_history: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.session_ttl_seconds
        self.max_history = max_history if max_history is not None else settings.session_max_history
        self._clock = clock
        self._sessions: dict[str, SessionState] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> SessionState | None:
        """Look up a live session without creating one."""
        self.evict_expired()
        session = self._sessions.get(session_id)
        if session is not None:
            session.last_active_at = self._clock()
        return session

    def get_or_create(self, session_id: str | None = None) -> SessionState:
        """Return the session for an id, creating it (with a fresh id if None) on first use."""
        self.evict_expired()
        now = self._clock()
        if session_id is not None and session_id in self._sessions:
            session = self._sessions[session_id]
            session.last_active_at = now
            return session

        session_id = session_id or uuid.uuid4().hex
        session = SessionState(
            session_id=session_id,
            created_at=now,
            last_active_at=now,
            max_history=self.max_history,
        )
        self._sessions[session_id] = session
        logger.info(f"Created session {session_id}")
        return session

    def evict_expired(self) -> int:
        """Drop sessions idle longer than the TTL.

        Returns:
            Number of sessions evicted
        """
        cutoff = self._clock() - self.ttl_seconds
        expired = [sid for sid, s in self._sessions.items() if s.last_active_at < cutoff]
        for sid in expired:
            session = self._sessions.pop(sid)
            if session.cancel_token is not None:
                session.cancel_token.cancel()
        if expired:
            logger.info(f"Evicted {len(expired)} idle session(s)")
        return len(expired)

    def discard(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None
