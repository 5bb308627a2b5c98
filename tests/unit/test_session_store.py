"""Tests for session state, history bounds and TTL eviction."""

from backend.itinerary_engine.config import Settings
from backend.itinerary_engine.execution.session import MAX_TURNS, SessionState, SessionStore
from backend.itinerary_engine.models.intent import Intent, IntentType
from backend.itinerary_engine.models.itinerary import Itinerary

SETTINGS = Settings(_env_file=None)  # type: ignore[call-arg]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def make_itinerary(destination: str = "Tokyo") -> Itinerary:
    """Helper to create an itinerary with no days."""
    return Itinerary(destination=destination)


def make_session(max_history: int = 50) -> SessionState:
    """Helper to create a bare session."""
    return SessionState(session_id="s1", created_at=0, last_active_at=0, max_history=max_history)


def test_record_clears_redo_and_bounds_history() -> None:
    """Test that new mutations drop redo entries and old undo entries."""
    session = make_session(max_history=2)
    session.redo_stack.append(None)  # type: ignore[arg-type]

    for name in ("a", "b", "c"):
        session.record(Intent(type=IntentType.UNDO), make_itinerary(name), make_itinerary(name + "2"))

    assert [entry.before.destination for entry in session.undo_stack] == ["b", "c"]
    assert session.redo_stack == []


def test_replace_itinerary_keeps_history_for_same_value() -> None:
    """Test that reloading the same itinerary keeps undo history."""
    session = make_session()
    session.itinerary = make_itinerary()
    session.record(Intent(type=IntentType.UNDO), make_itinerary(), make_itinerary())

    session.replace_itinerary(make_itinerary())
    assert len(session.undo_stack) == 1

    session.replace_itinerary(make_itinerary("Osaka"))
    assert session.undo_stack == []
    assert session.itinerary is not None
    assert session.itinerary.destination == "Osaka"


def test_add_turn_is_bounded() -> None:
    """Test that only the most recent turns are kept."""
    session = make_session()

    for i in range(MAX_TURNS + 5):
        session.add_turn("user", str(i))

    assert len(session.turns) == MAX_TURNS
    assert session.turns[0] == {"role": "user", "content": "5"}


def test_begin_request_cancels_previous_token() -> None:
    """Test that a new request supersedes the one in flight."""
    session = make_session()

    first = session.begin_request()
    second = session.begin_request()

    assert first.cancelled
    assert not second.cancelled

    session.end_request(first)
    assert session.cancel_token is second
    session.end_request(second)
    assert session.cancel_token is None


def test_get_or_create_reuses_and_generates_ids() -> None:
    """Test session creation, reuse and generated ids."""
    store = SessionStore(settings=SETTINGS)

    named = store.get_or_create("abc")
    again = store.get_or_create("abc")
    generated = store.get_or_create()

    assert named is again
    assert generated.session_id != "abc"
    assert len(generated.session_id) == 32
    assert len(store) == 2
    assert "abc" in store
    assert store.get("missing") is None


def test_store_defaults_come_from_settings() -> None:
    """Test that TTL and history limits default to settings."""
    settings = Settings(session_ttl_seconds=5, session_max_history=3, _env_file=None)  # type: ignore[call-arg]
    store = SessionStore(settings=settings)

    assert store.ttl_seconds == 5
    assert store.get_or_create("x").max_history == 3


def test_idle_sessions_are_evicted() -> None:
    """Test that sessions idle past the TTL are dropped and cancelled."""
    clock = FakeClock()
    store = SessionStore(ttl_seconds=60, clock=clock, settings=SETTINGS)
    idle = store.get_or_create("idle")
    token = idle.begin_request()
    clock.now += 30
    store.get_or_create("active")
    clock.now += 45

    assert store.get("active") is not None
    assert "idle" not in store
    assert token.cancelled


def test_access_refreshes_activity() -> None:
    """Test that lookups keep a session alive."""
    clock = FakeClock()
    store = SessionStore(ttl_seconds=60, clock=clock, settings=SETTINGS)
    store.get_or_create("s")

    for _ in range(3):
        clock.now += 50
        assert store.get("s") is not None

    assert store.evict_expired() == 0
    clock.now += 61
    assert store.evict_expired() == 1


def test_discard_removes_session() -> None:
    """Test explicit session removal."""
    store = SessionStore(settings=SETTINGS)
    store.get_or_create("s")

    assert store.discard("s")
    assert not store.discard("s")
    assert len(store) == 0
