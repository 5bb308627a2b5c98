"""Intent models - structured representation of a user's itinerary command."""

from enum import Enum

from pydantic import Field

from backend.itinerary_engine.models.common import CamelModel, SlotType, TimeRange
from backend.itinerary_engine.models.itinerary import Commute, Slot


class IntentType(str, Enum):
    """Closed vocabulary of itinerary actions.

    Adding an entry requires a matching handler in the executor dispatch table.
    """

    ADD_ACTIVITY = "ADD_ACTIVITY"
    REMOVE_ACTIVITY = "REMOVE_ACTIVITY"
    REPLACE_ACTIVITY = "REPLACE_ACTIVITY"
    MOVE_ACTIVITY = "MOVE_ACTIVITY"
    SWAP_ACTIVITIES = "SWAP_ACTIVITIES"
    PRIORITIZE = "PRIORITIZE"
    DEPRIORITIZE = "DEPRIORITIZE"
    SUGGEST_ALTERNATIVES = "SUGGEST_ALTERNATIVES"
    SUGGEST_FROM_REPLACEMENT_POOL = "SUGGEST_FROM_REPLACEMENT_POOL"
    OPTIMIZE_ROUTE = "OPTIMIZE_ROUTE"
    OPTIMIZE_CLUSTERS = "OPTIMIZE_CLUSTERS"
    BALANCE_PACING = "BALANCE_PACING"
    UNDO = "UNDO"
    REDO = "REDO"
    ASK_QUESTION = "ASK_QUESTION"
    # Quick actions
    LOCK_SLOT = "LOCK_SLOT"
    UNLOCK_SLOT = "UNLOCK_SLOT"
    # Day-level restore, produced as the inverse of optimizations
    REORDER_SLOTS = "REORDER_SLOTS"


# Intents that cannot run without resolving a target slot
TARGETED_INTENTS: frozenset[IntentType] = frozenset(
    {
        IntentType.MOVE_ACTIVITY,
        IntentType.SWAP_ACTIVITIES,
        IntentType.REMOVE_ACTIVITY,
        IntentType.REPLACE_ACTIVITY,
        IntentType.PRIORITIZE,
        IntentType.DEPRIORITIZE,
        IntentType.LOCK_SLOT,
        IntentType.UNLOCK_SLOT,
    }
)


class ParseMethod(str, Enum):
    """Which parser tier produced an intent."""

    RULES = "rules"
    LLM = "llm"
    FALLBACK = "fallback"
    QUICK_ACTION = "quick_action"
    SYSTEM = "system"


class IntentParams(CamelModel):
    """Type-dependent parameters; unused fields stay None."""

    activity_name: str | None = None
    activity1_name: str | None = None
    activity2_name: str | None = None
    activity_description: str | None = None
    replacement_description: str | None = None
    slot_id: str | None = None
    slot_ids: list[str] | None = None
    day_number: int | None = None
    from_day: int | None = None
    to_day: int | None = None
    slot_type: SlotType | None = None
    to_slot: SlotType | None = None
    to_time: str | None = None
    position: int | None = None
    category: str | None = None
    location: str | None = None
    duration: int | None = None
    question: str | None = None
    context: str | None = None
    preferences: list[str] | None = None

    # Exact-restore payloads carried by undo intents
    time_range: TimeRange | None = None
    slot_order: list[str] | None = None
    time_ranges: list[TimeRange] | None = None
    slot_snapshot: Slot | None = None
    commutes: dict[str, Commute | None] | None = None


class Intent(CamelModel):
    """A parsed (or system-generated) itinerary action."""

    type: IntentType
    params: IntentParams = Field(default_factory=IntentParams)
    confidence: float = Field(default=1.0, ge=0, le=1)
    explanation: str = ""
    method: ParseMethod = ParseMethod.RULES


class ClarificationOption(CamelModel):
    """One selectable answer to a clarifying question."""

    label: str
    value: str
    action: Intent | None = None


class ClarificationRequest(CamelModel):
    """Returned instead of an Intent when the target is ambiguous or missing."""

    question: str
    options: list[ClarificationOption] = Field(default_factory=list)
    partial_intent: Intent | None = None


class QuickAction(CamelModel):
    """UI-triggerable shortcut carrying a ready-to-run intent."""

    id: str
    label: str
    description: str | None = None
    action: Intent
    is_primary: bool = False
