"""Itinerary navigation helpers: target lookup, behavior inference and rigidity."""

import re
from collections.abc import Iterator
from dataclasses import dataclass

from backend.itinerary_engine.models.common import ActivityKind, Coordinates, SlotBehavior
from backend.itinerary_engine.models.itinerary import Activity, Day, Itinerary, Slot

TRANSFER_KEYWORDS = ("transfer", "shinkansen", "airport")
ANCHOR_TAGS = frozenset({"pre-booked", "anchor"})

_RIGIDITY_BY_BEHAVIOR: dict[SlotBehavior, float] = {
    SlotBehavior.ANCHOR: 1.0,
    SlotBehavior.TRAVEL: 0.9,
    SlotBehavior.MEAL: 0.6,
    SlotBehavior.FLEX: 0.4,
}

MOVABLE_RIGIDITY_LIMIT = 0.5

_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class SlotRef:
    """Position of a slot inside an itinerary value."""

    day_index: int
    slot_index: int
    day_number: int
    slot: Slot
    option_id: str | None = None  # Option whose name matched, for name lookups


def normalize_name(name: str) -> str:
    """Lowercase alphanumerics only, so "Senso-ji" matches "sensoji"."""
    return _NON_ALNUM.sub("", name.lower())


def iter_slots(itinerary: Itinerary) -> Iterator[SlotRef]:
    """Yield every slot in chronological order."""
    for day_index, day in enumerate(itinerary.days):
        for slot_index, slot in enumerate(day.slots):
            yield SlotRef(day_index, slot_index, day.day_number, slot)


def find_slot_by_id(itinerary: Itinerary, slot_id: str) -> SlotRef | None:
    """Locate a slot by id."""
    for ref in iter_slots(itinerary):
        if ref.slot.slot_id == slot_id:
            return ref
    return None


def find_activity_by_name(
    itinerary: Itinerary, name: str, day_number: int | None = None
) -> SlotRef | None:
    """Locate the slot holding an activity by name.

    Exact (normalized) matches win over partial ones; partial matching works in
    either direction ("TeamLab" finds "teamLab Borderless" and vice versa). The
    selected option of a slot is checked before its alternatives.
    """
    needle = normalize_name(name)
    if len(needle) < 3:
        return None

    candidates: list[tuple[SlotRef, str]] = []
    for ref in iter_slots(itinerary):
        if day_number is not None and ref.day_number != day_number:
            continue
        selected = ref.slot.selected_option
        ordered = ([selected] if selected else []) + [
            o for o in ref.slot.options if selected is None or o.id != selected.id
        ]
        for option in ordered:
            candidates.append(
                (
                    SlotRef(ref.day_index, ref.slot_index, ref.day_number, ref.slot, option.id),
                    normalize_name(option.activity.name),
                )
            )

    for ref, hay in candidates:
        if hay == needle:
            return ref
    for ref, hay in candidates:
        if hay and (needle in hay or hay in needle):
            return ref
    return None


def is_transfer_activity(activity: Activity | None) -> bool:
    """Transport category, or a name mentioning a transfer keyword."""
    if activity is None:
        return False
    if activity.kind == ActivityKind.TRANSPORT:
        return True
    lowered = activity.name.lower()
    return any(keyword in lowered for keyword in TRANSFER_KEYWORDS)


def is_anchor_activity(activity: Activity | None) -> bool:
    """Activity tagged as pre-booked or anchor."""
    if activity is None:
        return False
    return any(tag.lower() in ANCHOR_TAGS for tag in activity.tags)


def is_travel_slot(slot: Slot) -> bool:
    """Travel-behavior slot or a slot holding a transfer activity."""
    return slot.behavior == SlotBehavior.TRAVEL or is_transfer_activity(slot.activity)


def infer_behavior(slot: Slot) -> SlotBehavior:
    """Behavior a slot should carry given its content and type."""
    activity = slot.activity
    if is_transfer_activity(activity):
        return SlotBehavior.TRAVEL
    if is_anchor_activity(activity):
        return SlotBehavior.ANCHOR
    if slot.slot_type.is_meal:
        return SlotBehavior.MEAL
    return SlotBehavior.FLEX


def effective_behavior(slot: Slot) -> SlotBehavior:
    return slot.behavior or infer_behavior(slot)


def calculate_rigidity(slot: Slot) -> float:
    """Rigidity score in [0, 1]; explicit score wins, locked slots are fully rigid."""
    if slot.rigidity_score is not None:
        return slot.rigidity_score
    if slot.is_locked:
        return 1.0
    return _RIGIDITY_BY_BEHAVIOR[effective_behavior(slot)]


def is_movable(slot: Slot) -> bool:
    """Whether optimizers may relocate the slot's content.

    Only unlocked flex slots outside meal times qualify, and an explicit rigidity
    score at or above MOVABLE_RIGIDITY_LIMIT pins even those.
    """
    if slot.is_locked or slot.slot_type.is_meal:
        return False
    if effective_behavior(slot) != SlotBehavior.FLEX:
        return False
    return calculate_rigidity(slot) < MOVABLE_RIGIDITY_LIMIT


def activity_location(activity: Activity | None) -> Coordinates | None:
    """Coordinates of an activity, ignoring unresolved (0, 0) placeholders."""
    if activity is None or activity.place is None or not activity.place.has_location:
        return None
    return activity.place.coordinates


def slot_location(slot: Slot) -> Coordinates | None:
    return activity_location(slot.activity)


def slot_exit_location(slot: Slot) -> Coordinates | None:
    """Where the traveller ends up after the slot (arrival point for transfers)."""
    activity = slot.activity
    if activity is not None and activity.arrival_place is not None:
        if activity.arrival_place.has_location:
            return activity.arrival_place.coordinates
    return slot_location(slot)


def duplicate_key(slot: Slot) -> str | None:
    """Identity of the selected activity for cross-day duplicate detection."""
    activity = slot.activity
    if activity is None:
        return None
    if activity.place is not None and activity.place.google_place_id:
        return f"place:{activity.place.google_place_id}"
    name = activity.name.lower().strip()
    return f"name:{name}" if name else None


def known_activity_labels(itinerary: Itinerary, limit: int = 10) -> list[tuple[str, Day, Slot]]:
    """Named activities in order, for clarification prompts and error hints."""
    labels: list[tuple[str, Day, Slot]] = []
    for day in itinerary.days:
        for slot in day.slots:
            if slot.activity is not None:
                labels.append((f"{slot.activity.name} (Day {day.day_number})", day, slot))
                if len(labels) >= limit:
                    return labels
    return labels
