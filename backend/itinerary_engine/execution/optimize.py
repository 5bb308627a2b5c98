"""Day-level heuristics: route ordering, geographic clustering and pacing.

The planners are pure over a Day value: they return a proposed slot order (or
window list) and never touch the input. Only movable slots change position;
locked, anchor, travel and meal slots keep theirs. apply_order and the commute
helpers below it update a day in place.
"""

from dataclasses import dataclass
from itertools import permutations

from backend.itinerary_engine.config import Settings, get_settings
from backend.itinerary_engine.constraints.lookup import (
    effective_behavior,
    is_movable,
    is_travel_slot,
    slot_exit_location,
    slot_location,
)
from backend.itinerary_engine.models.common import SlotBehavior, TimeRange
from backend.itinerary_engine.models.itinerary import Commute, Day, Slot
from backend.itinerary_engine.utils.geo_time import (
    estimate_commute_minutes,
    format_minutes_to_time,
    haversine_distance_km,
    haversine_distance_m,
    infer_commute_method,
    try_parse_time,
)

MIN_BALANCED_SLOT_MIN = 30
BALANCE_STEP_MIN = 5


@dataclass(frozen=True)
class RoutePlan:
    """Proposed slot order for a day and the commute totals behind it."""

    order: list[str]
    original_minutes: int
    new_minutes: int

    @property
    def minutes_saved(self) -> int:
        return max(0, self.original_minutes - self.new_minutes)


def movable_positions(day: Day) -> list[int]:
    """Indexes of slots whose content optimizers may relocate."""
    return [i for i, slot in enumerate(day.slots) if is_movable(slot)]


def commute_minutes(a: Slot, b: Slot, predecessors: dict[str, str | None], settings: Settings) -> int:
    """Cost of travelling from slot a to slot b.

    The recorded commute is used when a was b's predecessor in the original
    order; otherwise the leg is estimated from coordinates, else a flat default.
    """
    if predecessors.get(b.slot_id) == a.slot_id and b.commute_from_previous is not None:
        return b.commute_from_previous.duration
    start = slot_exit_location(a)
    end = slot_location(b)
    if start is None or end is None:
        return settings.unknown_commute_min
    distance = haversine_distance_m(start, end)
    return estimate_commute_minutes(distance, infer_commute_method(distance))


def route_minutes(slots: list[Slot], predecessors: dict[str, str | None], settings: Settings) -> int:
    return sum(
        commute_minutes(slots[i - 1], slots[i], predecessors, settings) for i in range(1, len(slots))
    )


def slot_predecessors(day: Day) -> dict[str, str | None]:
    return {
        slot.slot_id: day.slots[i - 1].slot_id if i > 0 else None
        for i, slot in enumerate(day.slots)
    }


def estimate_commute(a: Slot, b: Slot) -> Commute | None:
    """Estimated leg from slot a to slot b; None unless both ends have coordinates."""
    start = slot_exit_location(a)
    end = slot_location(b)
    if start is None or end is None:
        return None
    distance = haversine_distance_m(start, end)
    method = infer_commute_method(distance)
    return Commute(
        method=method,
        duration=estimate_commute_minutes(distance, method),
        distance=round(distance),
    )


def refresh_commutes(day: Day, predecessors: dict[str, str | None]) -> list[str]:
    """Re-estimate the commute of every slot whose previous slot has changed.

    Args:
        day: Day to update in place
        predecessors: Previous-slot ids before the change (see slot_predecessors)

    Returns:
        Ids of slots whose commute record was replaced
    """
    refreshed: list[str] = []
    for i, slot in enumerate(day.slots):
        previous = day.slots[i - 1] if i > 0 else None
        previous_id = previous.slot_id if previous is not None else None
        if slot.slot_id in predecessors and predecessors[slot.slot_id] == previous_id:
            continue
        slot.commute_from_previous = estimate_commute(previous, slot) if previous else None
        refreshed.append(slot.slot_id)
    return refreshed


def commute_records(day: Day) -> dict[str, Commute | None]:
    """Copies of each slot's commute record, keyed by slot id."""
    return {
        slot.slot_id: slot.commute_from_previous.model_copy() if slot.commute_from_previous else None
        for slot in day.slots
    }


def restore_commutes(day: Day, records: dict[str, Commute | None]) -> None:
    """Put back recorded commutes for the slots named in ``records``."""
    for slot in day.slots:
        if slot.slot_id in records:
            record = records[slot.slot_id]
            slot.commute_from_previous = record.model_copy() if record else None


def _place(day: Day, positions: list[int], content: list[Slot]) -> list[Slot]:
    """Day slots with the given content dropped into the movable positions."""
    placed = list(day.slots)
    for position, slot in zip(positions, content):
        placed[position] = slot
    return placed


def plan_route(day: Day, settings: Settings | None = None) -> RoutePlan:
    """Reorder movable slots to minimise total commute minutes.

    Exhaustive over permutations up to ``exhaustive_route_limit`` movable slots,
    nearest-neighbour beyond that. Ties keep the original order.

    Args:
        day: Day to optimise
        settings: Settings override (limits and default leg cost)

    Returns:
        RoutePlan with the proposed full-day slot id order
    """
    settings = settings or get_settings()
    predecessors = slot_predecessors(day)
    original = route_minutes(day.slots, predecessors, settings)
    positions = movable_positions(day)
    movable = [day.slots[i] for i in positions]

    if len(movable) < 2:
        return RoutePlan([s.slot_id for s in day.slots], original, original)

    best_slots = list(day.slots)
    best_minutes = original
    if len(movable) <= settings.exhaustive_route_limit:
        for candidate in permutations(movable):
            placed = _place(day, positions, list(candidate))
            minutes = route_minutes(placed, predecessors, settings)
            if minutes < best_minutes:
                best_slots, best_minutes = placed, minutes
    else:
        placed = _nearest_neighbour(day, positions, movable, predecessors, settings)
        minutes = route_minutes(placed, predecessors, settings)
        if minutes < best_minutes:
            best_slots, best_minutes = placed, minutes

    return RoutePlan([s.slot_id for s in best_slots], original, best_minutes)


def _nearest_neighbour(
    day: Day,
    positions: list[int],
    movable: list[Slot],
    predecessors: dict[str, str | None],
    settings: Settings,
) -> list[Slot]:
    placed = list(day.slots)
    remaining = list(movable)
    for position in positions:
        if position == 0:
            chosen = remaining[0]
        else:
            previous = placed[position - 1]
            chosen = min(
                remaining, key=lambda s: commute_minutes(previous, s, predecessors, settings)
            )
        placed[position] = chosen
        remaining.remove(chosen)
    return placed


def plan_clusters(day: Day, settings: Settings | None = None) -> list[str]:
    """Make geographically close movable slots adjacent.

    Single-linkage clusters within ``cluster_radius_km``; clusters keep the order
    of their first member, members keep their relative order. Slots without
    coordinates form their own cluster.
    """
    settings = settings or get_settings()
    positions = movable_positions(day)
    movable = [day.slots[i] for i in positions]

    parent = list(range(len(movable)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    for i in range(len(movable)):
        loc_i = slot_location(movable[i])
        if loc_i is None:
            continue
        for j in range(i + 1, len(movable)):
            loc_j = slot_location(movable[j])
            if loc_j is None:
                continue
            if haversine_distance_km(loc_i, loc_j) <= settings.cluster_radius_km:
                root_i, root_j = find(i), find(j)
                if root_i != root_j:
                    parent[max(root_i, root_j)] = min(root_i, root_j)

    clusters: dict[int, list[Slot]] = {}
    for i, slot in enumerate(movable):
        clusters.setdefault(find(i), []).append(slot)
    # Roots are always the lowest member index, so sorting roots gives first-appearance order
    content = [slot for root in sorted(clusters) for slot in clusters[root]]
    return [s.slot_id for s in _place(day, positions, content)]


def plan_balance(day: Day, settings: Settings | None = None) -> list[TimeRange] | None:
    """Shorten flexible slots proportionally so the day fits the activity limit.

    Returns:
        New windows for every slot in day order, or None when the day is within
        the limit or nothing can be shortened
    """
    settings = settings or get_settings()
    windows: list[tuple[int, int] | None] = []
    for slot in day.slots:
        start = try_parse_time(slot.time_range.start)
        end = try_parse_time(slot.time_range.end)
        windows.append((start, end) if start is not None and end is not None and end > start else None)

    scheduled = 0
    flexible: list[int] = []
    for i, slot in enumerate(day.slots):
        window = windows[i]
        if window is None or is_travel_slot(slot):
            continue
        scheduled += window[1] - window[0]
        if not slot.is_locked and effective_behavior(slot) == SlotBehavior.FLEX:
            flexible.append(i)

    excess = scheduled - settings.max_daily_activity_min
    flexible_total = sum(windows[i][1] - windows[i][0] for i in flexible)  # type: ignore[index]
    if excess <= 0 or flexible_total == 0:
        return None

    ratio = max(0.0, 1 - excess / flexible_total)
    new_ranges = [slot.time_range.model_copy() for slot in day.slots]
    changed = False
    for i in flexible:
        start, end = windows[i]  # type: ignore[misc]
        length = end - start
        shortened = int(length * ratio) // BALANCE_STEP_MIN * BALANCE_STEP_MIN
        shortened = min(length, max(MIN_BALANCED_SLOT_MIN, shortened))
        if shortened < length:
            new_ranges[i] = TimeRange(
                start=day.slots[i].time_range.start, end=format_minutes_to_time(start + shortened)
            )
            changed = True
    return new_ranges if changed else None


def apply_order(
    day: Day,
    order: list[str],
    time_ranges: list[TimeRange] | None = None,
    commutes: dict[str, Commute | None] | None = None,
) -> None:
    """Rearrange a day's slots in place by id.

    Slot content (id, options) follows the id; the window and slot type stay with
    the position unless explicit windows are given. Slots that end up behind a
    different slot get a re-estimated commute, unless ``commutes`` supplies the
    exact records to restore.

    Raises:
        ValueError: If the order is not a permutation of the day's slot ids
    """
    by_id = {slot.slot_id: slot for slot in day.slots}
    if sorted(order) != sorted(by_id) or len(order) != len(day.slots):
        raise ValueError(f"slot order does not match day {day.day_number}")
    if time_ranges is not None and len(time_ranges) != len(day.slots):
        raise ValueError(f"expected {len(day.slots)} time ranges for day {day.day_number}")

    predecessors = slot_predecessors(day)
    positional = [(slot.time_range, slot.slot_type) for slot in day.slots]
    reordered = [by_id[slot_id] for slot_id in order]
    for i, slot in enumerate(reordered):
        window, slot_type = positional[i]
        slot.slot_type = slot_type
        slot.time_range = (time_ranges[i] if time_ranges is not None else window).model_copy()
    day.slots = reordered
    if commutes is not None:
        restore_commutes(day, commutes)
    else:
        refresh_commutes(day, predecessors)
