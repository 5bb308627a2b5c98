"""Automatic itinerary remediation - an ordered pipeline of audited corrections.

Every step takes an itinerary value and returns a corrected deep copy plus the
changes it made; no step mutates its input. Steps are idempotent, so running the
pipeline on its own output produces no further changes.
"""

import logging
from collections import Counter

from backend.itinerary_engine.config import Settings, get_settings
from backend.itinerary_engine.constraints.lookup import (
    duplicate_key,
    is_anchor_activity,
    is_transfer_activity,
    is_travel_slot,
    slot_exit_location,
    slot_location,
)
from backend.itinerary_engine.models.common import SlotBehavior
from backend.itinerary_engine.models.itinerary import Itinerary
from backend.itinerary_engine.models.remediation import (
    FlightConstraints,
    RemediationChange,
    RemediationChangeType,
    RemediationOptions,
    RemediationResult,
)
from backend.itinerary_engine.utils.geo_time import (
    estimate_commute_minutes,
    haversine_distance_m,
    infer_commute_method,
    try_parse_time,
)
from backend.itinerary_engine.utils.logging import StructuredEngineLogger
from backend.itinerary_engine.utils.metrics import PrometheusEngineMetrics

logger = logging.getLogger(__name__)

StepResult = tuple[Itinerary, list[RemediationChange]]


def _behavior_label(behavior: SlotBehavior | None) -> str:
    return behavior.value if behavior else "unset"


def remove_impossible_slots(
    itinerary: Itinerary, flight: FlightConstraints | None, settings: Settings | None = None
) -> StepResult:
    """Drop non-travel slots that fall outside the arrival/departure window."""
    fixed = itinerary.model_copy(deep=True)
    changes: list[RemediationChange] = []
    if flight is None or not fixed.days:
        return fixed, changes
    settings = settings or get_settings()

    arrival = try_parse_time(flight.arrival_flight_time)
    if arrival is not None:
        earliest_end = arrival + settings.arrival_buffer_min
        first_day = fixed.days[0]
        kept = []
        for slot in first_day.slots:
            end = try_parse_time(slot.time_range.end)
            if not is_travel_slot(slot) and end is not None and end <= earliest_end:
                changes.append(
                    RemediationChange(
                        type=RemediationChangeType.REMOVED_IMPOSSIBLE_SLOT,
                        day=first_day.day_number,
                        slot=slot.slot_id,
                        reason=f"{slot.display_name} ends before arrival "
                        f"({flight.arrival_flight_time} + {settings.arrival_buffer_min} min)",
                    )
                )
            else:
                kept.append(slot)
        first_day.slots = kept

    departure = try_parse_time(flight.departure_flight_time)
    if departure is not None:
        latest_start = departure - settings.departure_buffer_min
        last_day = fixed.days[-1]
        kept = []
        for slot in last_day.slots:
            start = try_parse_time(slot.time_range.start)
            if not is_travel_slot(slot) and start is not None and start >= latest_start:
                changes.append(
                    RemediationChange(
                        type=RemediationChangeType.REMOVED_IMPOSSIBLE_SLOT,
                        day=last_day.day_number,
                        slot=slot.slot_id,
                        reason=f"{slot.display_name} starts after departure prep "
                        f"({flight.departure_flight_time} - {settings.departure_buffer_min} min)",
                    )
                )
            else:
                kept.append(slot)
        last_day.slots = kept

    return fixed, changes


def remove_cross_day_duplicates(itinerary: Itinerary) -> StepResult:
    """Drop activities already scheduled on an earlier day, keeping the first occurrence."""
    fixed = itinerary.model_copy(deep=True)
    changes: list[RemediationChange] = []
    first_seen: dict[str, int] = {}

    for day in fixed.days:
        kept = []
        for slot in day.slots:
            key = duplicate_key(slot)
            if key is None:
                kept.append(slot)
                continue
            first_day = first_seen.setdefault(key, day.day_number)
            if first_day == day.day_number:
                kept.append(slot)
                continue
            changes.append(
                RemediationChange(
                    type=RemediationChangeType.REMOVED_DUPLICATE,
                    day=day.day_number,
                    slot=slot.slot_id,
                    reason=f'Removed duplicate "{slot.display_name}" (already on Day {first_day})',
                )
            )
        day.slots = kept

    return fixed, changes


def fix_transfer_behavior(itinerary: Itinerary) -> StepResult:
    """Tag transfer activities as travel; pre-booked transfers stay anchors."""
    fixed = itinerary.model_copy(deep=True)
    changes: list[RemediationChange] = []

    for day in fixed.days:
        for slot in day.slots:
            activity = slot.activity
            if not is_transfer_activity(activity) or slot.behavior == SlotBehavior.TRAVEL:
                continue
            if is_anchor_activity(activity):
                continue
            old = slot.behavior
            slot.behavior = SlotBehavior.TRAVEL
            changes.append(
                RemediationChange(
                    type=RemediationChangeType.FIXED_TRANSFER_BEHAVIOR,
                    day=day.day_number,
                    slot=slot.slot_id,
                    reason=f"Changed behavior from '{_behavior_label(old)}' to 'travel' "
                    f'for "{slot.display_name}"',
                )
            )

    return fixed, changes


def fix_meal_behavior(itinerary: Itinerary) -> StepResult:
    """Tag meal slot types as meal unless they hold travel or a pre-booked activity."""
    fixed = itinerary.model_copy(deep=True)
    changes: list[RemediationChange] = []

    for day in fixed.days:
        for slot in day.slots:
            if not slot.slot_type.is_meal:
                continue
            if slot.behavior in (SlotBehavior.MEAL, SlotBehavior.TRAVEL):
                continue
            if is_anchor_activity(slot.activity):
                continue
            old = slot.behavior
            slot.behavior = SlotBehavior.MEAL
            changes.append(
                RemediationChange(
                    type=RemediationChangeType.FIXED_MEAL_BEHAVIOR,
                    day=day.day_number,
                    slot=slot.slot_id,
                    reason=f"Changed behavior from '{_behavior_label(old)}' to 'meal' "
                    f"for {slot.slot_type.value}",
                )
            )

    return fixed, changes


def fix_anchor_behavior(itinerary: Itinerary) -> StepResult:
    """Tag pre-booked activities as anchors."""
    fixed = itinerary.model_copy(deep=True)
    changes: list[RemediationChange] = []

    for day in fixed.days:
        for slot in day.slots:
            if not is_anchor_activity(slot.activity) or slot.behavior == SlotBehavior.ANCHOR:
                continue
            old = slot.behavior
            slot.behavior = SlotBehavior.ANCHOR
            changes.append(
                RemediationChange(
                    type=RemediationChangeType.FIXED_ANCHOR_BEHAVIOR,
                    day=day.day_number,
                    slot=slot.slot_id,
                    reason=f"Changed behavior from '{_behavior_label(old)}' to 'anchor' "
                    f'for pre-booked "{slot.display_name}"',
                )
            )

    return fixed, changes


def fix_invalid_commutes(itinerary: Itinerary, settings: Settings | None = None) -> StepResult:
    """Re-estimate implausibly long slot commutes from coordinates.

    Only legs where both ends have coordinates are touched; the rest are left for
    the LONG_COMMUTE warning.
    """
    settings = settings or get_settings()
    fixed = itinerary.model_copy(deep=True)
    changes: list[RemediationChange] = []

    for day in fixed.days:
        for i in range(1, len(day.slots)):
            slot = day.slots[i]
            commute = slot.commute_from_previous
            if commute is None or commute.duration <= settings.invalid_commute_min:
                continue
            start = slot_exit_location(day.slots[i - 1])
            end = slot_location(slot)
            if start is None or end is None:
                continue
            distance = haversine_distance_m(start, end)
            method = infer_commute_method(distance)
            duration = estimate_commute_minutes(distance, method)
            if duration == commute.duration:
                continue
            old_duration = commute.duration
            commute.duration = duration
            commute.distance = round(distance)
            commute.method = method
            changes.append(
                RemediationChange(
                    type=RemediationChangeType.FIXED_INVALID_COMMUTE,
                    day=day.day_number,
                    slot=slot.slot_id,
                    reason=f"Re-estimated commute to {slot.display_name} from {old_duration} "
                    f"to {duration} min ({distance / 1000:.1f} km by {method.value})",
                )
            )

    return fixed, changes


def flag_meal_commutes(itinerary: Itinerary, threshold_min: int) -> StepResult:
    """Mark meals with a long commute to or from them for a nearby-venue search.

    The search point is the adjoining activity's location. Meals already flagged
    are left alone.
    """
    fixed = itinerary.model_copy(deep=True)
    changes: list[RemediationChange] = []

    for day in fixed.days:
        slots = day.slots
        for i, slot in enumerate(slots):
            if not slot.slot_type.is_meal or slot.metadata.get("needsNearbyReplacement"):
                continue
            meal = slot.slot_type.value

            legs = []
            commute = slot.commute_from_previous
            if i > 0 and commute is not None and commute.duration > threshold_min:
                legs.append((slots[i - 1], commute.duration, "from"))
            if i < len(slots) - 1:
                following = slots[i + 1].commute_from_previous
                if following is not None and following.duration > threshold_min:
                    legs.append((slots[i + 1], following.duration, "to"))

            for neighbour, duration, direction in legs:
                location = slot_location(neighbour)
                if location is None:
                    continue
                slot.metadata["needsNearbyReplacement"] = True
                slot.metadata["searchNearCoordinates"] = {"lat": location.lat, "lng": location.lng}
                slot.metadata["reason"] = (
                    f"Long commute {direction} {neighbour.display_name} ({duration} min)"
                )
                changes.append(
                    RemediationChange(
                        type=RemediationChangeType.FLAGGED_MEAL_FOR_NEARBY_SEARCH,
                        day=day.day_number,
                        slot=slot.slot_id,
                        reason=f"{meal.capitalize()} flagged for nearby search "
                        f'({duration} min {direction} "{neighbour.display_name}")',
                    )
                )

    return fixed, changes


def flag_empty_slots(itinerary: Itinerary) -> StepResult:
    """Mark slots without options as needing an activity suggestion."""
    fixed = itinerary.model_copy(deep=True)
    changes: list[RemediationChange] = []

    for day in fixed.days:
        for slot in day.slots:
            if slot.options or slot.metadata.get("needsActivity"):
                continue
            slot.metadata["needsActivity"] = True
            slot.metadata["suggestedCategory"] = (
                "restaurant" if slot.slot_type.is_meal else "attraction"
            )
            changes.append(
                RemediationChange(
                    type=RemediationChangeType.FLAGGED_EMPTY_SLOT,
                    day=day.day_number,
                    slot=slot.slot_id,
                    reason=f"Empty {slot.slot_type.value} slot flagged for activity suggestion",
                )
            )

    return fixed, changes


def renumber_slot_ids(itinerary: Itinerary) -> StepResult:
    """Rewrite slot ids to the canonical d{day}-slot-{position} form."""
    fixed = itinerary.model_copy(deep=True)
    changes: list[RemediationChange] = []

    for day in fixed.days:
        for position, slot in enumerate(day.slots, start=1):
            expected = f"d{day.day_number}-slot-{position}"
            if slot.slot_id == expected:
                continue
            old = slot.slot_id
            slot.slot_id = expected
            changes.append(
                RemediationChange(
                    type=RemediationChangeType.FIXED_SLOT_ID,
                    day=day.day_number,
                    slot=expected,
                    reason=f"Renumbered slot from {old} to {expected}",
                )
            )

    return fixed, changes


def remediate(
    itinerary: Itinerary,
    flight: FlightConstraints | None = None,
    options: RemediationOptions | None = None,
    settings: Settings | None = None,
    metrics: PrometheusEngineMetrics | None = None,
    structured_logger: StructuredEngineLogger | None = None,
) -> RemediationResult:
    """Run the remediation pipeline in its fixed order.

    Removals run first and renumbering last, so audit entries from the behavior
    fixes reference the ids the caller sent.

    Args:
        itinerary: Itinerary to correct (left untouched)
        flight: Flight arrival/departure times for the impossible-slot step
        options: Step switches; all steps except commute repair run by default
        settings: Settings override
        metrics: Metrics sink
        structured_logger: Structured event logger

    Returns:
        RemediationResult with the corrected itinerary and every change in order
    """
    settings = settings or get_settings()
    options = options or RemediationOptions()
    metrics = metrics or PrometheusEngineMetrics()
    structured_logger = structured_logger or StructuredEngineLogger()
    threshold = options.commute_threshold_minutes or settings.meal_commute_threshold_min

    current = itinerary
    changes: list[RemediationChange] = []

    def run(step_changes: StepResult) -> None:
        nonlocal current
        current, new_changes = step_changes
        logger.debug(f"Remediation step produced {len(new_changes)} change(s)")
        changes.extend(new_changes)

    if options.remove_impossible_slots:
        run(remove_impossible_slots(current, flight, settings))
    if options.remove_duplicates:
        run(remove_cross_day_duplicates(current))
    if options.fix_transfer_behavior:
        run(fix_transfer_behavior(current))
    if options.fix_meal_behavior:
        run(fix_meal_behavior(current))
    if options.fix_anchor_behavior:
        run(fix_anchor_behavior(current))
    if options.fix_invalid_commutes:
        run(fix_invalid_commutes(current, settings))
    if options.flag_meal_commutes:
        run(flag_meal_commutes(current, threshold))
    if options.flag_empty_slots:
        run(flag_empty_slots(current))
    if options.renumber_slot_ids:
        run(renumber_slot_ids(current))

    if current is itinerary:
        current = itinerary.model_copy(deep=True)

    by_type = dict(Counter(change.type.value for change in changes))
    for change in changes:
        metrics.inc_remediation(change.type.value)
    structured_logger.log_remediation(
        destination=itinerary.destination, changes=len(changes), by_type=by_type
    )

    return RemediationResult(itinerary=current, changes=changes)
