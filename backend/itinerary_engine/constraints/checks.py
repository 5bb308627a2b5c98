"""Constraint checks, one function per layer (temporal, flight, geographic, behavioral,
resource, clustering, dependency, fragility and cross-day).

Each check takes an itinerary and returns a (possibly empty) list of issues. Checks
never raise on missing optional data and never short-circuit one another.
"""

from backend.itinerary_engine.config import CityCenter, Settings, get_settings
from backend.itinerary_engine.constraints.lookup import (
    is_anchor_activity,
    is_transfer_activity,
    is_travel_slot,
    slot_location,
)
from backend.itinerary_engine.models.common import (
    CommuteMethod,
    Coordinates,
    DependencyType,
    SlotBehavior,
)
from backend.itinerary_engine.models.issues import (
    ConstraintLayer,
    IssueSeverity,
    IssueType,
    JsonValue,
    ValidationIssue,
)
from backend.itinerary_engine.models.itinerary import Day, Itinerary, Slot
from backend.itinerary_engine.models.remediation import FlightConstraints
from backend.itinerary_engine.utils.geo_time import (
    format_minutes_to_time,
    haversine_distance_km,
    try_parse_time,
)


def make_issue(
    issue_type: IssueType,
    severity: IssueSeverity,
    layer: ConstraintLayer,
    day: int,
    slot: str | None,
    message: str,
    **details: JsonValue,
) -> ValidationIssue:
    """Build a ValidationIssue with optional structured details."""
    return ValidationIssue(
        type=issue_type,
        severity=severity,
        layer=layer,
        day=day,
        slot=slot,
        message=message,
        details=dict(details),
    )


def timed_slots(day: Day) -> list[tuple[int, int, Slot]]:
    """Slots with parseable, well-ordered times, sorted by start (stable)."""
    timed: list[tuple[int, int, Slot]] = []
    for slot in day.slots:
        start = try_parse_time(slot.time_range.start)
        end = try_parse_time(slot.time_range.end)
        if start is None or end is None or start >= end:
            continue
        timed.append((start, end, slot))
    return sorted(timed, key=lambda t: t[0])


def scheduled_minutes(day: Day) -> int:
    """Minutes of non-travel activity scheduled on a day."""
    return sum(end - start for start, end, slot in timed_slots(day) if not is_travel_slot(slot))


def check_temporal_consistency(
    itinerary: Itinerary, settings: Settings | None = None
) -> list[ValidationIssue]:
    """Verify slot times: presence, format, ordering, overlap, day bounds and pacing.

    Args:
        itinerary: Itinerary to inspect
        settings: Limits (early/late bounds, transition gap, daily cap)

    Returns:
        List of temporal issues
    """
    settings = settings or get_settings()
    earliest = try_parse_time(settings.earliest_day_start)
    latest = try_parse_time(settings.latest_day_end)
    issues: list[ValidationIssue] = []

    for day in itinerary.days:
        for slot in day.slots:
            start_raw, end_raw = slot.time_range.start, slot.time_range.end
            if not start_raw or not end_raw:
                issues.append(
                    make_issue(
                        IssueType.MISSING_TIME,
                        IssueSeverity.WARNING,
                        ConstraintLayer.TEMPORAL,
                        day.day_number,
                        slot.slot_id,
                        f"{slot.display_name} has no start or end time.",
                    )
                )
                continue

            start = try_parse_time(start_raw)
            end = try_parse_time(end_raw)
            if start is None or end is None:
                issues.append(
                    make_issue(
                        IssueType.INVALID_TIME_FORMAT,
                        IssueSeverity.ERROR,
                        ConstraintLayer.TEMPORAL,
                        day.day_number,
                        slot.slot_id,
                        f"{slot.display_name} has a malformed time range "
                        f"({start_raw}-{end_raw}).",
                    )
                )
                continue

            if start >= end:
                issues.append(
                    make_issue(
                        IssueType.INVALID_TIME_RANGE,
                        IssueSeverity.ERROR,
                        ConstraintLayer.TEMPORAL,
                        day.day_number,
                        slot.slot_id,
                        f"{slot.display_name} starts at {start_raw} but ends at {end_raw}.",
                    )
                )

        ordered = timed_slots(day)
        for i in range(1, len(ordered)):
            prev_end, prev_slot = ordered[i - 1][1], ordered[i - 1][2]
            start, _, slot = ordered[i]
            if start < prev_end:
                issues.append(
                    make_issue(
                        IssueType.OVERLAPPING_SLOTS,
                        IssueSeverity.WARNING,
                        ConstraintLayer.TEMPORAL,
                        day.day_number,
                        slot.slot_id,
                        f"{slot.display_name} starts at {slot.time_range.start} before "
                        f"{prev_slot.display_name} ends at {prev_slot.time_range.end}.",
                        overlap_minutes=prev_end - start,
                        previous_slot=prev_slot.slot_id,
                    )
                )
                continue

            commute = slot.commute_from_previous
            gap = start - prev_end
            if (
                commute is not None
                and commute.method != CommuteMethod.WALK
                and gap < settings.tight_transition_min
            ):
                issues.append(
                    make_issue(
                        IssueType.TIGHT_TRANSITION,
                        IssueSeverity.INFO,
                        ConstraintLayer.TEMPORAL,
                        day.day_number,
                        slot.slot_id,
                        f"Only {gap} min between {prev_slot.display_name} and "
                        f"{slot.display_name} for a {commute.method.value} commute.",
                        gap_minutes=gap,
                    )
                )

        for start, end, slot in ordered:
            if earliest is not None and start < earliest:
                issues.append(
                    make_issue(
                        IssueType.VERY_EARLY_START,
                        IssueSeverity.WARNING,
                        ConstraintLayer.TEMPORAL,
                        day.day_number,
                        slot.slot_id,
                        f"{slot.display_name} starts at {slot.time_range.start}, "
                        f"before {settings.earliest_day_start}.",
                    )
                )
            if latest is not None and end > latest:
                issues.append(
                    make_issue(
                        IssueType.VERY_LATE_END,
                        IssueSeverity.WARNING,
                        ConstraintLayer.TEMPORAL,
                        day.day_number,
                        slot.slot_id,
                        f"{slot.display_name} ends at {slot.time_range.end}, "
                        f"after {settings.latest_day_end}.",
                    )
                )

        scheduled = scheduled_minutes(day)
        if scheduled > settings.max_daily_activity_min:
            issues.append(
                make_issue(
                    IssueType.EXCESSIVE_PACING,
                    IssueSeverity.WARNING,
                    ConstraintLayer.TEMPORAL,
                    day.day_number,
                    None,
                    f"Day {day.day_number} schedules {scheduled} min of activities "
                    f"(limit {settings.max_daily_activity_min}).",
                    scheduled_minutes=scheduled,
                )
            )

    return issues


def check_flight_constraints(
    itinerary: Itinerary,
    flight: FlightConstraints | None,
    settings: Settings | None = None,
) -> list[ValidationIssue]:
    """Flag non-travel slots that cannot happen around arrival/departure flights.

    Day 1 slots ending at or before arrival + buffer are impossible, as are
    last-day slots starting at or after departure - buffer.
    """
    if flight is None or not itinerary.days:
        return []
    settings = settings or get_settings()
    issues: list[ValidationIssue] = []

    arrival = try_parse_time(flight.arrival_flight_time)
    if arrival is not None:
        earliest_end = arrival + settings.arrival_buffer_min
        first_day = itinerary.days[0]
        for slot in first_day.slots:
            end = try_parse_time(slot.time_range.end)
            if end is None or is_travel_slot(slot):
                continue
            if end <= earliest_end:
                issues.append(
                    make_issue(
                        IssueType.IMPOSSIBLE_SLOT_BEFORE_ARRIVAL,
                        IssueSeverity.ERROR,
                        ConstraintLayer.FLIGHT,
                        first_day.day_number,
                        slot.slot_id,
                        f"{slot.display_name} ends at {slot.time_range.end}, before the "
                        f"traveller can arrive ({format_minutes_to_time(earliest_end)}).",
                        arrival=flight.arrival_flight_time,
                    )
                )

    departure = try_parse_time(flight.departure_flight_time)
    if departure is not None:
        latest_start = departure - settings.departure_buffer_min
        last_day = itinerary.days[-1]
        for slot in last_day.slots:
            start = try_parse_time(slot.time_range.start)
            if start is None or is_travel_slot(slot):
                continue
            if start >= latest_start:
                issues.append(
                    make_issue(
                        IssueType.IMPOSSIBLE_SLOT_AFTER_DEPARTURE,
                        IssueSeverity.ERROR,
                        ConstraintLayer.FLIGHT,
                        last_day.day_number,
                        slot.slot_id,
                        f"{slot.display_name} starts at {slot.time_range.start}, after the "
                        f"traveller must leave ({format_minutes_to_time(latest_start)}).",
                        departure=flight.departure_flight_time,
                    )
                )

    return issues


def find_city_center(city: str, settings: Settings | None = None) -> CityCenter | None:
    """Case-insensitive substring lookup in the configured city table."""
    settings = settings or get_settings()
    lowered = city.lower()
    for name, center in settings.city_centers.items():
        if name.lower() in lowered:
            return center
    return None


def check_geographic_consistency(
    itinerary: Itinerary, settings: Settings | None = None
) -> list[ValidationIssue]:
    """Warn about activities far from their day's city and over-long walking days."""
    settings = settings or get_settings()
    issues: list[ValidationIssue] = []

    for day in itinerary.days:
        center = find_city_center(day.city or itinerary.destination, settings)
        if center is not None:
            center_point = Coordinates(lat=center.lat, lng=center.lng)
            for slot in day.slots:
                location = slot_location(slot)
                if location is None or is_travel_slot(slot):
                    continue
                distance_km = haversine_distance_km(center_point, location)
                if distance_km > center.radius_km:
                    issues.append(
                        make_issue(
                            IssueType.ACTIVITY_FAR_FROM_CITY,
                            IssueSeverity.WARNING,
                            ConstraintLayer.GEOGRAPHIC,
                            day.day_number,
                            slot.slot_id,
                            f"{slot.display_name} is {distance_km:.1f} km from the center "
                            f"of {day.city or itinerary.destination}.",
                            distance_km=round(distance_km, 1),
                            radius_km=center.radius_km,
                        )
                    )

        walked_m = sum(
            slot.commute_from_previous.distance
            for slot in day.slots
            if slot.commute_from_previous is not None
            and slot.commute_from_previous.method == CommuteMethod.WALK
        )
        if walked_m > settings.max_walking_distance_km * 1000:
            issues.append(
                make_issue(
                    IssueType.LONG_WALKING_DISTANCE,
                    IssueSeverity.WARNING,
                    ConstraintLayer.GEOGRAPHIC,
                    day.day_number,
                    None,
                    f"Day {day.day_number} involves {walked_m / 1000:.1f} km of walking.",
                    walking_km=round(walked_m / 1000, 1),
                )
            )

    return issues


def check_slot_behaviors(itinerary: Itinerary) -> list[ValidationIssue]:
    """Verify behavior tags agree with slot content.

    Transfers must be travel, meal slots meal or travel, pre-booked activities anchor.
    An anchor-tagged activity satisfies the first two rules with behavior anchor.
    """
    issues: list[ValidationIssue] = []

    for day in itinerary.days:
        for slot in day.slots:
            activity = slot.activity
            anchored = is_anchor_activity(activity) and slot.behavior == SlotBehavior.ANCHOR

            if (
                is_transfer_activity(activity)
                and slot.behavior != SlotBehavior.TRAVEL
                and not anchored
            ):
                issues.append(
                    make_issue(
                        IssueType.MISSING_TRAVEL_BEHAVIOR,
                        IssueSeverity.WARNING,
                        ConstraintLayer.BEHAVIORAL,
                        day.day_number,
                        slot.slot_id,
                        f"{slot.display_name} is a transfer but has behavior "
                        f"'{slot.behavior.value if slot.behavior else 'unset'}'.",
                    )
                )

            if (
                slot.slot_type.is_meal
                and slot.behavior not in (SlotBehavior.MEAL, SlotBehavior.TRAVEL)
                and not anchored
            ):
                issues.append(
                    make_issue(
                        IssueType.INCORRECT_MEAL_BEHAVIOR,
                        IssueSeverity.INFO,
                        ConstraintLayer.BEHAVIORAL,
                        day.day_number,
                        slot.slot_id,
                        f"{slot.slot_type.value.capitalize()} slot should have meal behavior.",
                    )
                )

            if is_anchor_activity(activity) and slot.behavior != SlotBehavior.ANCHOR:
                issues.append(
                    make_issue(
                        IssueType.MISSING_ANCHOR_BEHAVIOR,
                        IssueSeverity.WARNING,
                        ConstraintLayer.BEHAVIORAL,
                        day.day_number,
                        slot.slot_id,
                        f"{slot.display_name} is pre-booked but not marked as an anchor.",
                    )
                )

    return issues


def check_resources(itinerary: Itinerary, settings: Settings | None = None) -> list[ValidationIssue]:
    """Verify hotel references and commute magnitudes."""
    settings = settings or get_settings()
    issues: list[ValidationIssue] = []

    for day in itinerary.days:
        hotel_commutes = [
            c for c in (day.commute_from_hotel, day.commute_to_hotel) if c is not None
        ]

        if hotel_commutes and day.accommodation is None:
            issues.append(
                make_issue(
                    IssueType.COMMUTE_WITHOUT_HOTEL,
                    IssueSeverity.ERROR,
                    ConstraintLayer.RESOURCE,
                    day.day_number,
                    None,
                    f"Day {day.day_number} has a hotel commute but no accommodation.",
                )
            )

        if day.accommodation is not None and (
            day.accommodation.coordinates is None or day.accommodation.coordinates.is_unset
        ):
            issues.append(
                make_issue(
                    IssueType.MISSING_HOTEL_COORDINATES,
                    IssueSeverity.WARNING,
                    ConstraintLayer.RESOURCE,
                    day.day_number,
                    None,
                    f"{day.accommodation.name} has no coordinates.",
                )
            )

        for commute in hotel_commutes:
            if commute.distance > settings.hotel_commute_ceiling_m:
                issues.append(
                    make_issue(
                        IssueType.UNREASONABLE_COMMUTE_DISTANCE,
                        IssueSeverity.WARNING,
                        ConstraintLayer.RESOURCE,
                        day.day_number,
                        None,
                        f"Hotel commute of {commute.distance / 1000:.1f} km on Day "
                        f"{day.day_number} is unreasonably long.",
                        distance_m=commute.distance,
                    )
                )

        for slot in day.slots:
            commute = slot.commute_from_previous
            if commute is not None and commute.duration > settings.long_commute_min:
                issues.append(
                    make_issue(
                        IssueType.LONG_COMMUTE,
                        IssueSeverity.WARNING,
                        ConstraintLayer.RESOURCE,
                        day.day_number,
                        slot.slot_id,
                        f"Reaching {slot.display_name} takes {commute.duration} min.",
                        duration_minutes=commute.duration,
                    )
                )

    return issues


def check_clustering(itinerary: Itinerary) -> list[ValidationIssue]:
    """Warn when another slot splits a cluster (A, B, A along the day)."""
    issues: list[ValidationIssue] = []

    for day in itinerary.days:
        clusters = [slot.cluster_id for slot in day.slots]
        for i in range(2, len(clusters)):
            cluster = clusters[i]
            if not cluster or cluster != clusters[i - 2] or cluster == clusters[i - 1]:
                continue
            between = day.slots[i - 1]
            slot = day.slots[i]
            issues.append(
                make_issue(
                    IssueType.CLUSTER_FRAGMENTED,
                    IssueSeverity.WARNING,
                    ConstraintLayer.CLUSTERING,
                    day.day_number,
                    slot.slot_id,
                    f'Activities in cluster "{cluster}" are split by {between.display_name}.',
                    cluster_id=cluster,
                    resolution=f"Move {between.display_name} to keep the cluster together",
                )
            )

    return issues


def check_dependencies(itinerary: Itinerary) -> list[ValidationIssue]:
    """Verify must-before, must-after, same-day and different-day relations.

    Positions compare by (day, slot index). Dependencies naming a slot that no
    longer exists are ignored.

    Args:
        itinerary: Itinerary to inspect

    Returns:
        List of dependency issues; ordering and same-day breaks are errors
    """
    positions: dict[str, tuple[int, int]] = {}
    names: dict[str, str] = {}
    for day_index, day in enumerate(itinerary.days):
        for slot_index, slot in enumerate(day.slots):
            positions[slot.slot_id] = (day_index, slot_index)
            names[slot.slot_id] = slot.display_name

    issues: list[ValidationIssue] = []
    for day_index, day in enumerate(itinerary.days):
        for slot_index, slot in enumerate(day.slots):
            here = (day_index, slot_index)
            for dependency in slot.dependencies:
                there = positions.get(dependency.target_slot_id)
                if there is None:
                    continue
                target = names[dependency.target_slot_id]

                if dependency.type == DependencyType.MUST_BEFORE and here >= there:
                    issue_type, severity = IssueType.DEPENDENCY_ORDER_VIOLATED, IssueSeverity.ERROR
                    message = f"{slot.display_name} must come before {target}."
                elif dependency.type == DependencyType.MUST_AFTER and here <= there:
                    issue_type, severity = IssueType.DEPENDENCY_ORDER_VIOLATED, IssueSeverity.ERROR
                    message = f"{slot.display_name} must come after {target}."
                elif dependency.type == DependencyType.SAME_DAY and here[0] != there[0]:
                    issue_type, severity = IssueType.DEPENDENCY_SAME_DAY_VIOLATED, IssueSeverity.ERROR
                    message = f"{slot.display_name} must be on the same day as {target}."
                elif dependency.type == DependencyType.DIFFERENT_DAY and here[0] == there[0]:
                    issue_type = IssueType.DEPENDENCY_DIFFERENT_DAY_VIOLATED
                    severity = IssueSeverity.WARNING
                    message = f"{slot.display_name} should be on a different day from {target}."
                else:
                    continue

                issues.append(
                    make_issue(
                        issue_type,
                        severity,
                        ConstraintLayer.DEPENDENCY,
                        day.day_number,
                        slot.slot_id,
                        message,
                        dependency=dependency.type.value,
                        target_slot=dependency.target_slot_id,
                        resolution=dependency.reason or "Reorder activities to satisfy the dependency",
                    )
                )

    return issues


def _in_peak_hours(start: int, peak_hours: list[str]) -> bool:
    for peak in peak_hours:
        bounds = peak.split("-")
        if len(bounds) != 2:
            continue
        peak_start, peak_end = try_parse_time(bounds[0]), try_parse_time(bounds[1])
        if peak_start is not None and peak_end is not None and peak_start <= start <= peak_end:
            return True
    return False


def check_fragility(itinerary: Itinerary) -> list[ValidationIssue]:
    """Flag weather-sensitive slots, peak-hour visits and unbooked reservations."""
    issues: list[ValidationIssue] = []

    for day in itinerary.days:
        for slot in day.slots:
            fragility = slot.fragility
            if fragility is None:
                continue

            if fragility.weather_sensitivity == "high":
                issues.append(
                    make_issue(
                        IssueType.WEATHER_SENSITIVE,
                        IssueSeverity.INFO,
                        ConstraintLayer.FRAGILITY,
                        day.day_number,
                        slot.slot_id,
                        f"{slot.display_name} is weather-sensitive; keep an indoor backup in mind.",
                    )
                )

            start = try_parse_time(slot.time_range.start)
            if (
                fragility.crowd_sensitivity == "high"
                and start is not None
                and _in_peak_hours(start, fragility.peak_hours)
            ):
                issues.append(
                    make_issue(
                        IssueType.PEAK_HOUR_CROWDS,
                        IssueSeverity.WARNING,
                        ConstraintLayer.FRAGILITY,
                        day.day_number,
                        slot.slot_id,
                        f"{slot.display_name} starts at {slot.time_range.start}, during peak hours.",
                        resolution=f"Consider visiting during {fragility.best_visit_time}"
                        if fragility.best_visit_time
                        else "Consider an earlier or later time",
                    )
                )

            if fragility.booking_required and not slot.is_locked:
                issues.append(
                    make_issue(
                        IssueType.BOOKING_REQUIRED,
                        IssueSeverity.WARNING,
                        ConstraintLayer.FRAGILITY,
                        day.day_number,
                        slot.slot_id,
                        f"{slot.display_name} requires advance booking.",
                        booking_url=fragility.booking_url,
                    )
                )

    return issues


def check_cross_day(itinerary: Itinerary, settings: Settings | None = None) -> list[ValidationIssue]:
    """Warn when the last activity before an intercity departure leaves too little buffer.

    The required buffer is ``city_transition_buffer_min`` or the recorded commute
    to the station, whichever is longer.
    """
    settings = settings or get_settings()
    issues: list[ValidationIssue] = []

    for day in itinerary.days:
        transition = day.city_transition
        if transition is None:
            continue
        departure = try_parse_time(transition.departure_time)
        if departure is None:
            continue

        before = [
            (end, slot)
            for _, end, slot in timed_slots(day)
            if end <= departure and not is_travel_slot(slot)
        ]
        if not before:
            continue
        last_end, last_slot = max(before, key=lambda t: t[0])

        required = settings.city_transition_buffer_min
        if transition.commute_to_station is not None:
            required = max(required, transition.commute_to_station.duration)
        buffer = departure - last_end
        if buffer < required:
            service = transition.train_name or f"{transition.method} to {transition.to_city}"
            issues.append(
                make_issue(
                    IssueType.TIGHT_CITY_TRANSITION,
                    IssueSeverity.WARNING,
                    ConstraintLayer.CROSS_DAY,
                    day.day_number,
                    last_slot.slot_id,
                    f"Only {buffer} min between {last_slot.display_name} and the {service} "
                    f"departing at {transition.departure_time}.",
                    buffer_minutes=buffer,
                    required_minutes=required,
                )
            )

    return issues
