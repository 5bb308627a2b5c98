"""Batch validation - whole-itinerary checks and the health report."""

import logging
from collections import Counter

from backend.itinerary_engine.config import Settings, get_settings
from backend.itinerary_engine.constraints.checks import make_issue
from backend.itinerary_engine.constraints.engine import ConstraintEngine
from backend.itinerary_engine.constraints.lookup import (
    duplicate_key,
    is_anchor_activity,
    is_travel_slot,
)
from backend.itinerary_engine.models.common import SlotBehavior, SlotType
from backend.itinerary_engine.models.issues import (
    ConstraintLayer,
    ExpectedAnchor,
    HealthStatus,
    IssueCounts,
    IssueSeverity,
    IssueType,
    MealPreferences,
    ValidationIssue,
    ValidationOptions,
    ValidationReport,
)
from backend.itinerary_engine.models.itinerary import Itinerary
from backend.itinerary_engine.models.remediation import FlightConstraints
from backend.itinerary_engine.utils.metrics import PrometheusEngineMetrics

logger = logging.getLogger(__name__)

MEAT_KEYWORDS = ("steak", "bbq", "barbecue", "yakiniku", "wagyu", "pork", "tonkatsu")
NON_HALAL_KEYWORDS = ("pork", "tonkatsu", "ramen")  # Ramen broth is often pork-based

_SEVERITY_PENALTY = {
    IssueSeverity.ERROR: 15,
    IssueSeverity.WARNING: 5,
    IssueSeverity.INFO: 1,
}


def check_day_structure(itinerary: Itinerary, settings: Settings | None = None) -> list[ValidationIssue]:
    """Flag sparse days and a morning/afternoon pair with no lunch between them."""
    settings = settings or get_settings()
    issues: list[ValidationIssue] = []

    for day in itinerary.days:
        meaningful = [s for s in day.slots if s.activity is not None and not is_travel_slot(s)]
        if len(meaningful) < settings.min_activities_per_day:
            issues.append(
                make_issue(
                    IssueType.SPARSE_DAY,
                    IssueSeverity.WARNING,
                    ConstraintLayer.STRUCTURE,
                    day.day_number,
                    None,
                    f"Day {day.day_number} has only {len(meaningful)} activity(ies).",
                    activity_count=len(meaningful),
                )
            )

        slot_types = {slot.slot_type for slot in day.slots}
        if (
            SlotType.MORNING in slot_types
            and SlotType.AFTERNOON in slot_types
            and SlotType.LUNCH not in slot_types
        ):
            issues.append(
                make_issue(
                    IssueType.MISSING_MEAL,
                    IssueSeverity.INFO,
                    ConstraintLayer.STRUCTURE,
                    day.day_number,
                    None,
                    f"Day {day.day_number} has morning and afternoon activities but no lunch.",
                )
            )

    return issues


def check_meal_placement(itinerary: Itinerary, settings: Settings | None = None) -> list[ValidationIssue]:
    """Flag long commutes around meals and meals placed at odd points of the day."""
    settings = settings or get_settings()
    threshold = settings.meal_commute_threshold_min
    issues: list[ValidationIssue] = []

    for day in itinerary.days:
        slots = day.slots
        for i, slot in enumerate(slots):
            if not slot.slot_type.is_meal:
                continue
            meal = slot.slot_type.value

            # The first slot's record is not a leg from another activity
            commute = slot.commute_from_previous if i > 0 else None
            if commute is not None and commute.duration > threshold:
                issues.append(
                    make_issue(
                        IssueType.MEAL_LONG_COMMUTE_TO,
                        IssueSeverity.WARNING,
                        ConstraintLayer.PREFERENCE,
                        day.day_number,
                        slot.slot_id,
                        f"{meal.capitalize()} requires a {commute.duration} min commute from "
                        f"the previous activity (ideally under {threshold} min).",
                        duration_minutes=commute.duration,
                    )
                )

            if i < len(slots) - 1:
                following = slots[i + 1].commute_from_previous
                if following is not None and following.duration > threshold:
                    issues.append(
                        make_issue(
                            IssueType.MEAL_LONG_COMMUTE_FROM,
                            IssueSeverity.WARNING,
                            ConstraintLayer.PREFERENCE,
                            day.day_number,
                            slot.slot_id,
                            f"{meal.capitalize()} is followed by a {following.duration} min "
                            f"commute (ideally under {threshold} min).",
                            duration_minutes=following.duration,
                        )
                    )

            near_start = i <= 1
            near_end = i >= len(slots) - 2
            if slot.slot_type == SlotType.BREAKFAST and not near_start:
                issues.append(
                    make_issue(
                        IssueType.BREAKFAST_NOT_EARLY,
                        IssueSeverity.INFO,
                        ConstraintLayer.PREFERENCE,
                        day.day_number,
                        slot.slot_id,
                        f"Breakfast is slot {i + 1} of {len(slots)}; expected near the start.",
                    )
                )
            if slot.slot_type == SlotType.DINNER and not near_end and len(slots) > 3:
                issues.append(
                    make_issue(
                        IssueType.DINNER_NOT_LATE,
                        IssueSeverity.INFO,
                        ConstraintLayer.PREFERENCE,
                        day.day_number,
                        slot.slot_id,
                        f"Dinner is slot {i + 1} of {len(slots)}; expected near the end.",
                    )
                )

    return issues


def check_meal_preferences(
    itinerary: Itinerary, preferences: MealPreferences | None
) -> list[ValidationIssue]:
    """Keyword heuristics for dietary conflicts and cuisine preference mismatches.

    Only meal slots are inspected. Dietary matches are made against the venue
    name, so results are advisory for anything but an obvious conflict.
    """
    if preferences is None:
        return []
    restrictions = [r.lower() for r in preferences.dietary]
    cuisines = [c.lower() for c in preferences.cuisines]
    issues: list[ValidationIssue] = []

    for day in itinerary.days:
        for slot in day.slots:
            activity = slot.activity
            if not slot.slot_type.is_meal or activity is None:
                continue
            name = activity.name.lower()
            tags = {tag.lower() for tag in activity.tags}

            for restriction in restrictions:
                if restriction in ("vegetarian", "vegan") and any(kw in name for kw in MEAT_KEYWORDS):
                    issues.append(
                        make_issue(
                            IssueType.DIETARY_VIOLATION,
                            IssueSeverity.ERROR,
                            ConstraintLayer.PREFERENCE,
                            day.day_number,
                            slot.slot_id,
                            f'"{activity.name}" may not accommodate a {restriction} diet.',
                            restriction=restriction,
                        )
                    )
                if (
                    restriction == "halal"
                    and any(kw in name for kw in NON_HALAL_KEYWORDS)
                    and "halal" not in tags
                ):
                    issues.append(
                        make_issue(
                            IssueType.DIETARY_VIOLATION,
                            IssueSeverity.WARNING,
                            ConstraintLayer.PREFERENCE,
                            day.day_number,
                            slot.slot_id,
                            f'"{activity.name}" may not be halal; verify before booking.',
                            restriction=restriction,
                        )
                    )

            cuisine = (activity.cuisine_type or "").lower()
            if cuisines and cuisine:
                if not any(pref in cuisine or cuisine in pref for pref in cuisines):
                    issues.append(
                        make_issue(
                            IssueType.CUISINE_MISMATCH,
                            IssueSeverity.INFO,
                            ConstraintLayer.PREFERENCE,
                            day.day_number,
                            slot.slot_id,
                            f'"{activity.name}" ({activity.cuisine_type}) matches none of the '
                            f"preferred cuisines: {', '.join(preferences.cuisines)}.",
                        )
                    )

    return issues


def check_cross_day_duplicates(itinerary: Itinerary) -> list[ValidationIssue]:
    """Flag activities already scheduled on an earlier day; the first occurrence wins."""
    first_seen: dict[str, tuple[int, str]] = {}
    issues: list[ValidationIssue] = []

    for day in itinerary.days:
        for slot in day.slots:
            key = duplicate_key(slot)
            if key is None:
                continue
            if key not in first_seen:
                first_seen[key] = (day.day_number, slot.slot_id)
                continue
            first_day, first_slot = first_seen[key]
            if first_day == day.day_number:
                continue
            issues.append(
                make_issue(
                    IssueType.CROSS_DAY_DUPLICATE,
                    IssueSeverity.WARNING,
                    ConstraintLayer.STRUCTURE,
                    day.day_number,
                    slot.slot_id,
                    f"{slot.display_name} is already scheduled on Day {first_day}.",
                    first_day=first_day,
                    first_slot=first_slot,
                )
            )

    return issues


def check_empty_slots(itinerary: Itinerary) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for day in itinerary.days:
        for slot in day.slots:
            if not slot.options:
                issues.append(
                    make_issue(
                        IssueType.EMPTY_SLOT,
                        IssueSeverity.WARNING,
                        ConstraintLayer.STRUCTURE,
                        day.day_number,
                        slot.slot_id,
                        f"The {slot.slot_type.value} slot on Day {day.day_number} has no options.",
                    )
                )
    return issues


def check_expected_anchors(
    itinerary: Itinerary, expected: list[ExpectedAnchor]
) -> list[ValidationIssue]:
    """Verify every expected booking is present as an anchor and tagged anchors are anchored.

    An expected anchor matches an anchor-behavior slot whose activity name contains
    the expected name (case-insensitive) on the expected date, if one is given.
    Itinerary-wide issues use day 0.
    """
    if not expected:
        return []
    issues: list[ValidationIssue] = []

    found: list[tuple[str, str]] = []
    for day in itinerary.days:
        for slot in day.slots:
            if slot.behavior == SlotBehavior.ANCHOR and slot.activity is not None:
                found.append((slot.activity.name.lower(), day.date))

    for anchor in expected:
        needle = anchor.name.lower()
        present = any(
            needle in name and (not anchor.date or date == anchor.date) for name, date in found
        )
        if not present:
            when = f" on {anchor.date}" if anchor.date else ""
            issues.append(
                make_issue(
                    IssueType.MISSING_ANCHOR,
                    IssueSeverity.ERROR,
                    ConstraintLayer.STRUCTURE,
                    0,
                    None,
                    f'Expected booking "{anchor.name}"{when} is not in the itinerary.',
                    name=anchor.name,
                    date=anchor.date or None,
                )
            )

    for day in itinerary.days:
        for slot in day.slots:
            if is_anchor_activity(slot.activity) and slot.behavior != SlotBehavior.ANCHOR:
                behavior = slot.behavior.value if slot.behavior else "unset"
                issues.append(
                    make_issue(
                        IssueType.ANCHOR_WRONG_BEHAVIOR,
                        IssueSeverity.ERROR,
                        ConstraintLayer.STRUCTURE,
                        day.day_number,
                        slot.slot_id,
                        f"Pre-booked {slot.display_name} has behavior '{behavior}' instead of 'anchor'.",
                    )
                )

    return issues


def health_score(counts: IssueCounts) -> int:
    """100 minus a per-severity penalty, floored at 0."""
    penalty = (
        counts.errors * _SEVERITY_PENALTY[IssueSeverity.ERROR]
        + counts.warnings * _SEVERITY_PENALTY[IssueSeverity.WARNING]
        + counts.info * _SEVERITY_PENALTY[IssueSeverity.INFO]
    )
    return max(0, 100 - penalty)


def health_status(score: int) -> HealthStatus:
    if score >= 90:
        return HealthStatus.EXCELLENT
    if score >= 70:
        return HealthStatus.GOOD
    if score >= 50:
        return HealthStatus.FAIR
    return HealthStatus.POOR


def validate(
    itinerary: Itinerary,
    constraints: FlightConstraints | None = None,
    options: ValidationOptions | None = None,
    settings: Settings | None = None,
    metrics: PrometheusEngineMetrics | None = None,
) -> ValidationReport:
    """Run every engine check plus the itinerary-wide batch checks.

    Args:
        itinerary: Itinerary to diagnose
        constraints: Flight arrival/departure times, if known
        options: Expected anchors and meal preferences
        settings: Settings override
        metrics: Metrics sink (a fresh Prometheus facade by default)

    Returns:
        ValidationReport with issues, per-severity counts, per-type tally and health
    """
    settings = settings or get_settings()
    options = options or ValidationOptions()
    metrics = metrics or PrometheusEngineMetrics()

    issues = ConstraintEngine(settings, constraints).check_all(itinerary)
    issues.extend(check_day_structure(itinerary, settings))
    issues.extend(check_meal_placement(itinerary, settings))
    issues.extend(check_meal_preferences(itinerary, options.meal_preferences))
    issues.extend(check_cross_day_duplicates(itinerary))
    issues.extend(check_empty_slots(itinerary))
    issues.extend(check_expected_anchors(itinerary, options.expected_anchors))

    for issue in issues:
        metrics.inc_issue(issue.type.value, issue.severity.value)

    counts = IssueCounts.from_issues(issues)
    score = health_score(counts)
    by_type = dict(Counter(issue.type.value for issue in issues))

    logger.info(
        f"Validated {itinerary.destination}: {counts.errors} error(s), "
        f"{counts.warnings} warning(s), {counts.info} info, score {score}"
    )

    return ValidationReport(
        destination=itinerary.destination,
        issues=issues,
        counts=counts,
        by_type=by_type,
        health_score=score,
        status=health_status(score),
    )
