"""Tests for the batch validator: itinerary-wide checks, scoring and the report."""

from unittest.mock import MagicMock

import pytest

from backend.itinerary_engine.config import Settings
from backend.itinerary_engine.models.common import CommuteMethod, SlotBehavior, SlotType, TimeRange
from backend.itinerary_engine.models.issues import (
    ExpectedAnchor,
    HealthStatus,
    IssueCounts,
    IssueSeverity,
    IssueType,
    MealPreferences,
    ValidationOptions,
)
from backend.itinerary_engine.models.itinerary import (
    Activity,
    ActivityOption,
    Commute,
    Day,
    Itinerary,
    Place,
    Slot,
)
from backend.itinerary_engine.models.remediation import FlightConstraints
from backend.itinerary_engine.verification.batch import (
    check_cross_day_duplicates,
    check_day_structure,
    check_empty_slots,
    check_expected_anchors,
    check_meal_placement,
    check_meal_preferences,
    health_score,
    health_status,
    validate,
)

SETTINGS = Settings(_env_file=None)  # type: ignore[call-arg]


def make_slot(
    slot_id: str,
    slot_type: SlotType,
    name: str | None = "Activity",
    *,
    behavior: SlotBehavior | None = None,
    cuisine: str | None = None,
    tags: list[str] | None = None,
    place_id: str | None = None,
    commute_minutes: int | None = None,
) -> Slot:
    """Helper to create a slot with optional content and inbound commute."""
    options = []
    if name is not None:
        place = Place(name=name, google_place_id=place_id) if place_id else None
        options.append(
            ActivityOption(
                id=f"opt-{slot_id}",
                activity=Activity(name=name, cuisine_type=cuisine, tags=tags or [], place=place),
            )
        )
    commute = None
    if commute_minutes is not None:
        commute = Commute(method=CommuteMethod.TRANSIT, duration=commute_minutes)
    return Slot(
        slot_id=slot_id,
        slot_type=slot_type,
        time_range=TimeRange(start="10:00", end="11:00"),
        options=options,
        behavior=behavior,
        commute_from_previous=commute,
    )


def make_itinerary(*days: list[Slot], dates: list[str] | None = None) -> Itinerary:
    """Helper to create an itinerary from per-day slot lists."""
    return Itinerary(
        destination="Tokyo",
        days=[
            Day(day_number=i, city="Tokyo", date=(dates or [""] * len(days))[i - 1], slots=slots)
            for i, slots in enumerate(days, start=1)
        ],
    )


def types_of(issues: list) -> list[IssueType]:
    return [issue.type for issue in issues]


# Full report


def test_validate_tokyo_fixture(
    tokyo_itinerary: Itinerary, tokyo_flight: FlightConstraints, tokyo_options: ValidationOptions
) -> None:
    """Test the complete diagnosis of the broken Tokyo trip."""
    metrics = MagicMock()

    report = validate(tokyo_itinerary, tokyo_flight, tokyo_options, SETTINGS, metrics)

    assert report.by_type == {
        "IMPOSSIBLE_SLOT_AFTER_DEPARTURE": 1,
        "MISSING_TRAVEL_BEHAVIOR": 1,
        "INCORRECT_MEAL_BEHAVIOR": 1,
        "MISSING_ANCHOR_BEHAVIOR": 1,
        "SPARSE_DAY": 1,
        "MISSING_MEAL": 2,
        "MEAL_LONG_COMMUTE_FROM": 1,
        "DIETARY_VIOLATION": 1,
        "CUISINE_MISMATCH": 1,
        "CROSS_DAY_DUPLICATE": 1,
        "EMPTY_SLOT": 1,
        "MISSING_ANCHOR": 1,
        "ANCHOR_WRONG_BEHAVIOR": 1,
    }
    assert report.counts == IssueCounts(errors=3, warnings=7, info=4)
    assert report.health_score == 16
    assert report.status == HealthStatus.POOR
    assert not report.is_valid
    assert report.destination == "Tokyo"
    assert metrics.inc_issue.call_count == 14


def test_validate_tokyo_issue_locations(
    tokyo_itinerary: Itinerary, tokyo_flight: FlightConstraints, tokyo_options: ValidationOptions
) -> None:
    """Test that issues point at the offending slots and days."""
    report = validate(tokyo_itinerary, tokyo_flight, tokyo_options, SETTINGS, MagicMock())
    located = {(issue.type, issue.day, issue.slot) for issue in report.issues}

    assert (IssueType.IMPOSSIBLE_SLOT_AFTER_DEPARTURE, 4, "d4-slot-2") in located
    assert (IssueType.MISSING_ANCHOR, 0, None) in located
    assert (IssueType.ANCHOR_WRONG_BEHAVIOR, 2, "slot-teamlab") in located
    assert (IssueType.CROSS_DAY_DUPLICATE, 2, "d2-slot-3") in located
    assert (IssueType.EMPTY_SLOT, 2, "d2-slot-2") in located
    assert (IssueType.MEAL_LONG_COMMUTE_FROM, 1, "d1-slot-2") in located
    assert (IssueType.SPARSE_DAY, 3, None) in located


def test_validate_without_constraints_or_options(tokyo_itinerary: Itinerary) -> None:
    """Test that flight and trip-level checks are skipped when not provided."""
    report = validate(tokyo_itinerary, settings=SETTINGS, metrics=MagicMock())

    assert report.counts.errors == 0
    assert "MISSING_ANCHOR" not in report.by_type
    assert "DIETARY_VIOLATION" not in report.by_type


def test_validate_clean_osaka_fixture(osaka_itinerary: Itinerary) -> None:
    """Test that a well-formed itinerary scores 100."""
    report = validate(osaka_itinerary, settings=SETTINGS, metrics=MagicMock())

    assert report.issues == []
    assert report.health_score == 100
    assert report.status == HealthStatus.EXCELLENT
    assert report.is_valid


def test_report_serializes_with_camel_case(osaka_itinerary: Itinerary) -> None:
    """Test the wire shape of the report."""
    dumped = validate(osaka_itinerary, settings=SETTINGS, metrics=MagicMock()).model_dump(
        mode="json", by_alias=True
    )

    assert dumped["healthScore"] == 100
    assert dumped["byType"] == {}
    assert dumped["status"] == "excellent"


# Scoring


@pytest.mark.parametrize(
    ("counts", "expected"),
    [
        (IssueCounts(), 100),
        (IssueCounts(errors=1, warnings=1, info=1), 79),
        (IssueCounts(errors=10), 0),
    ],
)
def test_health_score(counts: IssueCounts, expected: int) -> None:
    """Test per-severity penalties and the zero floor."""
    assert health_score(counts) == expected


@pytest.mark.parametrize(
    ("score", "status"),
    [
        (100, HealthStatus.EXCELLENT),
        (90, HealthStatus.EXCELLENT),
        (89, HealthStatus.GOOD),
        (70, HealthStatus.GOOD),
        (69, HealthStatus.FAIR),
        (50, HealthStatus.FAIR),
        (49, HealthStatus.POOR),
        (0, HealthStatus.POOR),
    ],
)
def test_health_status_bands(score: int, status: HealthStatus) -> None:
    """Test the score-to-status thresholds."""
    assert health_status(score) == status


# Day structure


def test_sparse_day_ignores_travel_and_empty_slots() -> None:
    """Test that only real, non-travel activities count toward a day."""
    itinerary = make_itinerary(
        [
            make_slot("t", SlotType.MORNING, "Shinkansen to Osaka", behavior=SlotBehavior.TRAVEL),
            make_slot("e", SlotType.LUNCH, None),
            make_slot("a", SlotType.AFTERNOON, "Osaka Castle"),
        ]
    )

    issues = check_day_structure(itinerary, SETTINGS)

    assert types_of(issues) == [IssueType.SPARSE_DAY]
    assert issues[0].details == {"activity_count": 1}


def test_missing_lunch_between_morning_and_afternoon() -> None:
    """Test the missing-meal hint."""
    itinerary = make_itinerary(
        [make_slot("m", SlotType.MORNING), make_slot("a", SlotType.AFTERNOON)]
    )

    issues = check_day_structure(itinerary, SETTINGS)

    assert types_of(issues) == [IssueType.MISSING_MEAL]
    assert issues[0].severity == IssueSeverity.INFO


# Meals


def test_meal_commutes_in_both_directions() -> None:
    """Test long commutes into and out of a meal."""
    itinerary = make_itinerary(
        [
            make_slot("m", SlotType.MORNING),
            make_slot("l", SlotType.LUNCH, commute_minutes=45),
            make_slot("a", SlotType.AFTERNOON, commute_minutes=31),
        ]
    )

    issues = check_meal_placement(itinerary, SETTINGS)

    assert [(i.type, i.slot, i.details["duration_minutes"]) for i in issues] == [
        (IssueType.MEAL_LONG_COMMUTE_TO, "l", 45),
        (IssueType.MEAL_LONG_COMMUTE_FROM, "l", 31),
    ]


def test_meal_commute_at_threshold_is_fine() -> None:
    """Test that a commute equal to the threshold is not flagged."""
    itinerary = make_itinerary(
        [make_slot("m", SlotType.MORNING), make_slot("l", SlotType.LUNCH, commute_minutes=30)]
    )

    assert check_meal_placement(itinerary, SETTINGS) == []


def test_first_slot_meal_commute_is_not_flagged() -> None:
    """Test that a meal opening the day has no inbound leg to flag."""
    itinerary = make_itinerary(
        [
            make_slot("b", SlotType.BREAKFAST, commute_minutes=60),
            make_slot("m", SlotType.MORNING),
            make_slot("l", SlotType.LUNCH, commute_minutes=60),
        ]
    )

    issues = check_meal_placement(itinerary, SETTINGS)

    assert [(i.type, i.slot) for i in issues] == [(IssueType.MEAL_LONG_COMMUTE_TO, "l")]


def test_breakfast_and_dinner_position_hints() -> None:
    """Test breakfast far from the start and dinner far from the end."""
    itinerary = make_itinerary(
        [
            make_slot("m", SlotType.MORNING),
            make_slot("d", SlotType.DINNER),
            make_slot("x", SlotType.AFTERNOON),
            make_slot("b", SlotType.BREAKFAST),
            make_slot("y", SlotType.AFTERNOON),
            make_slot("z", SlotType.EVENING),
        ]
    )

    issues = check_meal_placement(itinerary, SETTINGS)

    assert [(i.type, i.slot) for i in issues] == [
        (IssueType.DINNER_NOT_LATE, "d"),
        (IssueType.BREAKFAST_NOT_EARLY, "b"),
    ]


def test_dietary_checks() -> None:
    """Test vegetarian errors, halal warnings and halal-tagged exemptions."""
    itinerary = make_itinerary(
        [
            make_slot("l", SlotType.LUNCH, "Yakiniku Jumbo"),
            make_slot("d", SlotType.DINNER, "Tonkatsu Maisen"),
            make_slot("b", SlotType.BREAKFAST, "Halal Ramen Ouka", tags=["Halal"]),
            make_slot("a", SlotType.AFTERNOON, "Pork Museum"),
        ]
    )

    vegetarian = check_meal_preferences(itinerary, MealPreferences(dietary=["Vegetarian"]))
    halal = check_meal_preferences(itinerary, MealPreferences(dietary=["halal"]))

    assert [(i.slot, i.severity) for i in vegetarian] == [
        ("l", IssueSeverity.ERROR),
        ("d", IssueSeverity.ERROR),
    ]
    assert [(i.slot, i.severity) for i in halal] == [("d", IssueSeverity.WARNING)]
    assert check_meal_preferences(itinerary, None) == []


def test_cuisine_matching_is_substring_both_ways() -> None:
    """Test that related cuisine names count as a match."""
    itinerary = make_itinerary(
        [
            make_slot("l", SlotType.LUNCH, "Kaiten", cuisine="conveyor sushi"),
            make_slot("d", SlotType.DINNER, "Trattoria", cuisine="Italian"),
            make_slot("b", SlotType.BREAKFAST, "Cafe"),
        ]
    )

    issues = check_meal_preferences(itinerary, MealPreferences(cuisines=["Sushi"]))

    assert [(i.type, i.slot) for i in issues] == [(IssueType.CUISINE_MISMATCH, "d")]


# Duplicates and empty slots


def test_duplicates_only_across_days() -> None:
    """Test that the first occurrence wins and same-day repeats are ignored."""
    itinerary = make_itinerary(
        [
            make_slot("a1", SlotType.MORNING, "Senso-ji", place_id="p1"),
            make_slot("a2", SlotType.AFTERNOON, "Senso-ji Temple", place_id="p1"),
        ],
        [
            make_slot("b1", SlotType.MORNING, "Senso-ji (again)", place_id="p1"),
            make_slot("b2", SlotType.AFTERNOON, "ueno park"),
        ],
        [make_slot("c1", SlotType.MORNING, "Ueno Park ")],
    )

    issues = check_cross_day_duplicates(itinerary)

    assert [(i.day, i.slot, i.details["first_slot"]) for i in issues] == [
        (2, "b1", "a1"),
        (3, "c1", "b2"),
    ]


def test_empty_slots() -> None:
    """Test that slots without options are reported."""
    itinerary = make_itinerary([make_slot("e", SlotType.DINNER, None), make_slot("f", SlotType.MORNING)])

    issues = check_empty_slots(itinerary)

    assert [(i.type, i.slot) for i in issues] == [(IssueType.EMPTY_SLOT, "e")]
    assert "dinner slot on Day 1" in issues[0].message


# Expected anchors


def test_expected_anchor_found_on_date() -> None:
    """Test that a correctly anchored booking on the right date passes."""
    itinerary = make_itinerary(
        [make_slot("t", SlotType.MORNING, "teamLab Planets", behavior=SlotBehavior.ANCHOR, tags=["pre-booked"])],
        dates=["2025-04-02"],
    )

    assert check_expected_anchors(itinerary, [ExpectedAnchor(name="TeamLab", date="2025-04-02")]) == []
    assert check_expected_anchors(itinerary, [ExpectedAnchor(name="teamlab")]) == []


def test_expected_anchor_on_wrong_date_is_missing() -> None:
    """Test that the date must match when one is given."""
    itinerary = make_itinerary(
        [make_slot("t", SlotType.MORNING, "teamLab Planets", behavior=SlotBehavior.ANCHOR)],
        dates=["2025-04-03"],
    )

    issues = check_expected_anchors(itinerary, [ExpectedAnchor(name="teamLab", date="2025-04-02")])

    assert [(i.type, i.day, i.slot) for i in issues] == [(IssueType.MISSING_ANCHOR, 0, None)]
    assert issues[0].details == {"name": "teamLab", "date": "2025-04-02"}


def test_anchor_behavior_only_checked_when_anchors_expected() -> None:
    """Test that wrong anchor behavior is reported only alongside expectations."""
    itinerary = make_itinerary(
        [make_slot("t", SlotType.MORNING, "Ghibli Museum", behavior=SlotBehavior.FLEX, tags=["pre-booked"])]
    )

    assert check_expected_anchors(itinerary, []) == []
    issues = check_expected_anchors(itinerary, [ExpectedAnchor(name="Ghibli")])
    assert types_of(issues) == [IssueType.MISSING_ANCHOR, IssueType.ANCHOR_WRONG_BEHAVIOR]
    assert "behavior 'flex'" in issues[1].message
