"""Tests for route, cluster and pacing heuristics."""

import pytest

from backend.itinerary_engine.config import Settings
from backend.itinerary_engine.execution.optimize import (
    apply_order,
    commute_minutes,
    estimate_commute,
    movable_positions,
    plan_balance,
    plan_clusters,
    plan_route,
    refresh_commutes,
    slot_predecessors,
)
from backend.itinerary_engine.models.common import CommuteMethod, Coordinates, SlotType, TimeRange
from backend.itinerary_engine.models.itinerary import Activity, ActivityOption, Commute, Day, Place, Slot

SETTINGS = Settings(_env_file=None)  # type: ignore[call-arg]

# A and C are a short walk apart; B and D sit ~10 km east of them
A = (35.68, 139.70)
B = (35.72, 139.80)
C = (35.685, 139.705)
D = (35.721, 139.801)


def make_slot(
    slot_id: str,
    coords: tuple[float, float] | None = None,
    slot_type: SlotType = SlotType.MORNING,
    start: str = "09:00",
    end: str = "10:00",
    **kwargs: object,
) -> Slot:
    """Helper to create a slot, optionally placed at coordinates."""
    place = None
    if coords is not None:
        place = Place(name=slot_id, coordinates=Coordinates(lat=coords[0], lng=coords[1]))
    return Slot(
        slot_id=slot_id,
        slot_type=slot_type,
        time_range=TimeRange(start=start, end=end),
        options=[ActivityOption(id=f"opt-{slot_id}", activity=Activity(name=f"Place {slot_id}", place=place))],
        **kwargs,  # type: ignore[arg-type]
    )


def make_day(*slots: Slot) -> Day:
    """Helper to wrap slots in day 1."""
    return Day(day_number=1, city="Tokyo", slots=list(slots))


def zigzag_day() -> Day:
    """A -> B -> C where visiting C before B avoids a round trip."""
    return make_day(
        make_slot("a", A, SlotType.MORNING, "09:00", "10:00"),
        make_slot("b", B, SlotType.AFTERNOON, "13:00", "14:00"),
        make_slot("c", C, SlotType.EVENING, "18:00", "19:00"),
    )


# Route


def test_plan_route_reorders_zigzag() -> None:
    """Test that the cheapest order visits the nearby slot first."""
    plan = plan_route(zigzag_day(), SETTINGS)

    assert plan.order == ["a", "c", "b"]
    assert plan.new_minutes < plan.original_minutes
    assert plan.minutes_saved > 15


def test_plan_route_keeps_optimal_order() -> None:
    """Test that an already optimal day is left unchanged."""
    day = make_day(
        make_slot("a", A, SlotType.MORNING),
        make_slot("c", C, SlotType.AFTERNOON),
        make_slot("b", B, SlotType.EVENING),
    )

    plan = plan_route(day, SETTINGS)

    assert plan.order == ["a", "c", "b"]
    assert plan.minutes_saved == 0


def test_plan_route_does_not_move_locked_or_meal_slots() -> None:
    """Test that fixed slots keep their position."""
    day = make_day(
        make_slot("a", A, SlotType.MORNING),
        make_slot("b", B, SlotType.AFTERNOON, is_locked=True),
        make_slot("c", C, SlotType.EVENING),
    )

    plan = plan_route(day, SETTINGS)

    assert plan.order == ["a", "b", "c"]
    assert movable_positions(day) == [0, 2]


def test_plan_route_with_single_movable_slot() -> None:
    """Test that fewer than two movable slots leaves the order alone."""
    day = make_day(make_slot("a", A), make_slot("l", C, SlotType.LUNCH))

    plan = plan_route(day, SETTINGS)

    assert plan.order == ["a", "l"]
    assert plan.minutes_saved == 0


def test_plan_route_nearest_neighbour_beyond_limit() -> None:
    """Test that the greedy fallback still improves a zigzag."""
    settings = Settings(exhaustive_route_limit=2, _env_file=None)  # type: ignore[call-arg]

    plan = plan_route(zigzag_day(), settings)

    assert plan.order == ["a", "c", "b"]
    assert plan.minutes_saved > 0


def test_commute_minutes_prefers_recorded_leg() -> None:
    """Test that a recorded commute is reused only for the original predecessor."""
    first = make_slot("a", A)
    second = make_slot(
        "b", B, commute_from_previous=Commute(method=CommuteMethod.TAXI, duration=99)
    )
    predecessors = {"a": None, "b": "a"}

    assert commute_minutes(first, second, predecessors, SETTINGS) == 99
    assert commute_minutes(second, first, predecessors, SETTINGS) != 99


def test_commute_minutes_without_coordinates_uses_default() -> None:
    """Test the flat cost for legs with an unknown endpoint."""
    known = make_slot("a", A)
    unknown = make_slot("x")

    assert commute_minutes(known, unknown, {}, SETTINGS) == SETTINGS.unknown_commute_min


def test_commute_minutes_ignores_placeholder_coordinates() -> None:
    """Test that (0, 0) coordinates count as unknown."""
    placeholder = make_slot("z", (0.0, 0.0))

    assert commute_minutes(make_slot("a", A), placeholder, {}, SETTINGS) == SETTINGS.unknown_commute_min


# Clusters


def test_plan_clusters_groups_nearby_slots() -> None:
    """Test that close slots become adjacent, in first-appearance order."""
    day = make_day(
        make_slot("a", A),
        make_slot("b", B),
        make_slot("c", C),
        make_slot("d", D),
    )

    assert plan_clusters(day, SETTINGS) == ["a", "c", "b", "d"]


def test_plan_clusters_keeps_unplaced_slots_separate() -> None:
    """Test that slots without coordinates form their own cluster."""
    day = make_day(
        make_slot("a", A),
        make_slot("x"),
        make_slot("c", C),
    )

    assert plan_clusters(day, SETTINGS) == ["a", "c", "x"]


def test_plan_clusters_leaves_fixed_slots() -> None:
    """Test that a meal slot stays in place while others regroup."""
    day = make_day(
        make_slot("a", A),
        make_slot("b", B),
        make_slot("l", None, SlotType.LUNCH),
        make_slot("c", C),
    )

    assert plan_clusters(day, SETTINGS) == ["a", "c", "l", "b"]


# Balance


def busy_day(*, locked: bool = False) -> Day:
    """Four 200-minute flexible slots, 800 minutes in total."""
    return make_day(
        make_slot("s1", None, SlotType.MORNING, "06:00", "09:20"),
        make_slot("s2", None, SlotType.MORNING, "09:30", "12:50"),
        make_slot("s3", None, SlotType.AFTERNOON, "13:00", "16:20"),
        make_slot("s4", None, SlotType.EVENING, "16:30", "19:50", is_locked=locked),
    )


def test_plan_balance_shortens_flexible_slots() -> None:
    """Test proportional shortening down to the daily limit."""
    ranges = plan_balance(busy_day(), SETTINGS)

    assert ranges is not None
    assert [(r.start, r.end) for r in ranges] == [
        ("06:00", "08:30"),
        ("09:30", "12:00"),
        ("13:00", "15:30"),
        ("16:30", "19:00"),
    ]


def test_plan_balance_keeps_locked_windows() -> None:
    """Test that locked slots keep their window."""
    ranges = plan_balance(busy_day(locked=True), SETTINGS)

    assert ranges is not None
    assert (ranges[3].start, ranges[3].end) == ("16:30", "19:50")
    assert all(r.end < original for r, original in zip(ranges[:3], ["09:20", "12:50", "16:20"]))


def test_plan_balance_within_limit_returns_none() -> None:
    """Test that a relaxed day needs no balancing."""
    assert plan_balance(zigzag_day(), SETTINGS) is None


def test_plan_balance_respects_minimum_length() -> None:
    """Test that slots are never shortened below the floor."""
    settings = Settings(max_daily_activity_min=60, _env_file=None)  # type: ignore[call-arg]

    ranges = plan_balance(busy_day(), settings)

    assert ranges is not None
    assert [r.end for r in ranges] == ["06:30", "10:00", "13:30", "17:00"]


# apply_order


def test_apply_order_moves_content_not_windows() -> None:
    """Test that windows and slot types stay with their position."""
    day = zigzag_day()

    apply_order(day, ["a", "c", "b"])

    assert [s.slot_id for s in day.slots] == ["a", "c", "b"]
    assert [s.time_range.start for s in day.slots] == ["09:00", "13:00", "18:00"]
    assert [s.slot_type for s in day.slots] == [SlotType.MORNING, SlotType.AFTERNOON, SlotType.EVENING]


def test_apply_order_with_explicit_windows() -> None:
    """Test that explicit windows replace the positional ones."""
    day = zigzag_day()
    windows = [TimeRange(start="08:00", end="08:30")] * 3

    apply_order(day, ["a", "b", "c"], windows)

    assert all(s.time_range.end == "08:30" for s in day.slots)


@pytest.mark.parametrize("order", [["a", "b"], ["a", "b", "x"], ["a", "a", "b"]])
def test_apply_order_rejects_bad_permutations(order: list[str]) -> None:
    """Test that orders not matching the day's ids are rejected."""
    with pytest.raises(ValueError, match="slot order"):
        apply_order(zigzag_day(), order)


def test_apply_order_rejects_wrong_window_count() -> None:
    """Test that the window list must cover every slot."""
    with pytest.raises(ValueError, match="time ranges"):
        apply_order(zigzag_day(), ["a", "b", "c"], [TimeRange(start="08:00", end="09:00")])


def test_apply_order_reestimates_commutes_behind_new_neighbours() -> None:
    """Test that reordering replaces stale legs and leaves unchanged ones alone."""
    day = zigzag_day()
    stale = Commute(method=CommuteMethod.TRANSIT, duration=40, distance=9000)
    day.slots[1].commute_from_previous = stale.model_copy()
    day.slots[2].commute_from_previous = stale.model_copy()

    apply_order(day, ["a", "c", "b"])

    legs = {s.slot_id: s.commute_from_previous for s in day.slots}
    assert legs["a"] is None
    assert legs["c"] is not None
    assert (legs["c"].method, legs["c"].duration) == (CommuteMethod.WALK, 14)
    assert legs["b"] is not None
    assert legs["b"].method == CommuteMethod.TRANSIT
    assert legs["b"].duration == 34


def test_apply_order_restores_explicit_commutes() -> None:
    """Test that supplied commute records are put back verbatim."""
    day = zigzag_day()
    recorded = Commute(method=CommuteMethod.TRANSIT, duration=40)

    apply_order(day, ["a", "c", "b"], commutes={"a": None, "b": recorded, "c": recorded})

    assert [s.commute_from_previous for s in day.slots] == [None, recorded, recorded]
    assert day.slots[1].commute_from_previous is not recorded


def test_refresh_commutes_clears_leg_of_new_first_slot() -> None:
    """Test that a slot moved to the front loses its commute record."""
    day = make_day(
        make_slot("a", A),
        make_slot("b", B, commute_from_previous=Commute(method=CommuteMethod.TRANSIT, duration=36)),
    )
    predecessors = slot_predecessors(day)
    day.slots.reverse()

    refreshed = refresh_commutes(day, predecessors)

    assert refreshed == ["b", "a"]
    assert day.slots[0].commute_from_previous is None
    assert day.slots[1].commute_from_previous is not None
    assert day.slots[1].commute_from_previous.method == CommuteMethod.TRANSIT


def test_estimate_commute_needs_both_locations() -> None:
    """Test that a leg is only estimated between two placed slots."""
    assert estimate_commute(make_slot("a", A), make_slot("x")) is None
    assert estimate_commute(make_slot("x"), make_slot("a", A)) is None
    walk = estimate_commute(make_slot("a", A), make_slot("c", C))
    assert walk is not None
    assert walk.method == CommuteMethod.WALK


def test_plan_route_keeps_rigid_flex_slot_in_place() -> None:
    """Test that a high rigidity score pins a flexible slot."""
    day = make_day(
        make_slot("a", A, SlotType.MORNING, "09:00", "10:00"),
        make_slot("b", B, SlotType.AFTERNOON, "13:00", "14:00", rigidity_score=0.9),
        make_slot("c", C, SlotType.EVENING, "18:00", "19:00"),
    )

    plan = plan_route(day, SETTINGS)

    assert movable_positions(day) == [0, 2]
    assert plan.order[1] == "b"
