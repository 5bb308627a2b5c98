"""Tests for the rule-based intent tier and its parameter extractors."""

import pytest

from backend.itinerary_engine.models.common import SlotType
from backend.itinerary_engine.models.intent import IntentType, ParseMethod
from backend.itinerary_engine.parsing.rules import (
    NAMED_CONFIDENCE,
    UNNAMED_CONFIDENCE,
    extract_activity_name,
    extract_category,
    extract_day_number,
    extract_duration,
    extract_location,
    extract_target_day,
    extract_time_slot,
    match_rule,
    parse_with_rules,
)


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("Move Senso-ji to day 3", IntentType.MOVE_ACTIVITY),
        ("Swap Senso-ji with Kinkaku-ji", IntentType.SWAP_ACTIVITIES),
        ("Replace Nishiki Market with a ramen bar", IntentType.REPLACE_ACTIVITY),
        ("Fill the empty lunch slot on day 2", IntentType.SUGGEST_FROM_REPLACEMENT_POOL),
        ("undo", IntentType.UNDO),
        ("redo that please", IntentType.REDO),
        ("Add a sushi dinner on day 2", IntentType.ADD_ACTIVITY),
        ("Delete Nishiki Market", IntentType.REMOVE_ACTIVITY),
        ("take out the market", IntentType.REMOVE_ACTIVITY),
        ("Optimize the route for day 1", IntentType.OPTIMIZE_ROUTE),
        ("Group nearby activities on day 2", IntentType.OPTIMIZE_CLUSTERS),
        ("Lock Kinkaku-ji", IntentType.PRIORITIZE),
        ("Unlock Kinkaku-ji", IntentType.DEPRIORITIZE),
        ("Suggest alternatives for lunch", IntentType.SUGGEST_ALTERNATIVES),
        ("Day 2 is too busy", IntentType.BALANCE_PACING),
        ("Senso-ji to day 3", IntentType.MOVE_ACTIVITY),
        ("What time does the museum open?", IntentType.ASK_QUESTION),
    ],
)
def test_match_rule_classifies_commands(message: str, expected: IntentType) -> None:
    """Test that representative messages map to the expected intent type."""
    rule = match_rule(message)
    assert rule is not None
    assert rule.intent == expected


def test_match_rule_returns_none_for_small_talk() -> None:
    """Test that messages with no command signal match no rule."""
    assert match_rule("Hello there") is None
    assert parse_with_rules("Hello there") is None


def test_match_rule_prefers_lower_priority_number() -> None:
    """Test that an explicit verb beats the verb-less move pattern."""
    # "replace ... with" (priority 1) beats "to day 3" (priority 4)
    rule = match_rule("Replace the temple with a garden to day 3")
    assert rule is not None
    assert rule.intent == IntentType.REPLACE_ACTIVITY


def test_match_rule_breaks_ties_by_declaration_order() -> None:
    """Test that equal-priority rules resolve to the first declared."""
    rule = match_rule("swap or move it")
    assert rule is not None
    assert rule.intent == IntentType.MOVE_ACTIVITY
    assert rule.priority == 1


def test_parse_move_extracts_name_and_destination() -> None:
    """Test move parameters: hyphenated name, destination day, confidence."""
    intent = parse_with_rules("Move Senso-ji to day 3")
    assert intent is not None
    assert intent.type == IntentType.MOVE_ACTIVITY
    assert intent.params.activity_name == "Senso-ji"
    assert intent.params.to_day == 3
    assert intent.params.day_number is None
    assert intent.params.from_day is None
    assert intent.confidence == NAMED_CONFIDENCE
    assert intent.method == ParseMethod.RULES


def test_parse_move_keeps_source_day() -> None:
    """Test that "from day 1 to day 3" records the source day."""
    intent = parse_with_rules("Move Senso-ji from day 1 to day 3")
    assert intent is not None
    assert intent.params.from_day == 1
    assert intent.params.to_day == 3


def test_parse_move_to_time_of_day() -> None:
    """Test that a part-of-day destination becomes to_slot."""
    intent = parse_with_rules("Move Senso-ji to the evening")
    assert intent is not None
    assert intent.params.to_slot == SlotType.EVENING
    assert intent.params.slot_type is None


def test_parse_lock_named_activity() -> None:
    """Test that locking a named activity is a confident prioritize."""
    intent = parse_with_rules("Lock TeamLab Borderless")
    assert intent is not None
    assert intent.type == IntentType.PRIORITIZE
    assert intent.params.activity_name is not None
    assert "teamlab" in intent.params.activity_name.lower()
    assert intent.confidence == NAMED_CONFIDENCE


def test_parse_move_without_name_has_low_confidence() -> None:
    """Test that a pronoun target yields no name and unnamed confidence."""
    intent = parse_with_rules("move it to the evening")
    assert intent is not None
    assert intent.params.activity_name is None
    assert intent.confidence == UNNAMED_CONFIDENCE


def test_parse_swap_extracts_both_names() -> None:
    """Test that both sides of a swap are captured."""
    intent = parse_with_rules("Swap Senso-ji with Kinkaku-ji")
    assert intent is not None
    assert intent.params.activity1_name == "Senso-ji"
    assert intent.params.activity2_name == "Kinkaku-ji"
    assert intent.confidence == NAMED_CONFIDENCE


def test_parse_replace_extracts_target_and_replacement() -> None:
    """Test that the replacement description drops its article."""
    intent = parse_with_rules("Replace Nishiki Market with a ramen bar")
    assert intent is not None
    assert intent.params.activity_name == "Nishiki Market"
    assert intent.params.replacement_description == "ramen bar"


def test_parse_add_extracts_description_slot_and_day() -> None:
    """Test add parameters for a described, untargeted activity."""
    intent = parse_with_rules("Add a sushi dinner on day 2")
    assert intent is not None
    assert intent.type == IntentType.ADD_ACTIVITY
    assert intent.params.activity_description == "sushi dinner"
    assert intent.params.slot_type == SlotType.DINNER
    assert intent.params.day_number == 2
    assert intent.params.category == "restaurant"


def test_parse_add_prefers_quoted_description() -> None:
    """Test that a quoted name is used verbatim."""
    intent = parse_with_rules('Add "Tsukiji Outer Market" to day 1')
    assert intent is not None
    assert intent.params.activity_description == "Tsukiji Outer Market"


def test_parse_question_keeps_message() -> None:
    """Test that questions carry the stripped message text."""
    intent = parse_with_rules("  What time does the museum open?  ")
    assert intent is not None
    assert intent.type == IntentType.ASK_QUESTION
    assert intent.params.question == "What time does the museum open?"


def test_parse_fill_gap_sets_slot_type() -> None:
    """Test that filling a gap names the slot type to fill."""
    intent = parse_with_rules("Fill the empty lunch slot on day 2")
    assert intent is not None
    assert intent.params.slot_type == SlotType.LUNCH
    assert intent.params.day_number == 2
    assert intent.params.context == "gap"


def test_parse_explanation_names_rule() -> None:
    """Test that the explanation records the matched rule."""
    intent = parse_with_rules("undo")
    assert intent is not None
    assert "UNDO" in intent.explanation
    assert intent.confidence == UNNAMED_CONFIDENCE


def test_extract_time_slot_primary_words_win() -> None:
    """Test that meal and part-of-day words beat secondary hints."""
    assert extract_time_slot("a late lunch") == SlotType.LUNCH
    assert extract_time_slot("something late") == SlotType.EVENING
    assert extract_time_slot("at noon") == SlotType.LUNCH
    assert extract_time_slot("brunch spot") == SlotType.BREAKFAST
    assert extract_time_slot("anywhere") is None


def test_extract_day_number_forms() -> None:
    """Test numeric, ordinal and relative day references."""
    assert extract_day_number("on day 4") == 4
    assert extract_day_number("the 3rd day") == 3
    assert extract_day_number("on the second day") == 2
    assert extract_day_number("tomorrow") == 2
    assert extract_day_number("today") == 1
    assert extract_day_number("sometime") is None


def test_extract_target_day() -> None:
    """Test destination day for moves."""
    assert extract_target_day("move it to day 5") == 5
    assert extract_target_day("move it to the third day") == 3
    assert extract_target_day("move it on day 5") is None


def test_extract_activity_name_sources() -> None:
    """Test quoted, hyphenated and capitalized name extraction."""
    assert extract_activity_name('Remove "teamLab Planets" please') == "teamLab Planets"
    assert extract_activity_name("Lock Kinkaku-ji now") == "Kinkaku-ji"
    assert extract_activity_name("Remove Nishiki Market please") == "Nishiki Market"
    assert extract_activity_name("Please move it to the Morning") is None


def test_extract_location_category_duration() -> None:
    """Test auxiliary parameter extraction."""
    assert extract_location("Find ramen near Shibuya Station") == "Shibuya Station"
    assert extract_location("near the station") is None
    assert extract_category("a ramen place") == "restaurant"
    assert extract_category("a garden walk") == "park"
    assert extract_duration("for 90 min") == 90
    assert extract_duration("about 2 hours") == 120
    assert extract_duration("1.5h") == 90
    assert extract_duration("a while") is None
