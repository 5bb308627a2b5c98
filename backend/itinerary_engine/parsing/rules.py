"""Rule-based (tier 1) intent parsing: ordered regex rules plus parameter extraction."""

import re
from dataclasses import dataclass

from backend.itinerary_engine.models.common import SlotType
from backend.itinerary_engine.models.intent import Intent, IntentParams, IntentType, ParseMethod

NAMED_CONFIDENCE = 0.8
UNNAMED_CONFIDENCE = 0.5


@dataclass(frozen=True)
class ActionRule:
    """One row of the rule table; lower priority number = stronger signal."""

    intent: IntentType
    priority: int
    patterns: tuple[re.Pattern[str], ...]

    def matches(self, normalized: str) -> bool:
        return any(p.search(normalized) for p in self.patterns)


def _rule(intent: IntentType, priority: int, *patterns: str) -> ActionRule:
    return ActionRule(intent, priority, tuple(re.compile(p) for p in patterns))


# Declaration order is the tie-break order for equal priorities
ACTION_RULES: list[ActionRule] = [
    _rule(IntentType.MOVE_ACTIVITY, 1, r"\b(move|shift|reschedule|push|pull)\b"),
    _rule(IntentType.SWAP_ACTIVITIES, 1, r"\b(swap|switch|exchange|trade)\b"),
    _rule(
        IntentType.SUGGEST_FROM_REPLACEMENT_POOL,
        1,
        r"\bfill\b.*\b(empty|slot|gap|morning|afternoon|evening|breakfast|lunch|dinner)\b",
    ),
    _rule(IntentType.REPLACE_ACTIVITY, 1, r"\b(replace|change|substitute)\b.*\bwith\b"),
    _rule(IntentType.UNDO, 1, r"\b(undo|revert|go back)\b"),
    _rule(IntentType.REDO, 1, r"\b(redo|restore)\b"),
    _rule(IntentType.ADD_ACTIVITY, 2, r"\b(add|insert|include|schedule|plan|put)\b"),
    _rule(IntentType.REMOVE_ACTIVITY, 2, r"\b(delete|remove|cancel|drop|skip)\b", r"\btake\s+out\b"),
    _rule(IntentType.OPTIMIZE_ROUTE, 2, r"\b(optimi[sz]e|improve)\b.*\broute\b", r"\bless\s+travel\b"),
    _rule(
        IntentType.OPTIMIZE_CLUSTERS,
        2,
        r"\b(optimi[sz]e|group)\b.*\b(cluster|clusters|nearby|close)\b",
    ),
    _rule(IntentType.ADD_ACTIVITY, 3, r"\bfill\b"),
    _rule(IntentType.PRIORITIZE, 3, r"\b(lock|prioriti[sz]e|must[- ]do|important|anchor)\b"),
    _rule(IntentType.DEPRIORITIZE, 3, r"\b(unlock|deprioriti[sz]e|optional|maybe|flexible)\b"),
    _rule(
        IntentType.SUGGEST_ALTERNATIVES,
        3,
        r"\b(suggest|recommend|find|show|any)\b.*\b(alternatives?|options?|places?|restaurants?|activit(y|ies)|something)\b",
    ),
    _rule(IntentType.BALANCE_PACING, 3, r"\b(balance|spread|pace|pacing|relax|too\s+busy|packed)\b"),
    # Bare "X to day 3" / "X to the evening" with no verb
    _rule(
        IntentType.MOVE_ACTIVITY,
        4,
        r"\bto\s+(the\s+)?(day\s*\d+|morning|afternoon|evening|night)\b",
    ),
    _rule(
        IntentType.SUGGEST_ALTERNATIVES,
        4,
        r"\bwhat\b.*\b(should|could|can)\b",
        r"\bhelp\b.*\b(find|choose)\b",
    ),
    _rule(
        IntentType.ASK_QUESTION,
        5,
        r"\?\s*$",
        r"^(what|where|when|how|why)\b",
        r"\b(tell me|explain)\b",
    ),
]

_PRIMARY_SLOT_WORDS: dict[str, SlotType] = {
    "morning": SlotType.MORNING,
    "breakfast": SlotType.BREAKFAST,
    "brunch": SlotType.BREAKFAST,
    "lunch": SlotType.LUNCH,
    "afternoon": SlotType.AFTERNOON,
    "dinner": SlotType.DINNER,
    "supper": SlotType.DINNER,
    "evening": SlotType.EVENING,
    "night": SlotType.EVENING,
}
_SECONDARY_SLOT_WORDS: dict[str, SlotType] = {
    "am": SlotType.MORNING,
    "early": SlotType.MORNING,
    "midday": SlotType.LUNCH,
    "noon": SlotType.LUNCH,
    "pm": SlotType.AFTERNOON,
    "late": SlotType.EVENING,
}

_ORDINAL_WORDS: dict[str, int] = {
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "sixth": 6,
    "seventh": 7,
}

CATEGORY_KEYWORDS: dict[str, str] = {
    "temple": "temple",
    "shrine": "temple",
    "museum": "museum",
    "park": "park",
    "garden": "park",
    "restaurant": "restaurant",
    "cafe": "restaurant",
    "coffee": "restaurant",
    "ramen": "restaurant",
    "sushi": "restaurant",
    "izakaya": "restaurant",
    "shopping": "shopping",
    "mall": "shopping",
    "market": "shopping",
    "viewpoint": "viewpoint",
    "tower": "viewpoint",
    "observation": "viewpoint",
    "bar": "nightlife",
    "club": "nightlife",
}

# Capitalized words that never start or form an activity name
STOP_WORDS = frozenset(
    {
        # Articles, conjunctions, prepositions
        "The", "And", "But", "For", "From", "With", "Into", "Onto", "Near", "Around",
        "Before", "After", "Instead", "Then", "Than",
        # Pronouns and courtesy
        "You", "Can", "Could", "Would", "Please", "Want", "Need", "Let", "Let's", "Lets",
        "Our", "Its", "That", "This", "Those", "These", "What", "Where", "When", "How",
        "Why", "Which", "Any", "Some", "Also", "Just", "Maybe", "Thanks",
        # Command verbs from the rule table
        "Move", "Shift", "Reschedule", "Push", "Pull", "Swap", "Switch", "Exchange", "Trade",
        "Fill", "Replace", "Change", "Substitute", "Undo", "Revert", "Redo", "Restore",
        "Add", "Insert", "Include", "Schedule", "Plan", "Put", "Delete", "Remove", "Cancel",
        "Drop", "Skip", "Take", "Optimize", "Optimise", "Improve", "Group", "Lock", "Unlock",
        "Prioritize", "Prioritise", "Deprioritize", "Deprioritise", "Make", "Keep", "Mark",
        "Suggest", "Recommend", "Find", "Show", "Balance", "Spread", "Relax", "Tell",
        "Explain", "Help", "Visit", "Book",
        # Time words
        "Morning", "Afternoon", "Evening", "Night", "Breakfast", "Brunch", "Lunch",
        "Dinner", "Supper", "Day", "Today", "Tomorrow", "First", "Second", "Third",
        "Fourth", "Fifth", "Sixth", "Seventh",
    }
)

_QUOTED_RE = re.compile(r"\"([^\"]+)\"|(?:^|\s)'([^']+)'(?=\s|$|[.,!?])")
_HYPHENATED_RE = re.compile(r"\b([A-Z]\w*(?:-\w+)+)\b")
_TOKEN_STRIP = ".,!?;:()"
_LOCATION_RE = re.compile(r"\b(?:near|around|in|at)\s+([A-Z][\w-]*(?:\s+[A-Z][\w-]*)?)")
_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(minutes?|mins?|hours?|hrs?|h)\b", re.IGNORECASE)
_SWAP_RE = re.compile(
    r"\b(?:swap|switch|exchange|trade)\s+[\"']?(.+?)[\"']?\s+(?:with|and|for)\s+[\"']?(.+?)[\"']?\s*(?:$|[.!?])",
    re.IGNORECASE,
)
_REPLACE_RE = re.compile(
    r"\b(?:replace|change|substitute)\s+[\"']?(.+?)[\"']?\s+with\s+(?:an?\s+|some\s+)?[\"']?(.+?)[\"']?\s*(?:$|[.!?])",
    re.IGNORECASE,
)
_ADD_DESC_RE = re.compile(
    r"\b(?:add|insert|include|schedule|plan|put|fill)\s+(?:in\s+)?(?:an?\s+|some\s+|the\s+)?(.+?)"
    r"(?=\s+(?:on|to|for|in|at|near|around|into)\b|[.!?]|$)",
    re.IGNORECASE,
)


def match_rule(message: str) -> ActionRule | None:
    """Return the matching rule with the lowest priority number, first declared on ties."""
    normalized = message.lower().strip()
    best: ActionRule | None = None
    for rule in ACTION_RULES:
        if rule.matches(normalized) and (best is None or rule.priority < best.priority):
            best = rule
    return best


def extract_time_slot(message: str) -> SlotType | None:
    """Map slot keywords to a canonical slot type; explicit meal/part-of-day words win."""
    normalized = message.lower()
    for table in (_PRIMARY_SLOT_WORDS, _SECONDARY_SLOT_WORDS):
        for word, slot_type in table.items():
            if re.search(rf"\b{word}\b", normalized):
                return slot_type
    return None


def extract_day_number(message: str) -> int | None:
    """Day number from "day N", "Nth day", ordinal words, today/tomorrow."""
    normalized = message.lower()
    match = re.search(r"\bday\s*(\d+)\b", normalized)
    if match:
        return int(match.group(1))
    match = re.search(r"\b(\d+)(?:st|nd|rd|th)\s+day\b", normalized)
    if match:
        return int(match.group(1))
    for word, number in _ORDINAL_WORDS.items():
        if re.search(rf"\b{word}\b", normalized):
            return number
    if re.search(r"\btomorrow\b", normalized):
        return 2
    if re.search(r"\btoday\b", normalized):
        return 1
    return None


def extract_target_day(message: str) -> int | None:
    """Destination day of a move ("... to day 3")."""
    match = re.search(r"\bto\s+(?:the\s+)?day\s*(\d+)\b", message.lower())
    if match:
        return int(match.group(1))
    match = re.search(r"\bto\s+(?:the\s+)?(\w+)\s+day\b", message.lower())
    if match and match.group(1) in _ORDINAL_WORDS:
        return _ORDINAL_WORDS[match.group(1)]
    return None


def extract_activity_name(message: str) -> str | None:
    """Activity name from quotes, a hyphenated proper noun, or capitalized tokens."""
    quoted = _QUOTED_RE.search(message)
    if quoted:
        return (quoted.group(1) or quoted.group(2)).strip()

    hyphenated = _HYPHENATED_RE.search(message)
    if hyphenated and hyphenated.group(1) not in STOP_WORDS:
        return hyphenated.group(1)

    proper: list[str] = []
    for raw in message.split():
        word = raw.strip(_TOKEN_STRIP)
        if len(word) > 2 and word[0].isupper() and word not in STOP_WORDS:
            proper.append(word)
    return " ".join(proper) if proper else None


def extract_location(message: str) -> str | None:
    """Area after near/around/in/at, capitalized."""
    match = _LOCATION_RE.search(message)
    if match:
        candidate = match.group(1).strip()
        if candidate.split()[0] not in STOP_WORDS:
            return candidate
    return None


def extract_category(message: str) -> str | None:
    normalized = message.lower()
    for keyword, category in CATEGORY_KEYWORDS.items():
        if re.search(rf"\b{keyword}\b", normalized):
            return category
    return None


def extract_duration(message: str) -> int | None:
    """Duration in minutes from "90 min" / "2 hours"."""
    match = _DURATION_RE.search(message)
    if not match:
        return None
    value = float(match.group(1))
    if match.group(2).lower().startswith("h"):
        value *= 60
    return int(value)


def extract_swap_pair(message: str) -> tuple[str, str] | None:
    match = _SWAP_RE.search(message)
    if match:
        return (match.group(1).strip(), match.group(2).strip())
    return None


def extract_replace_pair(message: str) -> tuple[str, str] | None:
    match = _REPLACE_RE.search(message)
    if match:
        return (match.group(1).strip(), match.group(2).strip())
    return None


def extract_add_description(message: str) -> str | None:
    match = _ADD_DESC_RE.search(message)
    if match:
        description = match.group(1).strip()
        return description or None
    return None


def parse_with_rules(message: str) -> Intent | None:
    """Tier 1 parse. Returns None when no rule matches.

    Confidence is 0.8 when an activity name was extracted, 0.5 otherwise.
    """
    rule = match_rule(message)
    if rule is None:
        return None

    intent_type = rule.intent
    activity_name = extract_activity_name(message)
    params = IntentParams(
        slot_type=extract_time_slot(message),
        day_number=extract_day_number(message),
        category=extract_category(message),
        location=extract_location(message),
        duration=extract_duration(message),
    )

    if intent_type == IntentType.MOVE_ACTIVITY:
        params.to_slot = params.slot_type
        params.slot_type = None
        params.to_day = extract_target_day(message)
        if params.to_day is not None and params.day_number is not None:
            # "from day 1 to day 3": the first day mentioned is the source
            if params.day_number != params.to_day:
                params.from_day = params.day_number
            params.day_number = None
        params.activity_name = activity_name
    elif intent_type == IntentType.SWAP_ACTIVITIES:
        pair = extract_swap_pair(message)
        if pair:
            params.activity1_name, params.activity2_name = pair
            activity_name = activity_name or pair[0]
    elif intent_type == IntentType.REPLACE_ACTIVITY:
        pair = extract_replace_pair(message)
        if pair:
            params.activity_name, params.replacement_description = pair
            activity_name = activity_name or pair[0]
        else:
            params.activity_name = activity_name
    elif intent_type == IntentType.ADD_ACTIVITY:
        quoted = _QUOTED_RE.search(message)
        if quoted:
            params.activity_description = (quoted.group(1) or quoted.group(2)).strip()
        else:
            params.activity_description = extract_add_description(message) or activity_name
    elif intent_type == IntentType.ASK_QUESTION:
        params.question = message.strip()
    elif intent_type in (IntentType.SUGGEST_ALTERNATIVES, IntentType.SUGGEST_FROM_REPLACEMENT_POOL):
        params.activity_name = activity_name
        params.context = "slot" if intent_type == IntentType.SUGGEST_ALTERNATIVES else "gap"
    else:
        params.activity_name = activity_name

    confidence = NAMED_CONFIDENCE if activity_name else UNNAMED_CONFIDENCE
    return Intent(
        type=intent_type,
        params=params,
        confidence=confidence,
        explanation=f"Matched {intent_type.value} rule (priority {rule.priority})",
        method=ParseMethod.RULES,
    )
