"""Validation issue models - problems found by the constraint engine and batch validator."""

from enum import Enum
from typing import Any

from pydantic import Field

from backend.itinerary_engine.models.common import CamelModel

# JSON-serializable value types for issue details
JsonValue = str | int | float | bool | None | dict[str, Any] | list[Any]


class IssueSeverity(str, Enum):
    """Severity levels; only errors block a mutation."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ConstraintLayer(str, Enum):
    """Validation dimension an issue belongs to."""

    TEMPORAL = "temporal"
    FLIGHT = "flight"
    GEOGRAPHIC = "geographic"
    BEHAVIORAL = "behavioral"
    RESOURCE = "resource"
    CLUSTERING = "clustering"
    DEPENDENCY = "dependency"
    FRAGILITY = "fragility"
    CROSS_DAY = "cross_day"
    STRUCTURE = "structure"
    PREFERENCE = "preference"


class IssueType(str, Enum):
    """Closed taxonomy of validation issues."""

    # Temporal
    MISSING_TIME = "MISSING_TIME"
    INVALID_TIME_FORMAT = "INVALID_TIME_FORMAT"
    INVALID_TIME_RANGE = "INVALID_TIME_RANGE"
    OVERLAPPING_SLOTS = "OVERLAPPING_SLOTS"
    TIGHT_TRANSITION = "TIGHT_TRANSITION"
    VERY_EARLY_START = "VERY_EARLY_START"
    VERY_LATE_END = "VERY_LATE_END"
    EXCESSIVE_PACING = "EXCESSIVE_PACING"
    # Flight window
    IMPOSSIBLE_SLOT_BEFORE_ARRIVAL = "IMPOSSIBLE_SLOT_BEFORE_ARRIVAL"
    IMPOSSIBLE_SLOT_AFTER_DEPARTURE = "IMPOSSIBLE_SLOT_AFTER_DEPARTURE"
    # Geographic
    ACTIVITY_FAR_FROM_CITY = "ACTIVITY_FAR_FROM_CITY"
    LONG_WALKING_DISTANCE = "LONG_WALKING_DISTANCE"
    # Behavioral
    MISSING_TRAVEL_BEHAVIOR = "MISSING_TRAVEL_BEHAVIOR"
    INCORRECT_MEAL_BEHAVIOR = "INCORRECT_MEAL_BEHAVIOR"
    MISSING_ANCHOR_BEHAVIOR = "MISSING_ANCHOR_BEHAVIOR"
    SLOT_LOCKED = "SLOT_LOCKED"
    # Resource
    COMMUTE_WITHOUT_HOTEL = "COMMUTE_WITHOUT_HOTEL"
    UNREASONABLE_COMMUTE_DISTANCE = "UNREASONABLE_COMMUTE_DISTANCE"
    MISSING_HOTEL_COORDINATES = "MISSING_HOTEL_COORDINATES"
    LONG_COMMUTE = "LONG_COMMUTE"
    # Clustering
    CLUSTER_FRAGMENTED = "CLUSTER_FRAGMENTED"
    # Dependencies
    DEPENDENCY_ORDER_VIOLATED = "DEPENDENCY_ORDER_VIOLATED"
    DEPENDENCY_SAME_DAY_VIOLATED = "DEPENDENCY_SAME_DAY_VIOLATED"
    DEPENDENCY_DIFFERENT_DAY_VIOLATED = "DEPENDENCY_DIFFERENT_DAY_VIOLATED"
    # Fragility
    WEATHER_SENSITIVE = "WEATHER_SENSITIVE"
    PEAK_HOUR_CROWDS = "PEAK_HOUR_CROWDS"
    BOOKING_REQUIRED = "BOOKING_REQUIRED"
    # Cross-day
    TIGHT_CITY_TRANSITION = "TIGHT_CITY_TRANSITION"
    # Day structure (batch only)
    SPARSE_DAY = "SPARSE_DAY"
    MISSING_MEAL = "MISSING_MEAL"
    EMPTY_SLOT = "EMPTY_SLOT"
    CROSS_DAY_DUPLICATE = "CROSS_DAY_DUPLICATE"
    MISSING_ANCHOR = "MISSING_ANCHOR"
    ANCHOR_WRONG_BEHAVIOR = "ANCHOR_WRONG_BEHAVIOR"
    # Meals and preferences (batch only)
    MEAL_LONG_COMMUTE_TO = "MEAL_LONG_COMMUTE_TO"
    MEAL_LONG_COMMUTE_FROM = "MEAL_LONG_COMMUTE_FROM"
    BREAKFAST_NOT_EARLY = "BREAKFAST_NOT_EARLY"
    DINNER_NOT_LATE = "DINNER_NOT_LATE"
    DIETARY_VIOLATION = "DIETARY_VIOLATION"
    CUISINE_MISMATCH = "CUISINE_MISMATCH"


class ValidationIssue(CamelModel):
    """A single problem detected in an itinerary."""

    type: IssueType
    severity: IssueSeverity
    layer: ConstraintLayer
    day: int
    slot: str | None = None  # slot id
    message: str
    details: dict[str, JsonValue] = Field(default_factory=dict)

    @property
    def key(self) -> tuple[str, int, str | None]:
        """Identity used to diff issue sets before/after a mutation."""
        return (self.type.value, self.day, self.slot)


class IssueCounts(CamelModel):
    """Per-severity tallies."""

    errors: int = 0
    warnings: int = 0
    info: int = 0

    @classmethod
    def from_issues(cls, issues: list[ValidationIssue]) -> "IssueCounts":
        return cls(
            errors=sum(1 for i in issues if i.severity == IssueSeverity.ERROR),
            warnings=sum(1 for i in issues if i.severity == IssueSeverity.WARNING),
            info=sum(1 for i in issues if i.severity == IssueSeverity.INFO),
        )


class HealthStatus(str, Enum):
    """Coarse health band derived from the score."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class ValidationReport(CamelModel):
    """Diagnostic output of the batch validator."""

    destination: str
    issues: list[ValidationIssue] = Field(default_factory=list)
    counts: IssueCounts = Field(default_factory=IssueCounts)
    by_type: dict[str, int] = Field(default_factory=dict)
    health_score: int = Field(default=100, ge=0, le=100)
    status: HealthStatus = HealthStatus.EXCELLENT

    @property
    def is_valid(self) -> bool:
        return self.counts.errors == 0


class ExpectedAnchor(CamelModel):
    """A booking the itinerary must contain on a given date."""

    name: str
    date: str = ""


class MealPreferences(CamelModel):
    """Dietary restrictions and cuisine preferences checked against meal slots."""

    dietary: list[str] = Field(default_factory=list)  # vegetarian, vegan, halal
    cuisines: list[str] = Field(default_factory=list)


class ValidationOptions(CamelModel):
    """Trip-level expectations only the batch validator checks."""

    expected_anchors: list[ExpectedAnchor] = Field(default_factory=list)
    meal_preferences: MealPreferences | None = None
