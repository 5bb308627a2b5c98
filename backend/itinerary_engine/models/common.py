"""Common types and enums shared across all models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys (persisted itinerary JSON shape)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Coordinates(CamelModel):
    """Geographic coordinates (WGS84)."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    @property
    def is_unset(self) -> bool:
        """(0, 0) is used upstream as a placeholder for unresolved places."""
        return self.lat == 0 and self.lng == 0


class TimeRange(CamelModel):
    """Local wall-clock window, "HH:MM" strings.

    Either bound may be empty; ordering is checked by the constraint engine.
    """

    start: str = ""
    end: str = ""

    @field_validator("start", "end")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Normalize surrounding whitespace; format problems are reported by validators."""
        return v.strip()


class Money(CamelModel):
    """Monetary amount."""

    amount: float = Field(..., ge=0)
    currency: str = "USD"


class SlotType(str, Enum):
    """Time-of-day slot classification."""

    MORNING = "morning"
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    AFTERNOON = "afternoon"
    DINNER = "dinner"
    EVENING = "evening"

    @property
    def is_meal(self) -> bool:
        return self in (SlotType.BREAKFAST, SlotType.LUNCH, SlotType.DINNER)


class DependencyType(str, Enum):
    """Ordering relation a slot declares towards another slot."""

    MUST_BEFORE = "must-before"
    MUST_AFTER = "must-after"
    SAME_DAY = "same-day"
    DIFFERENT_DAY = "different-day"


class SlotBehavior(str, Enum):
    """Semantic role of a slot, governing which rules apply."""

    FLEX = "flex"
    MEAL = "meal"
    TRAVEL = "travel"
    ANCHOR = "anchor"


class CommuteMethod(str, Enum):
    """Transport mode of a commute leg."""

    WALK = "walk"
    TRANSIT = "transit"
    TAXI = "taxi"
    DRIVE = "drive"
    SHINKANSEN = "shinkansen"
    FLIGHT = "flight"
    BUS = "bus"
    FERRY = "ferry"
    TRAIN = "train"
    CAR = "car"


class ActivityKind(str, Enum):
    """Derived activity variant used instead of probing optional fields."""

    TRANSPORT = "transport"
    MEAL = "meal"
    ATTRACTION = "attraction"


# Default windows used when a slot is created or retyped without explicit times
DEFAULT_SLOT_WINDOWS: dict[SlotType, tuple[str, str]] = {
    SlotType.BREAKFAST: ("08:00", "09:30"),
    SlotType.MORNING: ("09:00", "12:00"),
    SlotType.LUNCH: ("12:00", "13:30"),
    SlotType.AFTERNOON: ("14:00", "17:00"),
    SlotType.DINNER: ("18:00", "20:00"),
    SlotType.EVENING: ("20:00", "22:00"),
}
