"""Itinerary models - days, slots and ranked activity options."""

from typing import Any

from pydantic import Field, model_validator

from backend.itinerary_engine.models.common import (
    ActivityKind,
    CamelModel,
    CommuteMethod,
    Coordinates,
    DependencyType,
    Money,
    SlotBehavior,
    SlotType,
    TimeRange,
)

_TRANSPORT_CATEGORIES = {"transport", "transit", "transfer"}
_MEAL_CATEGORIES = {"restaurant", "cafe", "food", "meal", "bar", "izakaya"}


class Place(CamelModel):
    """Resolved place data for an activity."""

    name: str
    address: str = ""
    neighborhood: str = ""
    coordinates: Coordinates | None = None
    rating: float | None = None
    google_place_id: str | None = None

    @property
    def has_location(self) -> bool:
        return self.coordinates is not None and not self.coordinates.is_unset


class Activity(CamelModel):
    """The thing being done in a slot."""

    name: str
    description: str = ""
    category: str = ""
    duration: int = Field(default=60, ge=0, description="Minutes")
    place: Place | None = None
    arrival_place: Place | None = None  # Destination of a transport activity
    is_free: bool = False
    estimated_cost: Money | None = None
    tags: list[str] = Field(default_factory=list)
    cuisine_type: str | None = None  # Restaurants only
    source: str | None = None

    @property
    def kind(self) -> ActivityKind:
        """Category-derived variant."""
        category = self.category.lower()
        if category in _TRANSPORT_CATEGORIES:
            return ActivityKind.TRANSPORT
        if category in _MEAL_CATEGORIES:
            return ActivityKind.MEAL
        return ActivityKind.ATTRACTION


class ActivityOption(CamelModel):
    """A ranked candidate for a slot (rank 1 = best)."""

    id: str
    rank: int = Field(default=1, ge=1)
    score: float = Field(default=0, ge=0, le=100)
    activity: Activity
    match_reasons: list[str] = Field(default_factory=list)
    tradeoffs: list[str] = Field(default_factory=list)


class ReplacementOption(CamelModel):
    """Fallback activity kept alongside a slot."""

    id: str
    activity: Activity
    reason: str = ""
    priority: int = 1


class Commute(CamelModel):
    """Travel leg between two points."""

    method: CommuteMethod
    duration: int = Field(..., ge=0, description="Minutes")
    distance: float = Field(default=0, ge=0, description="Meters")
    instructions: str = ""
    commute_type: str | None = None
    from_name: str | None = None
    to_name: str | None = None


class Accommodation(CamelModel):
    """Where the traveller sleeps on a given day."""

    name: str
    address: str = ""
    neighborhood: str | None = None
    coordinates: Coordinates | None = None
    check_in: str | None = None
    check_out: str | None = None
    type: str | None = None


class CityTransition(CamelModel):
    """Inter-city travel on a transfer day."""

    from_city: str = Field(alias="from")
    to_city: str = Field(alias="to")
    method: str
    duration: int = 0
    departure_time: str = ""
    arrival_time: str = ""
    departure_station: str | None = None
    arrival_station: str | None = None
    train_name: str | None = None
    commute_to_station: Commute | None = None


class SlotDependency(CamelModel):
    """Ordering requirement of a slot relative to another slot."""

    type: DependencyType
    target_slot_id: str
    reason: str | None = None


class SlotFragility(CamelModel):
    """Risk metadata: weather, crowds and booking."""

    weather_sensitivity: str | None = None  # low, medium, high
    crowd_sensitivity: str | None = None
    peak_hours: list[str] = Field(default_factory=list)  # "HH:MM-HH:MM"
    best_visit_time: str | None = None
    booking_required: bool = False
    booking_url: str | None = None
    ticket_type: str | None = None


class Slot(CamelModel):
    """A bounded time window in a day holding ranked activity options."""

    slot_id: str
    slot_type: SlotType
    time_range: TimeRange = Field(default_factory=TimeRange)
    options: list[ActivityOption] = Field(default_factory=list)
    selected_option_id: str | None = None
    behavior: SlotBehavior | None = None
    rigidity_score: float | None = Field(default=None, ge=0, le=1)
    is_locked: bool = False
    commute_from_previous: Commute | None = None
    replacement_pool: list[ReplacementOption] = Field(default_factory=list)
    cluster_id: str | None = None
    dependencies: list[SlotDependency] = Field(default_factory=list)
    fragility: SlotFragility | None = None
    user_notes: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def selected_option(self) -> ActivityOption | None:
        """Effective selection: the referenced option, else the first one."""
        if self.selected_option_id:
            for option in self.options:
                if option.id == self.selected_option_id:
                    return option
        return self.options[0] if self.options else None

    @property
    def activity(self) -> Activity | None:
        option = self.selected_option
        return option.activity if option else None

    @property
    def display_name(self) -> str:
        activity = self.activity
        return activity.name if activity else f"empty {self.slot_type.value} slot"


class Day(CamelModel):
    """One calendar day of the trip."""

    day_number: int = Field(..., ge=1)
    date: str = ""
    city: str = ""
    title: str = ""
    slots: list[Slot] = Field(default_factory=list)
    accommodation: Accommodation | None = None
    city_transition: CityTransition | None = None
    commute_from_hotel: Commute | None = None
    commute_to_hotel: Commute | None = None


class BudgetRange(CamelModel):
    """Estimated spend range."""

    min: float
    max: float
    currency: str = "USD"


class Itinerary(CamelModel):
    """A complete multi-day itinerary."""

    trip_id: str | None = None
    destination: str
    country: str | None = None
    days: list[Day] = Field(default_factory=list)
    general_tips: list[str] = Field(default_factory=list)
    estimated_budget: BudgetRange | None = None

    @model_validator(mode="after")
    def validate_contiguous_days(self) -> "Itinerary":
        """Ensure day numbers run 1..N in order."""
        for index, day in enumerate(self.days, start=1):
            if day.day_number != index:
                raise ValueError(
                    f"day numbers must be contiguous from 1; found {day.day_number} at position {index}"
                )
        return self

    def get_day(self, day_number: int) -> Day | None:
        for day in self.days:
            if day.day_number == day_number:
                return day
        return None
