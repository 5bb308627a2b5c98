"""Remediation models - flight window, step switches and the change audit trail."""

from enum import Enum

from pydantic import Field

from backend.itinerary_engine.models.common import CamelModel
from backend.itinerary_engine.models.itinerary import Itinerary


class FlightConstraints(CamelModel):
    """Arrival/departure clock times bounding the first and last day."""

    arrival_flight_time: str | None = None  # "15:00" on day 1
    departure_flight_time: str | None = None  # "18:00" on the last day


class RemediationChangeType(str, Enum):
    """Kinds of automatic corrections."""

    REMOVED_IMPOSSIBLE_SLOT = "REMOVED_IMPOSSIBLE_SLOT"
    REMOVED_DUPLICATE = "REMOVED_DUPLICATE"
    FIXED_TRANSFER_BEHAVIOR = "FIXED_TRANSFER_BEHAVIOR"
    FIXED_MEAL_BEHAVIOR = "FIXED_MEAL_BEHAVIOR"
    FIXED_ANCHOR_BEHAVIOR = "FIXED_ANCHOR_BEHAVIOR"
    FIXED_INVALID_COMMUTE = "FIXED_INVALID_COMMUTE"
    FLAGGED_MEAL_FOR_NEARBY_SEARCH = "FLAGGED_MEAL_FOR_NEARBY_SEARCH"
    FLAGGED_EMPTY_SLOT = "FLAGGED_EMPTY_SLOT"
    FIXED_SLOT_ID = "FIXED_SLOT_ID"


class RemediationChange(CamelModel):
    """Audit record for one correction."""

    type: RemediationChangeType
    day: int
    slot: str | None = None
    reason: str


class RemediationOptions(CamelModel):
    """Step switches. The invalid-commute repair is opt-in."""

    remove_impossible_slots: bool = True
    remove_duplicates: bool = True
    fix_transfer_behavior: bool = True
    fix_meal_behavior: bool = True
    fix_anchor_behavior: bool = True
    fix_invalid_commutes: bool = False
    flag_meal_commutes: bool = True
    flag_empty_slots: bool = True
    renumber_slot_ids: bool = True
    commute_threshold_minutes: int | None = None  # Defaults to settings value


class RemediationResult(CamelModel):
    """Corrected itinerary plus ordered change list."""

    itinerary: Itinerary
    changes: list[RemediationChange] = Field(default_factory=list)
