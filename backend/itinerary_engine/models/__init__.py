"""Models package - re-exports for convenience."""

from backend.itinerary_engine.models.common import (
    ActivityKind,
    CommuteMethod,
    Coordinates,
    DependencyType,
    Money,
    SlotBehavior,
    SlotType,
    TimeRange,
)
from backend.itinerary_engine.models.execution import (
    ChatResponse,
    ConstraintAnalysis,
    ExecutionErrorCode,
    ExecutionResult,
)
from backend.itinerary_engine.models.intent import (
    ClarificationOption,
    ClarificationRequest,
    Intent,
    IntentParams,
    IntentType,
    ParseMethod,
    QuickAction,
)
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
from backend.itinerary_engine.models.itinerary import (
    Accommodation,
    Activity,
    ActivityOption,
    BudgetRange,
    CityTransition,
    Commute,
    Day,
    Itinerary,
    Place,
    ReplacementOption,
    Slot,
    SlotDependency,
    SlotFragility,
)
from backend.itinerary_engine.models.remediation import (
    FlightConstraints,
    RemediationChange,
    RemediationChangeType,
    RemediationOptions,
    RemediationResult,
)

__all__ = [
    # Common
    "Coordinates",
    "TimeRange",
    "Money",
    "SlotType",
    "SlotBehavior",
    "CommuteMethod",
    "ActivityKind",
    "DependencyType",
    # Itinerary
    "Itinerary",
    "Day",
    "Slot",
    "SlotDependency",
    "SlotFragility",
    "ActivityOption",
    "Activity",
    "Place",
    "ReplacementOption",
    "Commute",
    "Accommodation",
    "CityTransition",
    "BudgetRange",
    # Intent
    "Intent",
    "IntentType",
    "IntentParams",
    "ParseMethod",
    "ClarificationRequest",
    "ClarificationOption",
    "QuickAction",
    # Issues
    "ValidationIssue",
    "IssueType",
    "IssueSeverity",
    "ConstraintLayer",
    "IssueCounts",
    "HealthStatus",
    "ValidationReport",
    "ValidationOptions",
    "ExpectedAnchor",
    "MealPreferences",
    # Remediation
    "FlightConstraints",
    "RemediationChange",
    "RemediationChangeType",
    "RemediationOptions",
    "RemediationResult",
    # Execution
    "ExecutionResult",
    "ExecutionErrorCode",
    "ConstraintAnalysis",
    "ChatResponse",
]
