"""Execution models - outcomes of applying an intent to an itinerary."""

from enum import Enum

from pydantic import Field

from backend.itinerary_engine.models.common import CamelModel
from backend.itinerary_engine.models.intent import ClarificationRequest, Intent, QuickAction
from backend.itinerary_engine.models.issues import ConstraintLayer, IssueSeverity, ValidationIssue
from backend.itinerary_engine.models.itinerary import ActivityOption, Itinerary


class ExecutionErrorCode(str, Enum):
    """Why an intent was not applied."""

    TARGET_NOT_FOUND = "EXECUTION_TARGET_NOT_FOUND"
    SLOT_LOCKED = "SLOT_LOCKED"
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
    INVALID_PARAMS = "INVALID_PARAMS"
    NOTHING_TO_UNDO = "NOTHING_TO_UNDO"
    NOTHING_TO_REDO = "NOTHING_TO_REDO"
    UNSUPPORTED = "UNSUPPORTED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ConstraintAnalysis(CamelModel):
    """Constraint engine verdict attached to every execution result."""

    feasible: bool = True
    violations: list[ValidationIssue] = Field(default_factory=list)
    auto_adjustments: list[str] = Field(default_factory=list)
    affected_layers: list[ConstraintLayer] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [v for v in self.violations if v.severity == IssueSeverity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [v for v in self.violations if v.severity != IssueSeverity.ERROR]


class ExecutionResult(CamelModel):
    """Success with a new itinerary and undo intent, or a structured rejection."""

    success: bool
    message: str
    new_itinerary: Itinerary | None = None
    undo_action: Intent | None = None
    constraint_analysis: ConstraintAnalysis = Field(default_factory=ConstraintAnalysis)
    error_code: ExecutionErrorCode | None = None
    suggested_actions: list[QuickAction] = Field(default_factory=list)
    suggestions: list[ActivityOption] = Field(default_factory=list)
    minutes_saved: int | None = None

    @property
    def mutated(self) -> bool:
        return self.success and self.new_itinerary is not None


class ChatResponse(CamelModel):
    """Reply to one chat message within a session."""

    session_id: str
    message: str
    intent: Intent | None = None
    clarification: ClarificationRequest | None = None
    execution: ExecutionResult | None = None
    itinerary: Itinerary | None = None
    suggested_actions: list[QuickAction] = Field(default_factory=list)
    superseded: bool = False
