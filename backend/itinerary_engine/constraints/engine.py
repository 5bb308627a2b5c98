"""Constraint engine - composes the per-layer checks into one analysis."""

from backend.itinerary_engine.config import Settings, get_settings
from backend.itinerary_engine.constraints.checks import (
    check_clustering,
    check_cross_day,
    check_dependencies,
    check_flight_constraints,
    check_fragility,
    check_geographic_consistency,
    check_resources,
    check_slot_behaviors,
    check_temporal_consistency,
    make_issue,
)
from backend.itinerary_engine.constraints.lookup import (
    SlotRef,
    find_activity_by_name,
    find_slot_by_id,
)
from backend.itinerary_engine.models.execution import ConstraintAnalysis
from backend.itinerary_engine.models.intent import Intent, IntentParams, IntentType
from backend.itinerary_engine.models.issues import (
    ConstraintLayer,
    IssueSeverity,
    IssueType,
    ValidationIssue,
)
from backend.itinerary_engine.models.itinerary import Itinerary, Slot
from backend.itinerary_engine.models.remediation import FlightConstraints
from backend.itinerary_engine.utils.geo_time import format_minutes_to_time, try_parse_time


# Intents that relocate or destroy a slot's content
LOCK_SENSITIVE_INTENTS = frozenset(
    {
        IntentType.MOVE_ACTIVITY,
        IntentType.REMOVE_ACTIVITY,
        IntentType.SWAP_ACTIVITIES,
        IntentType.REPLACE_ACTIVITY,
    }
)


def resolve_target(
    itinerary: Itinerary, params: IntentParams, name: str | None = None
) -> SlotRef | None:
    """Find the slot an intent refers to: slot id first, then activity name.

    A day restriction (from_day, else day_number) is tried first and dropped if
    nothing matches on that day.
    """
    if params.slot_id:
        ref = find_slot_by_id(itinerary, params.slot_id)
        if ref is not None:
            return ref

    name = name or params.activity_name
    if not name:
        return None

    day_filter = params.from_day or params.day_number
    if day_filter is not None:
        ref = find_activity_by_name(itinerary, name, day_filter)
        if ref is not None:
            return ref
    return find_activity_by_name(itinerary, name)


def can_move_slot(slot: Slot) -> tuple[bool, str | None]:
    """Whether a slot may be relocated or removed by a user command.

    Returns:
        (allowed, resolution hint when not allowed)
    """
    if slot.is_locked:
        return (False, "Unlock the activity first")
    return (True, None)


def blocking_issues(
    before: list[ValidationIssue], after: list[ValidationIssue]
) -> list[ValidationIssue]:
    """Errors present after a mutation that were not present before it."""
    existing = {issue.key for issue in before if issue.severity == IssueSeverity.ERROR}
    return [
        issue
        for issue in after
        if issue.severity == IssueSeverity.ERROR and issue.key not in existing
    ]


class ConstraintEngine:
    """Evaluates an itinerary, or a proposed change to it, against all layers."""

    def __init__(
        self,
        settings: Settings | None = None,
        flight: FlightConstraints | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.flight = flight

    def check_all(
        self, itinerary: Itinerary, flight: FlightConstraints | None = None
    ) -> list[ValidationIssue]:
        """Run every layer check; no check short-circuits another.

        ``flight`` overrides the engine's own flight window for this call.
        """
        flight = flight if flight is not None else self.flight
        issues: list[ValidationIssue] = []
        issues.extend(check_temporal_consistency(itinerary, self.settings))
        issues.extend(check_flight_constraints(itinerary, flight, self.settings))
        issues.extend(check_geographic_consistency(itinerary, self.settings))
        issues.extend(check_slot_behaviors(itinerary))
        issues.extend(check_resources(itinerary, self.settings))
        issues.extend(check_clustering(itinerary))
        issues.extend(check_dependencies(itinerary))
        issues.extend(check_fragility(itinerary))
        issues.extend(check_cross_day(itinerary, self.settings))
        return issues

    def check_proposed_change(self, itinerary: Itinerary, intent: Intent) -> list[ValidationIssue]:
        """Reject relocating or removing locked slots."""
        if intent.type not in LOCK_SENSITIVE_INTENTS:
            return []

        names: list[str | None]
        if intent.type == IntentType.SWAP_ACTIVITIES:
            names = [intent.params.activity1_name, intent.params.activity2_name]
        else:
            names = [None]

        issues: list[ValidationIssue] = []
        refs: list[SlotRef] = []
        if intent.type == IntentType.SWAP_ACTIVITIES and intent.params.slot_ids:
            refs = [
                ref
                for ref in (find_slot_by_id(itinerary, sid) for sid in intent.params.slot_ids)
                if ref is not None
            ]
        else:
            for name in names:
                ref = resolve_target(itinerary, intent.params, name)
                if ref is not None:
                    refs.append(ref)

        for ref in refs:
            allowed, hint = can_move_slot(ref.slot)
            if not allowed:
                issues.append(
                    make_issue(
                        IssueType.SLOT_LOCKED,
                        IssueSeverity.ERROR,
                        ConstraintLayer.BEHAVIORAL,
                        ref.day_number,
                        ref.slot.slot_id,
                        f"{ref.slot.display_name} is locked. {hint}.",
                        resolution=hint,
                    )
                )
        return issues

    def analyze(
        self,
        itinerary: Itinerary,
        proposed_change: Intent | None = None,
        flight: FlightConstraints | None = None,
    ) -> ConstraintAnalysis:
        """Evaluate an itinerary and optionally a proposed change to it.

        Args:
            itinerary: Current itinerary value
            proposed_change: Intent about to be applied, if any
            flight: Flight window overriding the engine default

        Returns:
            ConstraintAnalysis with violations, affected layers and adjustment hints
        """
        violations = self.check_all(itinerary, flight)
        if proposed_change is not None:
            violations.extend(self.check_proposed_change(itinerary, proposed_change))

        layers = sorted({v.layer for v in violations}, key=lambda layer: layer.value)
        feasible = not any(v.severity == IssueSeverity.ERROR for v in violations)

        return ConstraintAnalysis(
            feasible=feasible,
            violations=violations,
            auto_adjustments=self._suggest_adjustments(itinerary, violations),
            affected_layers=layers,
        )

    def _suggest_adjustments(
        self, itinerary: Itinerary, violations: list[ValidationIssue]
    ) -> list[str]:
        """Turn overlaps into concrete "shift" hints."""
        hints: list[str] = []
        for issue in violations:
            if issue.type != IssueType.OVERLAPPING_SLOTS or issue.slot is None:
                continue
            ref = find_slot_by_id(itinerary, issue.slot)
            overlap = issue.details.get("overlap_minutes")
            if ref is None or not isinstance(overlap, int):
                continue
            start = try_parse_time(ref.slot.time_range.start)
            if start is None:
                continue
            hints.append(
                f"Shift {ref.slot.display_name} to start at {format_minutes_to_time(start + overlap)}"
            )
        return hints
