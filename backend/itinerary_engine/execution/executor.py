"""Action executor: applies intents to itinerary values and returns undoable results.

Every handler works on a deep copy of the input itinerary. Failures raised inside
handlers are converted to structured, non-mutating ExecutionResults at the
execute() boundary; callers never see a raw exception.
"""

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from backend.itinerary_engine.config import Settings, get_settings
from backend.itinerary_engine.constraints.engine import (
    ConstraintEngine,
    blocking_issues,
    resolve_target,
)
from backend.itinerary_engine.constraints.lookup import (
    SlotRef,
    find_slot_by_id,
    infer_behavior,
    known_activity_labels,
)
from backend.itinerary_engine.execution.optimize import (
    apply_order,
    commute_records,
    plan_balance,
    plan_clusters,
    plan_route,
    refresh_commutes,
    restore_commutes,
    slot_predecessors,
)
from backend.itinerary_engine.execution.session import SessionState
from backend.itinerary_engine.models.common import (
    DEFAULT_SLOT_WINDOWS,
    SlotBehavior,
    SlotType,
    TimeRange,
)
from backend.itinerary_engine.models.execution import (
    ConstraintAnalysis,
    ExecutionErrorCode,
    ExecutionResult,
)
from backend.itinerary_engine.models.intent import (
    Intent,
    IntentParams,
    IntentType,
    ParseMethod,
    QuickAction,
)
from backend.itinerary_engine.models.issues import ValidationIssue
from backend.itinerary_engine.models.itinerary import (
    Activity,
    ActivityOption,
    Day,
    Itinerary,
    Place,
    Slot,
)
from backend.itinerary_engine.utils.geo_time import (
    category_duration,
    format_minutes_to_time,
    try_parse_time,
)
from backend.itinerary_engine.utils.logging import StructuredEngineLogger
from backend.itinerary_engine.utils.metrics import PrometheusEngineMetrics

logger = logging.getLogger(__name__)

# Slot types tried, in order, when an ADD names no slot type
_FREE_SLOT_PREFERENCE = (SlotType.MORNING, SlotType.AFTERNOON, SlotType.EVENING)

_HISTORY_INTENTS = frozenset({IntentType.UNDO, IntentType.REDO})

LAST_MINUTE_OF_DAY = 23 * 60 + 59

# Snapshot restores and their inverse intent types
_SNAPSHOT_INVERSE: dict[IntentType, IntentType] = {
    IntentType.REPLACE_ACTIVITY: IntentType.REPLACE_ACTIVITY,
    IntentType.PRIORITIZE: IntentType.DEPRIORITIZE,
    IntentType.DEPRIORITIZE: IntentType.PRIORITIZE,
    IntentType.LOCK_SLOT: IntentType.UNLOCK_SLOT,
    IntentType.UNLOCK_SLOT: IntentType.LOCK_SLOT,
}


class TargetNotFoundError(Exception):
    """Referenced activity, slot or day does not exist."""

    pass


class InvalidParamsError(Exception):
    """Intent is missing parameters its handler needs."""

    pass


class SlotLockedError(Exception):
    """Target slot is locked against relocation or removal."""

    def __init__(self, issues: list[ValidationIssue]):
        super().__init__(" ".join(issue.message for issue in issues))
        self.issues = issues


@dataclass
class Mutation:
    """Outcome of a mutating handler before constraint re-checking."""

    itinerary: Itinerary
    message: str
    undo: Intent
    minutes_saved: int | None = None


Handler = Callable[[Itinerary, Intent, SessionState | None], "Mutation | ExecutionResult"]


def system_intent(intent_type: IntentType, **params: object) -> Intent:
    """Intent generated by the engine itself (undo actions, restores)."""
    return Intent(
        type=intent_type,
        params=IntentParams(**params),  # type: ignore[arg-type]
        confidence=1.0,
        method=ParseMethod.SYSTEM,
    )


def unlock_quick_action(slot: Slot) -> QuickAction:
    return QuickAction(
        id=f"unlock-{slot.slot_id}",
        label=f"Unlock {slot.display_name}",
        description="Unlock the activity first, then retry",
        action=Intent(
            type=IntentType.UNLOCK_SLOT,
            params=IntentParams(slot_id=slot.slot_id),
            method=ParseMethod.QUICK_ACTION,
        ),
        is_primary=True,
    )


def insertion_index(day: Day, start: int | None) -> int:
    """Position keeping the day ordered by start time; untimed slots are not reordered."""
    if start is None:
        return len(day.slots)
    for i, slot in enumerate(day.slots):
        other = try_parse_time(slot.time_range.start)
        if other is not None and other > start:
            return i
    return len(day.slots)


def next_slot_id(itinerary: Itinerary, day: Day) -> str:
    """Unused id in the canonical d{day}-slot-{n} form."""
    existing = {slot.slot_id for d in itinerary.days for slot in d.slots}
    n = len(day.slots) + 1
    while f"d{day.day_number}-slot-{n}" in existing:
        n += 1
    return f"d{day.day_number}-slot-{n}"


def placeholder_option(params: IntentParams, description: str) -> ActivityOption:
    """User-requested activity awaiting place resolution."""
    category = params.category or ""
    name = description.strip()
    name = name[:1].upper() + name[1:]
    return ActivityOption(
        id=f"opt-{uuid.uuid4().hex[:8]}",
        rank=1,
        score=0,
        activity=Activity(
            name=name,
            description=description,
            category=category,
            duration=params.duration or category_duration(category),
            place=Place(name=params.location) if params.location else None,
            source="chat",
        ),
        match_reasons=["Requested in chat"],
    )


def _window_for(slot_type: SlotType, length: int | None, start_time: str | None = None) -> TimeRange:
    """Window starting at the slot type's default start (or an explicit time).

    Raises:
        InvalidParamsError: If the window would run past the end of the day
    """
    default_start, default_end = DEFAULT_SLOT_WINDOWS[slot_type]
    start = try_parse_time(start_time) if start_time else None
    if start is None:
        start = try_parse_time(default_start) or 0
    if length is None:
        length = (try_parse_time(default_end) or 0) - (try_parse_time(default_start) or 0)
    if start + length > LAST_MINUTE_OF_DAY:
        raise InvalidParamsError(
            f"A {length} min activity starting at {format_minutes_to_time(start)} would run past midnight."
        )
    return TimeRange(start=format_minutes_to_time(start), end=format_minutes_to_time(start + length))


def _length(time_range: TimeRange) -> int | None:
    start = try_parse_time(time_range.start)
    end = try_parse_time(time_range.end)
    if start is None or end is None or end <= start:
        return None
    return end - start


class ActionExecutor:
    """Dispatches intents to handlers and guards them with the constraint engine."""

    def __init__(
        self,
        engine: ConstraintEngine | None = None,
        settings: Settings | None = None,
        metrics: PrometheusEngineMetrics | None = None,
        structured_logger: StructuredEngineLogger | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.engine = engine or ConstraintEngine(self.settings)
        self.metrics = metrics or PrometheusEngineMetrics()
        self.structured_logger = structured_logger or StructuredEngineLogger()
        self._handlers: dict[IntentType, Handler] = {
            IntentType.ADD_ACTIVITY: self._add,
            IntentType.REMOVE_ACTIVITY: self._remove,
            IntentType.REPLACE_ACTIVITY: self._replace,
            IntentType.MOVE_ACTIVITY: self._move,
            IntentType.SWAP_ACTIVITIES: self._swap,
            IntentType.PRIORITIZE: self._prioritize,
            IntentType.DEPRIORITIZE: self._deprioritize,
            IntentType.LOCK_SLOT: self._lock,
            IntentType.UNLOCK_SLOT: self._unlock,
            IntentType.SUGGEST_ALTERNATIVES: self._suggest_alternatives,
            IntentType.SUGGEST_FROM_REPLACEMENT_POOL: self._suggest_from_pool,
            IntentType.OPTIMIZE_ROUTE: self._optimize_route,
            IntentType.OPTIMIZE_CLUSTERS: self._optimize_clusters,
            IntentType.BALANCE_PACING: self._balance_pacing,
            IntentType.REORDER_SLOTS: self._reorder,
            IntentType.UNDO: self._undo,
            IntentType.REDO: self._redo,
            IntentType.ASK_QUESTION: self._ask_question,
        }

    @property
    def supported_intents(self) -> frozenset[IntentType]:
        return frozenset(self._handlers)

    def execute(
        self, intent: Intent, itinerary: Itinerary, session: SessionState | None = None
    ) -> ExecutionResult:
        """Apply an intent to an itinerary.

        Args:
            intent: Parsed or system-generated intent
            itinerary: Current itinerary value; never mutated
            session: Session whose history UNDO/REDO navigate and whose flight
                window, if any, bounds the first and last day

        Returns:
            ExecutionResult carrying the new itinerary and undo intent on success,
            or an error code and suggestions on rejection
        """
        started = time.perf_counter()
        try:
            result = self._execute(intent, itinerary, session)
        except Exception as e:
            logger.exception(f"Unexpected error executing {intent.type.value}: {e}")
            result = ExecutionResult(
                success=False,
                message="Something went wrong applying that change; your itinerary is unchanged.",
                error_code=ExecutionErrorCode.INTERNAL_ERROR,
            )

        latency_ms = (time.perf_counter() - started) * 1000
        if result.success:
            outcome = "success"
        elif result.error_code == ExecutionErrorCode.INTERNAL_ERROR:
            outcome = "error"
        else:
            outcome = "rejected"
        self.metrics.record_execution(intent.type.value, outcome, latency_ms)
        self.structured_logger.log_execution(
            session_id=session.session_id if session else None,
            intent=intent.type.value,
            outcome=outcome,
            latency_ms=latency_ms,
            error_code=result.error_code.value if result.error_code else None,
            warnings=len(result.constraint_analysis.warnings),
        )
        return result

    def _execute(
        self, intent: Intent, itinerary: Itinerary, session: SessionState | None
    ) -> ExecutionResult:
        handler = self._handlers.get(intent.type)
        if handler is None:
            return ExecutionResult(
                success=False,
                message=f"{intent.type.value} is not supported.",
                error_code=ExecutionErrorCode.UNSUPPORTED,
            )

        try:
            locked = self.engine.check_proposed_change(itinerary, intent)
            if locked:
                raise SlotLockedError(locked)
            outcome = handler(itinerary.model_copy(deep=True), intent, session)
        except TargetNotFoundError as e:
            return self._not_found(str(e), itinerary)
        except SlotLockedError as e:
            refs = [find_slot_by_id(itinerary, issue.slot) for issue in e.issues if issue.slot]
            return ExecutionResult(
                success=False,
                message=str(e),
                error_code=ExecutionErrorCode.SLOT_LOCKED,
                constraint_analysis=ConstraintAnalysis(
                    feasible=False, violations=e.issues, affected_layers=[e.issues[0].layer]
                ),
                suggested_actions=[unlock_quick_action(ref.slot) for ref in refs if ref],
            )
        except InvalidParamsError as e:
            return ExecutionResult(
                success=False, message=str(e), error_code=ExecutionErrorCode.INVALID_PARAMS
            )

        if isinstance(outcome, ExecutionResult):
            return outcome

        flight = session.flight if session is not None else None
        analysis = self.engine.analyze(outcome.itinerary, flight=flight)
        # Restores and history navigation return to a state that was already accepted once.
        # Only engine-built intents carry the system method; client intents are re-tagged.
        if intent.method != ParseMethod.SYSTEM and intent.type not in _HISTORY_INTENTS:
            introduced = blocking_issues(
                self.engine.check_all(itinerary, flight), analysis.violations
            )
            if introduced:
                return ExecutionResult(
                    success=False,
                    message="That change would create a conflict: "
                    + "; ".join(issue.message for issue in introduced),
                    error_code=ExecutionErrorCode.CONSTRAINT_VIOLATION,
                    constraint_analysis=analysis,
                )

        return ExecutionResult(
            success=True,
            message=outcome.message,
            new_itinerary=outcome.itinerary,
            undo_action=outcome.undo,
            constraint_analysis=analysis,
            minutes_saved=outcome.minutes_saved,
        )

    def _not_found(self, message: str, itinerary: Itinerary) -> ExecutionResult:
        known = [label for label, _day, _slot in known_activity_labels(itinerary, 5)]
        if known:
            message = f"{message} Known activities include: {', '.join(known)}."
        return ExecutionResult(
            success=False, message=message, error_code=ExecutionErrorCode.TARGET_NOT_FOUND
        )

    # Target helpers

    def _resolve(self, itinerary: Itinerary, params: IntentParams, name: str | None = None) -> SlotRef:
        ref = resolve_target(itinerary, params, name)
        if ref is None:
            label = name or params.activity_name or params.slot_id
            if not label:
                raise InvalidParamsError("Which activity do you mean?")
            raise TargetNotFoundError(f"I couldn't find '{label}' in your itinerary.")
        return ref

    def _day(self, itinerary: Itinerary, day_number: int | None) -> Day:
        day = itinerary.get_day(day_number if day_number is not None else 1)
        if day is None:
            raise TargetNotFoundError(f"Day {day_number} doesn't exist in this itinerary.")
        return day

    def _restore_snapshot(self, itinerary: Itinerary, intent: Intent) -> Mutation:
        """Put a captured slot back in place of the slot with the same id."""
        snapshot = intent.params.slot_snapshot
        assert snapshot is not None
        ref = find_slot_by_id(itinerary, intent.params.slot_id or snapshot.slot_id)
        if ref is None:
            raise TargetNotFoundError(f"Slot {snapshot.slot_id} no longer exists.")
        current = ref.slot.model_copy(deep=True)
        itinerary.days[ref.day_index].slots[ref.slot_index] = snapshot.model_copy(deep=True)
        return Mutation(
            itinerary=itinerary,
            message=f"Restored {snapshot.display_name}.",
            undo=system_intent(
                _SNAPSHOT_INVERSE[intent.type], slot_id=current.slot_id, slot_snapshot=current
            ),
        )

    # Mutating handlers

    def _move(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation:
        params = intent.params
        ref = self._resolve(itinerary, params)
        if (
            params.to_day is None
            and params.to_slot is None
            and params.to_time is None
            and params.time_range is None
            and params.position is None
        ):
            raise InvalidParamsError(f"Where should I move {ref.slot.display_name} to?")

        source = itinerary.days[ref.day_index]
        target = self._day(itinerary, params.to_day) if params.to_day is not None else source
        predecessors = {**slot_predecessors(source), **slot_predecessors(target)}
        records = {**commute_records(source), **commute_records(target)}
        slot = source.slots.pop(ref.slot_index)
        undo = system_intent(
            IntentType.MOVE_ACTIVITY,
            slot_id=slot.slot_id,
            to_day=source.day_number,
            position=ref.slot_index,
            to_slot=slot.slot_type,
            time_range=slot.time_range.model_copy(),
            commutes=records,
        )

        if params.time_range is not None:
            # Exact placement used by undo
            slot.time_range = params.time_range.model_copy()
            if params.to_slot is not None:
                slot.slot_type = params.to_slot
            position = params.position if params.position is not None else len(target.slots)
            target.slots.insert(min(max(position, 0), len(target.slots)), slot)
        else:
            length = _length(slot.time_range)
            if params.to_slot is not None:
                slot.slot_type = params.to_slot
                slot.time_range = _window_for(params.to_slot, length, params.to_time)
            elif params.to_time is not None:
                slot.time_range = _window_for(slot.slot_type, length, params.to_time)
            if params.position is not None:
                target.slots.insert(min(max(params.position, 0), len(target.slots)), slot)
            else:
                start = try_parse_time(slot.time_range.start)
                target.slots.insert(insertion_index(target, start), slot)

        for day in (source, target) if target is not source else (source,):
            if params.commutes is not None:
                restore_commutes(day, params.commutes)
            else:
                refresh_commutes(day, predecessors)

        where = f"Day {target.day_number}"
        if params.to_slot is not None:
            where += f" {params.to_slot.value}"
        if slot.time_range.start:
            where += f" ({slot.time_range.start}-{slot.time_range.end})"
        return Mutation(itinerary=itinerary, message=f"Moved {slot.display_name} to {where}.", undo=undo)

    def _swap(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation:
        params = intent.params
        if params.slot_ids and len(params.slot_ids) == 2:
            refs = [find_slot_by_id(itinerary, sid) for sid in params.slot_ids]
            if refs[0] is None or refs[1] is None:
                raise TargetNotFoundError("One of the slots to swap no longer exists.")
            first, second = refs[0], refs[1]
        elif params.activity1_name and params.activity2_name:
            first = self._resolve(itinerary, params, params.activity1_name)
            second = self._resolve(itinerary, params, params.activity2_name)
        else:
            raise InvalidParamsError("Which two activities should I swap?")

        if first.slot.slot_id == second.slot.slot_id:
            raise InvalidParamsError("Those are the same activity.")

        a, b = first.slot, second.slot
        name_a, name_b = a.display_name, b.display_name
        for name in (
            "options",
            "selected_option_id",
            "behavior",
            "rigidity_score",
            "replacement_pool",
            "user_notes",
        ):
            value_a, value_b = getattr(a, name), getattr(b, name)
            setattr(a, name, value_b)
            setattr(b, name, value_a)

        return Mutation(
            itinerary=itinerary,
            message=f"Swapped {name_a} (Day {first.day_number}) with {name_b} (Day {second.day_number}).",
            undo=system_intent(IntentType.SWAP_ACTIVITIES, slot_ids=[a.slot_id, b.slot_id]),
        )

    def _remove(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation:
        ref = self._resolve(itinerary, intent.params)
        day = itinerary.days[ref.day_index]
        slot = ref.slot

        if ref.option_id is not None and len(slot.options) > 1:
            snapshot = slot.model_copy(deep=True)
            removed = next(o for o in slot.options if o.id == ref.option_id)
            slot.options = [o for o in slot.options if o.id != ref.option_id]
            if slot.selected_option_id == ref.option_id:
                slot.selected_option_id = slot.options[0].id
            return Mutation(
                itinerary=itinerary,
                message=f"Removed {removed.activity.name} from Day {day.day_number}; "
                f"{slot.display_name} takes its place.",
                undo=system_intent(
                    IntentType.REPLACE_ACTIVITY, slot_id=slot.slot_id, slot_snapshot=snapshot
                ),
            )

        day.slots.pop(ref.slot_index)
        return Mutation(
            itinerary=itinerary,
            message=f"Removed {slot.display_name} from Day {day.day_number}.",
            undo=system_intent(
                IntentType.ADD_ACTIVITY,
                slot_snapshot=slot,
                day_number=day.day_number,
                position=ref.slot_index,
            ),
        )

    def _replace(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation:
        params = intent.params
        if params.slot_snapshot is not None:
            return self._restore_snapshot(itinerary, intent)

        ref = self._resolve(itinerary, params)
        description = params.replacement_description or params.activity_description
        if not description:
            raise InvalidParamsError(f"What should replace {ref.slot.display_name}?")

        slot = ref.slot
        snapshot = slot.model_copy(deep=True)
        old_name = slot.display_name
        option = placeholder_option(params, description)
        slot.options = [option]
        slot.selected_option_id = option.id
        slot.rigidity_score = None
        slot.behavior = infer_behavior(slot)
        return Mutation(
            itinerary=itinerary,
            message=f"Replaced {old_name} with {option.activity.name} on Day {ref.day_number}.",
            undo=system_intent(
                IntentType.REPLACE_ACTIVITY, slot_id=slot.slot_id, slot_snapshot=snapshot
            ),
        )

    def _add(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation:
        params = intent.params
        day = self._day(itinerary, params.day_number)

        if params.slot_snapshot is not None:
            restored = params.slot_snapshot.model_copy(deep=True)
            if find_slot_by_id(itinerary, restored.slot_id) is not None:
                raise InvalidParamsError(f"Slot {restored.slot_id} already exists.")
            position = params.position if params.position is not None else len(day.slots)
            day.slots.insert(min(max(position, 0), len(day.slots)), restored)
            return Mutation(
                itinerary=itinerary,
                message=f"Restored {restored.display_name} on Day {day.day_number}.",
                undo=system_intent(IntentType.REMOVE_ACTIVITY, slot_id=restored.slot_id),
            )

        description = params.activity_description or params.activity_name
        if not description:
            raise InvalidParamsError("What would you like to add?")
        option = placeholder_option(params, description)

        slot_type = params.slot_type
        if slot_type is None:
            used = {slot.slot_type for slot in day.slots}
            slot_type = next((t for t in _FREE_SLOT_PREFERENCE if t not in used), SlotType.AFTERNOON)

        if slot_type.is_meal:
            existing = next((s for s in day.slots if s.slot_type == slot_type), None)
            if existing is not None:
                snapshot = existing.model_copy(deep=True)
                for other in existing.options:
                    other.rank += 1
                existing.options.insert(0, option)
                existing.selected_option_id = option.id
                return Mutation(
                    itinerary=itinerary,
                    message=f"Added {option.activity.name} as the {slot_type.value} pick "
                    f"on Day {day.day_number}.",
                    undo=system_intent(
                        IntentType.REPLACE_ACTIVITY,
                        slot_id=existing.slot_id,
                        slot_snapshot=snapshot,
                    ),
                )

        slot = Slot(
            slot_id=next_slot_id(itinerary, day),
            slot_type=slot_type,
            time_range=_window_for(slot_type, option.activity.duration, params.to_time),
            options=[option],
            selected_option_id=option.id,
        )
        slot.behavior = infer_behavior(slot)
        day.slots.insert(insertion_index(day, try_parse_time(slot.time_range.start)), slot)
        return Mutation(
            itinerary=itinerary,
            message=f"Added {option.activity.name} to Day {day.day_number} {slot_type.value} "
            f"({slot.time_range.start}-{slot.time_range.end}).",
            undo=system_intent(IntentType.REMOVE_ACTIVITY, slot_id=slot.slot_id),
        )

    def _set_lock(
        self, itinerary: Itinerary, intent: Intent, *, locked: bool, anchor: bool
    ) -> Mutation | ExecutionResult:
        if intent.params.slot_snapshot is not None:
            return self._restore_snapshot(itinerary, intent)

        ref = self._resolve(itinerary, intent.params)
        slot = ref.slot
        snapshot = slot.model_copy(deep=True)

        slot.is_locked = locked
        if anchor and locked:
            slot.behavior = SlotBehavior.ANCHOR
            slot.rigidity_score = 1.0
        elif anchor and slot.behavior == SlotBehavior.ANCHOR:
            slot.behavior = SlotBehavior.MEAL if slot.slot_type.is_meal else SlotBehavior.FLEX
            slot.rigidity_score = None

        if slot == snapshot:
            state = "locked" if locked else "unlocked"
            return ExecutionResult(success=True, message=f"{slot.display_name} is already {state}.")

        verb = "Locked" if locked else "Unlocked"
        return Mutation(
            itinerary=itinerary,
            message=f"{verb} {slot.display_name} on Day {ref.day_number}.",
            undo=system_intent(
                _SNAPSHOT_INVERSE[intent.type], slot_id=slot.slot_id, slot_snapshot=snapshot
            ),
        )

    def _prioritize(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation | ExecutionResult:
        return self._set_lock(itinerary, intent, locked=True, anchor=True)

    def _deprioritize(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation | ExecutionResult:
        return self._set_lock(itinerary, intent, locked=False, anchor=True)

    def _lock(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation | ExecutionResult:
        return self._set_lock(itinerary, intent, locked=True, anchor=False)

    def _unlock(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation | ExecutionResult:
        return self._set_lock(itinerary, intent, locked=False, anchor=False)

    def _optimize_route(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation | ExecutionResult:
        day = self._day(itinerary, intent.params.day_number)
        original = [slot.slot_id for slot in day.slots]
        plan = plan_route(day, self.settings)
        if plan.order == original:
            return ExecutionResult(
                success=True,
                message=f"Day {day.day_number} is already in the best order I can find.",
                minutes_saved=0,
            )
        records = commute_records(day)
        apply_order(day, plan.order)
        return Mutation(
            itinerary=itinerary,
            message=f"Reordered Day {day.day_number} to save about {plan.minutes_saved} minutes of travel.",
            undo=system_intent(
                IntentType.REORDER_SLOTS,
                day_number=day.day_number,
                slot_order=original,
                commutes=records,
            ),
            minutes_saved=plan.minutes_saved,
        )

    def _optimize_clusters(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation | ExecutionResult:
        day = self._day(itinerary, intent.params.day_number)
        original = [slot.slot_id for slot in day.slots]
        order = plan_clusters(day, self.settings)
        if order == original:
            return ExecutionResult(
                success=True, message=f"Nearby activities on Day {day.day_number} are already grouped."
            )
        records = commute_records(day)
        apply_order(day, order)
        return Mutation(
            itinerary=itinerary,
            message=f"Grouped nearby activities on Day {day.day_number}.",
            undo=system_intent(
                IntentType.REORDER_SLOTS,
                day_number=day.day_number,
                slot_order=original,
                commutes=records,
            ),
        )

    def _balance_pacing(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation | ExecutionResult:
        day = self._day(itinerary, intent.params.day_number)
        new_ranges = plan_balance(day, self.settings)
        if new_ranges is None:
            return ExecutionResult(
                success=True,
                message=f"Day {day.day_number} is within a comfortable pace; nothing to change.",
            )
        order = [slot.slot_id for slot in day.slots]
        original_ranges = [slot.time_range.model_copy() for slot in day.slots]
        apply_order(day, order, new_ranges)
        return Mutation(
            itinerary=itinerary,
            message=f"Shortened flexible activities on Day {day.day_number} to lighten the pace.",
            undo=system_intent(
                IntentType.REORDER_SLOTS,
                day_number=day.day_number,
                slot_order=order,
                time_ranges=original_ranges,
            ),
        )

    def _reorder(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation:
        params = intent.params
        if params.day_number is None or not params.slot_order:
            raise InvalidParamsError("Reordering needs a day and a slot order.")
        day = self._day(itinerary, params.day_number)
        current = [slot.slot_id for slot in day.slots]
        current_ranges = [slot.time_range.model_copy() for slot in day.slots]
        records = commute_records(day)
        try:
            apply_order(day, params.slot_order, params.time_ranges, params.commutes)
        except ValueError as e:
            raise InvalidParamsError(str(e)) from e
        return Mutation(
            itinerary=itinerary,
            message=f"Restored the order of Day {day.day_number}.",
            undo=system_intent(
                IntentType.REORDER_SLOTS,
                day_number=day.day_number,
                slot_order=current,
                time_ranges=current_ranges if params.time_ranges is not None else None,
                commutes=records,
            ),
        )

    def _undo(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation | ExecutionResult:
        if session is None or not session.undo_stack:
            return ExecutionResult(
                success=False, message="Nothing to undo.", error_code=ExecutionErrorCode.NOTHING_TO_UNDO
            )
        entry = session.undo_stack.pop()
        session.redo_stack.append(entry)
        return Mutation(
            itinerary=entry.before.model_copy(deep=True),
            message=f"Undid {entry.intent.type.value.replace('_', ' ').lower()}.",
            undo=system_intent(IntentType.REDO),
        )

    def _redo(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> Mutation | ExecutionResult:
        if session is None or not session.redo_stack:
            return ExecutionResult(
                success=False, message="Nothing to redo.", error_code=ExecutionErrorCode.NOTHING_TO_REDO
            )
        entry = session.redo_stack.pop()
        session.undo_stack.append(entry)
        return Mutation(
            itinerary=entry.after.model_copy(deep=True),
            message=f"Redid {entry.intent.type.value.replace('_', ' ').lower()}.",
            undo=system_intent(IntentType.UNDO),
        )

    # Non-mutating handlers

    def _suggest_alternatives(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> ExecutionResult:
        params = intent.params
        ref: SlotRef | None
        if params.slot_id or params.activity_name:
            ref = self._resolve(itinerary, params)
        else:
            day = self._day(itinerary, params.day_number)
            slot = next(
                (s for s in day.slots if params.slot_type is None or s.slot_type == params.slot_type),
                None,
            )
            if slot is None:
                raise TargetNotFoundError(f"No matching slot on Day {day.day_number}.")
            ref = find_slot_by_id(itinerary, slot.slot_id)
        assert ref is not None

        slot = ref.slot
        selected = slot.selected_option
        suggestions = [o for o in slot.options if selected is None or o.id != selected.id]
        for pooled in slot.replacement_pool:
            suggestions.append(
                ActivityOption(
                    id=pooled.id,
                    rank=max(1, pooled.priority),
                    activity=pooled.activity,
                    match_reasons=[pooled.reason] if pooled.reason else [],
                )
            )

        if not suggestions:
            return ExecutionResult(
                success=True, message=f"I don't have stored alternatives for {slot.display_name}."
            )
        names = ", ".join(s.activity.name for s in suggestions[:5])
        return ExecutionResult(
            success=True,
            message=f"Alternatives for {slot.display_name}: {names}.",
            suggestions=suggestions,
        )

    def _suggest_from_pool(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> ExecutionResult:
        params = intent.params
        days = [self._day(itinerary, params.day_number)] if params.day_number is not None else itinerary.days

        for day in days:
            for slot in day.slots:
                if slot.options or (params.slot_type is not None and slot.slot_type != params.slot_type):
                    continue
                pool = list(slot.replacement_pool)
                if not pool:
                    # Borrow fallbacks kept on same-type slots of that day
                    pool = [
                        p
                        for other in day.slots
                        if other.slot_type == slot.slot_type
                        for p in other.replacement_pool
                    ]
                suggestions = [
                    ActivityOption(
                        id=p.id,
                        rank=max(1, p.priority),
                        activity=p.activity,
                        match_reasons=[p.reason] if p.reason else [],
                    )
                    for p in sorted(pool, key=lambda p: p.priority)
                ]
                if not suggestions:
                    return ExecutionResult(
                        success=True,
                        message=f"The empty {slot.slot_type.value} slot on Day {day.day_number} "
                        "has no stored fallbacks.",
                    )
                names = ", ".join(s.activity.name for s in suggestions[:5])
                return ExecutionResult(
                    success=True,
                    message=f"Options for the empty {slot.slot_type.value} slot on Day "
                    f"{day.day_number}: {names}.",
                    suggestions=suggestions,
                )

        what = f"{params.slot_type.value} " if params.slot_type else ""
        return ExecutionResult(success=True, message=f"There is no empty {what}slot to fill.")

    def _ask_question(
        self, itinerary: Itinerary, intent: Intent, session: SessionState | None
    ) -> ExecutionResult:
        return ExecutionResult(success=True, message=intent.params.question or "")
