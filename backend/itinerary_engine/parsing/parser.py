"""Two-tier intent parser: rule table first, constrained LLM call as fallback."""

import logging
import time
from dataclasses import dataclass

from backend.itinerary_engine.config import Settings, get_settings
from backend.itinerary_engine.constraints.checks import scheduled_minutes
from backend.itinerary_engine.constraints.lookup import find_slot_by_id, known_activity_labels
from backend.itinerary_engine.llm.client import (
    CancelToken,
    ChatTurn,
    LLMCancelledError,
    LLMClient,
    LLMResponseError,
    LLMTimeoutError,
    LLMUnavailableError,
)
from backend.itinerary_engine.models.intent import (
    TARGETED_INTENTS,
    ClarificationOption,
    ClarificationRequest,
    Intent,
    IntentParams,
    IntentType,
    ParseMethod,
    QuickAction,
)
from backend.itinerary_engine.models.itinerary import Itinerary
from backend.itinerary_engine.parsing.rules import parse_with_rules
from backend.itinerary_engine.utils.logging import StructuredEngineLogger
from backend.itinerary_engine.utils.metrics import PrometheusEngineMetrics

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.3
MAX_CLARIFICATION_OPTIONS = 10
MAX_QUICK_ACTIONS = 4

_DAY_SCOPED_INTENTS = frozenset(
    {IntentType.OPTIMIZE_ROUTE, IntentType.OPTIMIZE_CLUSTERS, IntentType.BALANCE_PACING}
)


class ParseCancelledError(Exception):
    """Parse was superseded by a newer message in the same session."""

    pass


@dataclass
class ParseContext:
    """Session-derived hints used to fill in a missing target."""

    session_id: str | None = None
    selected_slot_id: str | None = None
    last_activity_name: str | None = None


def summarize_itinerary(itinerary: Itinerary | None) -> str:
    """Condensed text view sent to the LLM: one header per day, one line per slot."""
    if itinerary is None:
        return ""
    lines: list[str] = []
    for day in itinerary.days:
        header = f"Day {day.day_number}"
        if day.city:
            header += f" ({day.city})"
        lines.append(f"{header}:")
        for slot in day.slots:
            marker = " [locked]" if slot.is_locked else ""
            lines.append(f"  - {slot.slot_type.value}: {slot.display_name}{marker}")
    return "\n".join(lines)


def is_complete(intent: Intent) -> bool:
    """Whether an intent is runnable as-is even without an extracted activity name."""
    params = intent.params
    if intent.type in (IntentType.UNDO, IntentType.REDO):
        return True
    if intent.type in _DAY_SCOPED_INTENTS:
        return params.day_number is not None
    if intent.type == IntentType.SUGGEST_FROM_REPLACEMENT_POOL:
        return params.slot_type is not None
    if intent.type == IntentType.ADD_ACTIVITY:
        return bool(params.activity_description)
    return False


def has_target(intent: Intent) -> bool:
    params = intent.params
    if intent.type == IntentType.SWAP_ACTIVITIES:
        if params.slot_ids and len(params.slot_ids) == 2:
            return True
        return bool(params.activity1_name and params.activity2_name)
    return bool(params.slot_id or params.activity_name)


def _fill_target(intent: Intent, context: ParseContext | None) -> Intent:
    """Complete a targeted intent from the UI selection or the last-mentioned activity."""
    if context is None or has_target(intent):
        return intent
    filled = intent.model_copy(deep=True)
    params = filled.params
    if filled.type == IntentType.SWAP_ACTIVITIES:
        # One named side plus the last-mentioned activity makes a pair
        named = params.activity1_name or params.activity2_name or params.activity_name
        if named and context.last_activity_name and named != context.last_activity_name:
            params.activity1_name, params.activity2_name = context.last_activity_name, named
        return filled
    if context.selected_slot_id:
        params.slot_id = context.selected_slot_id
    elif context.last_activity_name:
        params.activity_name = context.last_activity_name
    return filled


def build_clarification(intent: Intent, itinerary: Itinerary | None) -> ClarificationRequest:
    """Ask which activity a targeted intent refers to, offering known activities."""
    verb = intent.type.value.split("_")[0].lower()
    options: list[ClarificationOption] = []
    named: str | None = None

    if intent.type == IntentType.SWAP_ACTIVITIES:
        named = intent.params.activity1_name or intent.params.activity_name
        question = (
            f"Which activity should I swap with {named}?"
            if named
            else "Which two activities would you like to swap?"
        )
    else:
        question = f"Which activity would you like to {verb}?"

    if itinerary is not None:
        for label, _day, slot in known_activity_labels(itinerary, MAX_CLARIFICATION_OPTIONS):
            action = intent.model_copy(deep=True)
            name = slot.display_name
            if intent.type == IntentType.SWAP_ACTIVITIES:
                if named:
                    action.params.activity1_name = named
                    action.params.activity2_name = name
                else:
                    action.params.activity1_name = name
            else:
                action.params.slot_id = slot.slot_id
                action.params.activity_name = name
            action.confidence = 1.0
            action.method = ParseMethod.QUICK_ACTION
            options.append(ClarificationOption(label=label, value=slot.slot_id, action=action))

    return ClarificationRequest(question=question, options=options, partial_intent=intent)


def generate_quick_actions(
    itinerary: Itinerary | None,
    day_number: int | None = None,
    selected_slot_id: str | None = None,
    settings: Settings | None = None,
) -> list[QuickAction]:
    """Contextual shortcuts for the UI, at most four.

    Args:
        itinerary: Current itinerary; no actions without one
        day_number: Day the user is looking at (defaults to the selected slot's day, else 1)
        selected_slot_id: Slot highlighted in the UI, if any
        settings: Settings override (pacing threshold)

    Returns:
        Quick actions in display order, the first one marked primary
    """
    if itinerary is None or not itinerary.days:
        return []
    settings = settings or get_settings()

    selected = find_slot_by_id(itinerary, selected_slot_id) if selected_slot_id else None
    if day_number is None:
        day_number = selected.day_number if selected else itinerary.days[0].day_number
    day = itinerary.get_day(day_number)

    actions: list[QuickAction] = []
    if day is not None and len(day.slots) > 2:
        actions.append(
            QuickAction(
                id=f"optimize-route-day-{day_number}",
                label=f"Optimize Day {day_number} route",
                description="Reorder flexible activities to cut travel time",
                action=Intent(
                    type=IntentType.OPTIMIZE_ROUTE,
                    params=IntentParams(day_number=day_number),
                    method=ParseMethod.QUICK_ACTION,
                ),
            )
        )

    if selected is not None:
        slot = selected.slot
        actions.append(
            QuickAction(
                id=f"alternatives-{slot.slot_id}",
                label=f"Alternatives for {slot.display_name}",
                action=Intent(
                    type=IntentType.SUGGEST_ALTERNATIVES,
                    params=IntentParams(slot_id=slot.slot_id),
                    method=ParseMethod.QUICK_ACTION,
                ),
            )
        )
        lock_type = IntentType.UNLOCK_SLOT if slot.is_locked else IntentType.LOCK_SLOT
        actions.append(
            QuickAction(
                id=f"{'unlock' if slot.is_locked else 'lock'}-{slot.slot_id}",
                label=f"{'Unlock' if slot.is_locked else 'Lock'} {slot.display_name}",
                action=Intent(
                    type=lock_type,
                    params=IntentParams(slot_id=slot.slot_id),
                    method=ParseMethod.QUICK_ACTION,
                ),
            )
        )

    if day is not None and scheduled_minutes(day) > settings.max_daily_activity_min:
        actions.append(
            QuickAction(
                id=f"balance-day-{day_number}",
                label=f"Lighten Day {day_number}",
                description="Shorten flexible activities on an overloaded day",
                action=Intent(
                    type=IntentType.BALANCE_PACING,
                    params=IntentParams(day_number=day_number),
                    method=ParseMethod.QUICK_ACTION,
                ),
            )
        )

    actions = actions[:MAX_QUICK_ACTIONS]
    if actions:
        actions[0].is_primary = True
    return actions


class IntentParser:
    """Rule-first intent parser with an LLM fallback tier."""

    def __init__(
        self,
        llm_client: LLMClient | None = None,
        settings: Settings | None = None,
        metrics: PrometheusEngineMetrics | None = None,
        structured_logger: StructuredEngineLogger | None = None,
    ) -> None:
        self.llm_client = llm_client
        self.settings = settings or get_settings()
        self.metrics = metrics or PrometheusEngineMetrics()
        self.structured_logger = structured_logger or StructuredEngineLogger()

    async def parse(
        self,
        message: str,
        itinerary: Itinerary | None = None,
        prior_turns: list[ChatTurn] | None = None,
        *,
        context: ParseContext | None = None,
        cancel_token: CancelToken | None = None,
    ) -> Intent | ClarificationRequest:
        """Parse a chat message into an Intent, or ask which activity was meant.

        Args:
            message: Raw user message
            itinerary: Current itinerary, used for the LLM summary and clarification options
            prior_turns: Recent conversation turns, oldest first
            context: Selected slot and last-mentioned activity for this session
            cancel_token: Cooperative cancellation signal from the chat service

        Returns:
            Intent, or ClarificationRequest when a targeted action has no target

        Raises:
            ParseCancelledError: If the token was cancelled while parsing
        """
        started = time.perf_counter()
        rule_intent = parse_with_rules(message)

        if rule_intent is not None and (
            rule_intent.confidence >= self.settings.rule_confidence_threshold
            or is_complete(rule_intent)
        ):
            intent = rule_intent
        else:
            intent = await self._llm_tier(message, itinerary, prior_turns or [], rule_intent, cancel_token)

        if intent.type == IntentType.ASK_QUESTION and not intent.params.question:
            intent.params.question = message.strip()

        result: Intent | ClarificationRequest = intent
        if intent.type in TARGETED_INTENTS:
            intent = _fill_target(intent, context)
            result = intent if has_target(intent) else build_clarification(intent, itinerary)

        self.metrics.inc_parse(intent.method.value, intent.type.value)
        self.structured_logger.log_parse(
            session_id=context.session_id if context else None,
            intent=intent.type.value,
            method=intent.method.value,
            confidence=intent.confidence,
            latency_ms=(time.perf_counter() - started) * 1000,
            clarification=isinstance(result, ClarificationRequest),
        )
        return result

    async def _llm_tier(
        self,
        message: str,
        itinerary: Itinerary | None,
        prior_turns: list[ChatTurn],
        rule_intent: Intent | None,
        cancel_token: CancelToken | None,
    ) -> Intent:
        """Ask the LLM; degrade to the rule result or a low-confidence question on failure."""
        if cancel_token is not None and cancel_token.cancelled:
            raise ParseCancelledError("parse superseded before LLM call")

        if not self.settings.llm_enabled or self.llm_client is None:
            return rule_intent or self._fallback(message)

        turns = prior_turns[-self.settings.llm_max_prior_turns :] if prior_turns else []
        started = time.perf_counter()
        try:
            llm_intent = await self.llm_client.complete_intent(
                message=message,
                itinerary_summary=summarize_itinerary(itinerary),
                prior_turns=turns,
                cancel_token=cancel_token,
            )
        except LLMCancelledError as e:
            self.metrics.record_llm_call("cancelled", (time.perf_counter() - started) * 1000)
            raise ParseCancelledError(str(e)) from e
        except LLMTimeoutError as e:
            self.metrics.record_llm_call("timeout", (time.perf_counter() - started) * 1000)
            logger.warning(f"LLM intent parse timed out: {e}")
            return rule_intent or self._fallback(message)
        except LLMResponseError as e:
            self.metrics.record_llm_call("invalid", (time.perf_counter() - started) * 1000)
            logger.warning(f"LLM returned an unusable intent: {e}")
            return rule_intent or self._fallback(message)
        except LLMUnavailableError as e:
            self.metrics.record_llm_call("error", (time.perf_counter() - started) * 1000)
            logger.warning(f"LLM unavailable for intent parse: {e}")
            return rule_intent or self._fallback(message)

        self.metrics.record_llm_call("success", (time.perf_counter() - started) * 1000)

        if cancel_token is not None and cancel_token.cancelled:
            raise ParseCancelledError("parse superseded during LLM call")

        if rule_intent is not None and rule_intent.confidence >= llm_intent.confidence:
            return rule_intent
        return llm_intent

    def _fallback(self, message: str) -> Intent:
        return Intent(
            type=IntentType.ASK_QUESTION,
            params=IntentParams(question=message.strip()),
            confidence=FALLBACK_CONFIDENCE,
            explanation="Could not determine an action; treating the message as a question.",
            method=ParseMethod.FALLBACK,
        )
