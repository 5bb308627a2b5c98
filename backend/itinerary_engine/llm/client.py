"""LLM client for the intent-parsing fallback tier and free-form questions.

Security: Reads API key from environment only, never hardcoded.
Provides deterministic fallback when no key present for testing.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from openai import AsyncOpenAI
from pydantic import ValidationError

from backend.itinerary_engine.config import Settings, get_settings
from backend.itinerary_engine.models.intent import Intent, IntentParams, IntentType, ParseMethod

logger = logging.getLogger(__name__)

# Conversation turns in OpenAI chat format: {"role": "user" | "assistant", "content": ...}
ChatTurn = dict[str, str]

# Types the model may emit; quick actions and internal restores are excluded
LLM_INTENT_TYPES: frozenset[IntentType] = frozenset(IntentType) - {
    IntentType.LOCK_SLOT,
    IntentType.UNLOCK_SLOT,
    IntentType.REORDER_SLOTS,
}


class LLMTimeoutError(Exception):
    """LLM call exceeded its timeout."""

    pass


class LLMResponseError(Exception):
    """LLM returned an empty, malformed or out-of-vocabulary response."""

    pass


class LLMUnavailableError(Exception):
    """LLM transport failed (network, auth, rate limit)."""

    pass


class LLMCancelledError(Exception):
    """LLM call was superseded by a newer message."""

    pass


@dataclass
class CancelToken:
    """Token for cooperative cancellation signaling."""

    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    def throw_if_cancelled(self) -> None:
        """Raise LLMCancelledError if cancelled."""
        if self.cancelled:
            raise LLMCancelledError("request superseded")


INTENT_SYSTEM_PROMPT = """You turn a traveller's chat message into one structured itinerary action.

Allowed types:
- ADD_ACTIVITY: add something new { dayNumber?, slotType?, activityDescription, category?, location?, duration? }
- REMOVE_ACTIVITY: drop an activity { activityName?, slotId?, dayNumber? }
- REPLACE_ACTIVITY: swap an activity for a new one { activityName, replacementDescription, dayNumber? }
- MOVE_ACTIVITY: move to another day or time { activityName, toDay?, toSlot? }
- SWAP_ACTIVITIES: exchange two activities { activity1Name, activity2Name }
- PRIORITIZE: lock or protect an activity { activityName }
- DEPRIORITIZE: unlock or make flexible { activityName }
- SUGGEST_ALTERNATIVES: alternatives for a slot { activityName?, slotId?, preferences? }
- SUGGEST_FROM_REPLACEMENT_POOL: fill an empty slot { slotType?, dayNumber?, preferences? }
- OPTIMIZE_ROUTE: less travel on a day { dayNumber? }
- OPTIMIZE_CLUSTERS: group nearby activities { dayNumber? }
- BALANCE_PACING: lighten an overloaded day { dayNumber? }
- UNDO / REDO: history navigation {}
- ASK_QUESTION: anything else { question }

Slot types: morning, breakfast, lunch, afternoon, dinner, evening.

Reply with a single JSON object and nothing else:
{"type": "<TYPE>", "params": {...}, "confidence": 0.0-1.0, "explanation": "<one sentence>"}

Rules:
1. Use only the types listed above.
2. Use activity names exactly as they appear in the itinerary summary.
3. "Fill" an empty slot means SUGGEST_FROM_REPLACEMENT_POOL.
4. When unsure, answer ASK_QUESTION with low confidence."""

QUESTION_SYSTEM_PROMPT = """You are a concise travel assistant. Answer the traveller's question about
their itinerary using only the summary provided. If the summary does not contain the answer,
say so briefly. Do not invent bookings, times or places."""


def parse_intent_response(raw: str) -> Intent:
    """Validate an LLM reply into an Intent.

    Args:
        raw: Raw completion text, optionally wrapped in a markdown code fence

    Returns:
        Intent tagged with method=llm

    Raises:
        LLMResponseError: If the reply is not a JSON object with an allowed type
    """
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
        text = text.strip()
    if not text:
        raise LLMResponseError("empty response")

    try:
        payload: Any = json.loads(text)
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"response is not JSON: {e}") from e

    if not isinstance(payload, dict):
        raise LLMResponseError("response is not a JSON object")

    try:
        intent_type = IntentType(payload.get("type"))
    except ValueError as e:
        raise LLMResponseError(f"unknown intent type: {payload.get('type')!r}") from e
    if intent_type not in LLM_INTENT_TYPES:
        raise LLMResponseError(f"intent type not allowed from LLM: {intent_type.value}")

    params_raw = payload.get("params") or {}
    if not isinstance(params_raw, dict):
        raise LLMResponseError("params is not an object")
    # Restore payloads are never accepted from the model
    for key in (
        "slotSnapshot", "slot_snapshot", "slotOrder", "slot_order",
        "timeRanges", "time_ranges", "commutes",
    ):
        params_raw.pop(key, None)

    try:
        params = IntentParams.model_validate(params_raw)
    except ValidationError as e:
        raise LLMResponseError(f"invalid params: {e.error_count()} error(s)") from e

    try:
        confidence = float(payload.get("confidence", 0.5))
    except (TypeError, ValueError):
        confidence = 0.5
    confidence = min(1.0, max(0.0, confidence))

    explanation = payload.get("explanation")
    return Intent(
        type=intent_type,
        params=params,
        confidence=confidence,
        explanation=explanation if isinstance(explanation, str) else "",
        method=ParseMethod.LLM,
    )


class LLMClient(Protocol):
    """Protocol for LLM client implementations."""

    async def complete_intent(
        self,
        *,
        message: str,
        itinerary_summary: str,
        prior_turns: list[ChatTurn],
        cancel_token: CancelToken | None = None,
    ) -> Intent:
        """Parse a message into an intent.

        Args:
            message: Raw user message
            itinerary_summary: Condensed one-line-per-slot itinerary text
            prior_turns: Recent conversation turns, oldest first
            cancel_token: Cooperative cancellation signal

        Returns:
            Intent produced by the model

        Raises:
            LLMTimeoutError, LLMResponseError, LLMUnavailableError, LLMCancelledError
        """
        ...

    async def answer_question(
        self,
        *,
        question: str,
        itinerary_summary: str,
        prior_turns: list[ChatTurn],
    ) -> str:
        """Answer a free-form question; never raises."""
        ...


class DeterministicStubClient:
    """Deterministic stub client for testing (no API key required)."""

    async def complete_intent(
        self,
        *,
        message: str,
        itinerary_summary: str,
        prior_turns: list[ChatTurn],
        cancel_token: CancelToken | None = None,
    ) -> Intent:
        """Return a low-confidence question intent."""
        if cancel_token is not None:
            cancel_token.throw_if_cancelled()
        return Intent(
            type=IntentType.ASK_QUESTION,
            params=IntentParams(question=message),
            confidence=0.3,
            explanation="No language model configured; treating the message as a question.",
            method=ParseMethod.FALLBACK,
        )

    async def answer_question(
        self,
        *,
        question: str,
        itinerary_summary: str,
        prior_turns: list[ChatTurn],
    ) -> str:
        """Generate deterministic stub answer."""
        day_count = sum(1 for line in itinerary_summary.splitlines() if line.startswith("Day "))
        return (
            f"I can't answer free-form questions right now. Your itinerary has {day_count} "
            "day(s); try a command such as \"move <activity> to day 2\" or "
            "\"optimize the route for day 1\"."
        )


class OpenAIClient:
    """OpenAI-backed LLM client."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout_ms: int = 8000):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from environment)
            model: Model name to use (default: gpt-4o-mini for cost efficiency)
            timeout_ms: Per-call timeout
        """
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.timeout_s = timeout_ms / 1000

    async def complete_intent(
        self,
        *,
        message: str,
        itinerary_summary: str,
        prior_turns: list[ChatTurn],
        cancel_token: CancelToken | None = None,
    ) -> Intent:
        """Parse a message using the OpenAI chat API in JSON mode."""
        if cancel_token is not None:
            cancel_token.throw_if_cancelled()

        messages: list[dict[str, str]] = [{"role": "system", "content": INTENT_SYSTEM_PROMPT}]
        messages.extend(prior_turns)
        messages.append({"role": "user", "content": self._build_context(message, itinerary_summary)})

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,  # type: ignore[arg-type]
                    temperature=0,
                    max_tokens=400,
                    response_format={"type": "json_object"},
                ),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise LLMTimeoutError(f"intent parse exceeded {self.timeout_s:.1f}s") from e
        except Exception as e:
            raise LLMUnavailableError(f"{type(e).__name__}: {e}") from e

        # A newer message may have arrived while we were waiting
        if cancel_token is not None:
            cancel_token.throw_if_cancelled()

        content = response.choices[0].message.content or ""
        return parse_intent_response(content)

    async def answer_question(
        self,
        *,
        question: str,
        itinerary_summary: str,
        prior_turns: list[ChatTurn],
    ) -> str:
        """Answer using OpenAI; falls back to the stub on any failure."""
        messages: list[dict[str, str]] = [{"role": "system", "content": QUESTION_SYSTEM_PROMPT}]
        messages.extend(prior_turns)
        messages.append({"role": "user", "content": self._build_context(question, itinerary_summary)})

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,  # type: ignore[arg-type]
                    temperature=0.3,
                    max_tokens=600,
                ),
                timeout=self.timeout_s,
            )
            answer = (response.choices[0].message.content or "").strip()
            if not answer:
                logger.warning("OpenAI returned empty answer, using deterministic stub fallback")
                raise LLMResponseError("empty answer")
            return answer
        except Exception as e:
            logger.error(f"OpenAI question answering failed: {e}")
            logger.warning("Falling back to deterministic stub client for question answering")
            stub = DeterministicStubClient()
            return await stub.answer_question(
                question=question,
                itinerary_summary=itinerary_summary,
                prior_turns=prior_turns,
            )

    def _build_context(self, message: str, itinerary_summary: str) -> str:
        """Build the user turn from the itinerary summary and the message."""
        lines = ["## Current itinerary", itinerary_summary or "(empty)", "", "## Message", message]
        return "\n".join(lines)


async def get_llm_client(settings: Settings | None = None) -> LLMClient:
    """Factory function to get appropriate LLM client based on config.

    Returns:
        OpenAIClient if API key is configured, DeterministicStubClient otherwise
    """
    settings = settings or get_settings()
    api_key = settings.openai_api_key

    if settings.llm_enabled and api_key and api_key.get_secret_value():
        logger.info("Using OpenAI client for intent fallback")
        return OpenAIClient(
            api_key=api_key.get_secret_value(),
            model=settings.openai_model,
            timeout_ms=settings.llm_timeout_ms,
        )
    else:
        logger.warning("No OpenAI API key configured, using deterministic stub client")
        return DeterministicStubClient()
