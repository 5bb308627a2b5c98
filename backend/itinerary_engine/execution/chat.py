"""Chat service: parse a message, run it against the session itinerary, keep history."""

import logging

from backend.itinerary_engine.config import Settings, get_settings
from backend.itinerary_engine.execution.executor import ActionExecutor
from backend.itinerary_engine.execution.session import SessionState, SessionStore
from backend.itinerary_engine.llm.client import ChatTurn, DeterministicStubClient, LLMClient
from backend.itinerary_engine.models.execution import ChatResponse, ExecutionResult
from backend.itinerary_engine.models.intent import (
    ClarificationRequest,
    Intent,
    IntentType,
    ParseMethod,
)
from backend.itinerary_engine.models.itinerary import Itinerary
from backend.itinerary_engine.models.remediation import FlightConstraints
from backend.itinerary_engine.parsing.parser import (
    IntentParser,
    ParseCancelledError,
    ParseContext,
    generate_quick_actions,
    summarize_itinerary,
)

logger = logging.getLogger(__name__)

# Intents that default to the session's current day when none was given
_DAY_DEFAULTED_INTENTS = frozenset(
    {
        IntentType.ADD_ACTIVITY,
        IntentType.OPTIMIZE_ROUTE,
        IntentType.OPTIMIZE_CLUSTERS,
        IntentType.BALANCE_PACING,
    }
)


class ItineraryChatService:
    """Drives one chat turn end to end for a session."""

    def __init__(
        self,
        store: SessionStore,
        parser: IntentParser | None = None,
        executor: ActionExecutor | None = None,
        llm_client: LLMClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.llm_client: LLMClient = llm_client or DeterministicStubClient()
        self.parser = parser or IntentParser(self.llm_client, self.settings)
        self.executor = executor or ActionExecutor(settings=self.settings)

    async def handle_message(
        self,
        session_id: str | None,
        message: str,
        itinerary: Itinerary | None = None,
        selected_slot_id: str | None = None,
        flight: FlightConstraints | None = None,
    ) -> ChatResponse:
        """Process one user message.

        Args:
            session_id: Session key; a new session is created when unknown or None
            message: Raw user message
            itinerary: Itinerary to load into the session (replaces a different one)
            selected_slot_id: Slot highlighted in the UI, used as an implicit target
            flight: Arrival/departure times; kept on the session for later edits

        Returns:
            ChatResponse with the reply, parsed intent or clarification, execution
            result and the session's current itinerary
        """
        session = self.store.get_or_create(session_id)
        if itinerary is not None:
            session.replace_itinerary(itinerary)
        if flight is not None:
            session.flight = flight

        token = session.begin_request()
        prior_turns = list(session.turns)
        session.add_turn("user", message)
        try:
            parsed = await self.parser.parse(
                message,
                session.itinerary,
                prior_turns,
                context=ParseContext(
                    session_id=session.session_id,
                    selected_slot_id=selected_slot_id,
                    last_activity_name=session.last_activity_name,
                ),
                cancel_token=token,
            )
        except ParseCancelledError:
            logger.info(f"Message superseded in session {session.session_id}")
            return ChatResponse(
                session_id=session.session_id,
                message="Superseded by a newer message.",
                itinerary=session.itinerary,
                superseded=True,
            )

        try:
            if isinstance(parsed, ClarificationRequest):
                return self._reply(
                    session,
                    parsed.question,
                    clarification=parsed,
                    intent=parsed.partial_intent,
                    selected_slot_id=selected_slot_id,
                )

            if parsed.type == IntentType.ASK_QUESTION:
                answer = await self._answer(session, parsed, prior_turns)
                return self._reply(session, answer, intent=parsed, selected_slot_id=selected_slot_id)

            if session.itinerary is None:
                return self._reply(
                    session,
                    "Load an itinerary first, then tell me what to change.",
                    intent=parsed,
                )

            return self._execute(session, parsed, selected_slot_id)
        finally:
            session.end_request(token)

    def handle_action(
        self,
        session_id: str | None,
        intent: Intent,
        itinerary: Itinerary | None = None,
        flight: FlightConstraints | None = None,
    ) -> ChatResponse:
        """Run a ready-made intent (quick action or clarification answer) without parsing.

        The intent arrives from the client, so its parse method is overwritten;
        only intents the engine builds itself may carry the system method.
        """
        intent = intent.model_copy(update={"method": ParseMethod.QUICK_ACTION})
        session = self.store.get_or_create(session_id)
        if itinerary is not None:
            session.replace_itinerary(itinerary)
        if flight is not None:
            session.flight = flight
        if session.itinerary is None:
            return self._reply(session, "Load an itinerary first.", intent=intent)
        return self._execute(session, intent, intent.params.slot_id)

    def _execute(
        self, session: SessionState, intent: Intent, selected_slot_id: str | None
    ) -> ChatResponse:
        assert session.itinerary is not None
        if (
            intent.type in _DAY_DEFAULTED_INTENTS
            and intent.params.day_number is None
            and session.last_day_number is not None
        ):
            intent = intent.model_copy(deep=True)
            intent.params.day_number = session.last_day_number

        before = session.itinerary
        result = self.executor.execute(intent, before, session)

        if result.mutated:
            assert result.new_itinerary is not None
            if intent.type not in (IntentType.UNDO, IntentType.REDO):
                session.record(intent, before, result.new_itinerary)
            session.itinerary = result.new_itinerary
            self._remember(session, intent)

        return self._reply(
            session,
            result.message,
            intent=intent,
            execution=result,
            selected_slot_id=selected_slot_id,
        )

    async def _answer(self, session: SessionState, intent: Intent, prior_turns: list[ChatTurn]) -> str:
        """Answer a free-form question; canned text if the LLM client fails."""
        question = intent.params.question or ""
        try:
            return await self.llm_client.answer_question(
                question=question,
                itinerary_summary=summarize_itinerary(session.itinerary),
                prior_turns=prior_turns[-self.settings.llm_max_prior_turns :],
            )
        except Exception as e:
            logger.warning(f"Question answering failed, using canned reply: {e}")
            return await DeterministicStubClient().answer_question(
                question=question,
                itinerary_summary=summarize_itinerary(session.itinerary),
                prior_turns=[],
            )

    def _remember(self, session: SessionState, intent: Intent) -> None:
        """Track the last activity and day mentioned for follow-up messages."""
        params = intent.params
        name = params.activity_name or params.activity2_name or params.activity_description
        if name:
            session.last_activity_name = name
        day = params.to_day or params.day_number
        if day is not None:
            session.last_day_number = day

    def _reply(
        self,
        session: SessionState,
        message: str,
        *,
        intent: Intent | None = None,
        clarification: ClarificationRequest | None = None,
        execution: ExecutionResult | None = None,
        selected_slot_id: str | None = None,
    ) -> ChatResponse:
        session.add_turn("assistant", message)
        if execution is not None and execution.suggested_actions:
            actions = execution.suggested_actions
        else:
            actions = generate_quick_actions(
                session.itinerary,
                session.last_day_number,
                selected_slot_id,
                self.settings,
            )
        return ChatResponse(
            session_id=session.session_id,
            message=message,
            intent=intent,
            clarification=clarification,
            execution=execution,
            itinerary=session.itinerary,
            suggested_actions=actions,
        )
