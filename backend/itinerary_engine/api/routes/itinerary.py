"""Itinerary endpoints - chat mutations, quick actions, batch validation and remediation."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import Field

from backend.itinerary_engine.execution.chat import ItineraryChatService
from backend.itinerary_engine.models.common import CamelModel
from backend.itinerary_engine.models.execution import ChatResponse
from backend.itinerary_engine.models.intent import Intent
from backend.itinerary_engine.models.issues import ValidationOptions, ValidationReport
from backend.itinerary_engine.models.itinerary import Itinerary
from backend.itinerary_engine.models.remediation import (
    FlightConstraints,
    RemediationOptions,
    RemediationResult,
)
from backend.itinerary_engine.verification.batch import validate
from backend.itinerary_engine.verification.remediation import remediate

router = APIRouter(prefix="/itinerary", tags=["itinerary"])


class ChatRequest(CamelModel):
    """Request body for POST /itinerary/chat."""

    message: str = Field(..., min_length=1, description="User message")
    session_id: str | None = Field(None, description="Omit to start a new session")
    itinerary: Itinerary | None = Field(None, description="Itinerary to load into the session")
    selected_slot_id: str | None = None
    constraints: FlightConstraints | None = Field(None, description="Flight window kept on the session")


class ActionRequest(CamelModel):
    """Request body for POST /itinerary/action."""

    action: Intent
    session_id: str | None = None
    itinerary: Itinerary | None = None
    constraints: FlightConstraints | None = None


class ValidateRequest(CamelModel):
    """Request body for POST /itinerary/validate."""

    itinerary: Itinerary
    constraints: FlightConstraints | None = None
    options: ValidationOptions | None = None


class RemediateRequest(CamelModel):
    """Request body for POST /itinerary/remediate."""

    itinerary: Itinerary
    constraints: FlightConstraints | None = None
    options: RemediationOptions | None = None
    validation_options: ValidationOptions | None = None


class RemediateResponse(CamelModel):
    """Remediation result plus validation reports before and after."""

    result: RemediationResult
    before: ValidationReport
    after: ValidationReport


def get_chat_service(request: Request) -> ItineraryChatService:
    """Chat service owned by the running app."""
    service: ItineraryChatService = request.app.state.chat_service
    return service


@router.post("/chat", response_model=ChatResponse, response_model_by_alias=True)
async def chat(
    request: ChatRequest,
    service: Annotated[ItineraryChatService, Depends(get_chat_service)],
) -> ChatResponse:
    """Parse and apply one chat message to the session itinerary.

    Args:
        request: Message, optional session id, itinerary and selected slot
        service: Chat service

    Returns:
        Reply with the parsed intent (or clarification), execution outcome and
        the session's current itinerary
    """
    return await service.handle_message(
        request.session_id,
        request.message,
        itinerary=request.itinerary,
        selected_slot_id=request.selected_slot_id,
        flight=request.constraints,
    )


@router.post("/action", response_model=ChatResponse, response_model_by_alias=True)
async def action(
    request: ActionRequest,
    service: Annotated[ItineraryChatService, Depends(get_chat_service)],
) -> ChatResponse:
    """Run a quick action or clarification answer without parsing."""
    return service.handle_action(
        request.session_id,
        request.action,
        itinerary=request.itinerary,
        flight=request.constraints,
    )


@router.post("/validate", response_model=ValidationReport, response_model_by_alias=True)
async def validate_itinerary(request: ValidateRequest) -> ValidationReport:
    """Run the full batch validation suite over an itinerary."""
    return validate(request.itinerary, request.constraints, request.options)


@router.post("/remediate", response_model=RemediateResponse, response_model_by_alias=True)
async def remediate_itinerary(request: RemediateRequest) -> RemediateResponse:
    """Remediate an itinerary and report validation before and after."""
    before = validate(request.itinerary, request.constraints, request.validation_options)
    result = remediate(request.itinerary, request.constraints, request.options)
    after = validate(result.itinerary, request.constraints, request.validation_options)
    return RemediateResponse(result=result, before=before, after=after)
