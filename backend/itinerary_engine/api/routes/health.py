"""Health check endpoints."""

import json
from typing import Any

from fastapi import APIRouter, Request, Response

from backend.itinerary_engine.config import Settings, get_settings

router = APIRouter()


def check_sessions(request: Request) -> tuple[bool, str]:
    """Check the app owns a session store.

    Returns:
        (is_ok, status_message)
    """
    store = getattr(request.app.state, "session_store", None)
    if store is None:
        return (False, "missing")
    return (True, f"ok ({len(store)} active)")


def check_llm(settings: Settings) -> tuple[bool, str]:
    """Report the LLM fallback tier configuration; never fails the check."""
    if not settings.llm_enabled:
        return (True, "disabled")
    if settings.openai_api_key is None or not settings.openai_api_key.get_secret_value():
        return (True, "stub")
    return (True, "configured")


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s.

    Returns:
        200 OK always (application is running)
    """
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz(request: Request) -> dict[str, Any] | Response:
    """Component health check.

    Returns:
        200 with component status if the session store is available
        503 otherwise
    """
    settings = get_settings()

    sessions_ok, sessions_status = check_sessions(request)
    _, llm_status = check_llm(settings)

    response_body = {
        "status": "ok" if sessions_ok else "degraded",
        "components": {
            "sessions": sessions_status,
            "llm": llm_status,
        },
    }

    if not sessions_ok:
        return Response(
            content=json.dumps(response_body),
            status_code=503,
            media_type="application/json",
        )

    return response_body
