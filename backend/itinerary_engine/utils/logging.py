"""Structured logging for parse, execute and remediation events."""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class StructuredEngineLogger:
    """Structured logger for engine events."""

    def log_parse(
        self,
        *,
        session_id: str | None,
        intent: str,
        method: str,
        confidence: float,
        latency_ms: float,
        clarification: bool = False,
    ) -> None:
        """Log a parsed message with structured data."""
        log_data: dict[str, Any] = {
            "session_id": session_id,
            "intent": intent,
            "method": method,
            "confidence": round(confidence, 2),
            "latency_ms": round(latency_ms, 2),
            "clarification": clarification,
        }
        logger.info(f"Intent parsed: {intent} via {method}", extra={"structured": log_data})

    def log_execution(
        self,
        *,
        session_id: str | None,
        intent: str,
        outcome: str,
        latency_ms: float,
        error_code: str | None = None,
        warnings: int = 0,
    ) -> None:
        """Log an executor run; rejections are logged at warning level."""
        log_data: dict[str, Any] = {
            "session_id": session_id,
            "intent": intent,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
            "warnings": warnings,
        }

        if error_code:
            log_data["error_code"] = error_code

        log_msg = f"Intent execution: {intent} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})

    def log_remediation(self, *, destination: str, changes: int, by_type: dict[str, int]) -> None:
        """Log a remediation run summary."""
        log_data: dict[str, Any] = {
            "destination": destination,
            "changes": changes,
            "by_type": by_type,
        }
        logger.info(
            f"Remediation applied {changes} change(s) to {destination}",
            extra={"structured": log_data},
        )
