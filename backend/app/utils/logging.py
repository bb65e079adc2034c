"""Structured logging for provider attempts."""

import logging
from typing import Any

from backend.app.generation.chunk_generator import AttemptContext

logger = logging.getLogger(__name__)


class StructuredAttemptLogger:
    """Structured logger for provider call attempts."""

    def log_attempt(
        self,
        ctx: AttemptContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        credential_position: int | None = None,
        error_kind: str | None = None,
    ) -> None:
        """Log provider attempt with structured data."""
        log_data: dict[str, Any] = {
            "generation_id": ctx.generation_id,
            "chunk": f"{ctx.chunk_index}/{ctx.chunk_total}",
            "attempt": attempt,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
            "credential": credential_position,
        }

        if error_kind:
            log_data["error_kind"] = error_kind

        log_msg = f"Provider attempt: chunk {ctx.chunk_index}/{ctx.chunk_total} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
