from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


def trace_batch_step(
    batch_id: str,
    *,
    phase: str,
    step: str | None = None,
    label: str,
    detail: str | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    """
    Structured progress event for one batch, emitted through logging.

    Best-effort: a formatting problem here must never break the batch.
    """
    try:
        message = label if not detail else f"{label}: {detail}"
        if meta:
            message += " " + " ".join(f"{k}={v}" for k, v in sorted(meta.items()))
        logger.info(
            message,
            extra={"batch_id": batch_id, "phase": phase, "step": step or phase.lower()},
        )
    except Exception:
        logger.exception("Failed to emit batch trace event", extra={"batch_id": batch_id})
