"""Lightweight metrics helpers."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from app.observability.tracing import trace

logger = logging.getLogger(__name__)


def log_metric(name: str, value: float | int, metadata: Optional[Dict[str, Any]] = None) -> None:
    """Record a metric as a short Opik trace; a no-op when Opik is disabled."""
    payload: Dict[str, Any] = {"value": value}
    if metadata:
        payload.update(metadata)

    try:
        with trace(f"metric:{name}", metadata=payload):
            pass
    except Exception as exc:  # pragma: no cover - defensive
        logger.debug("Unable to record metric %s: %s", name, exc)


def log_scheduling_run(
    prefix: str,
    *,
    scheduled_count: int,
    too_tight: bool,
    latency_ms: float,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """Emit the standard success/count/tightness/latency metrics for one scheduling run."""
    log_metric(f"{prefix}.success", 1, metadata=metadata)
    log_metric(f"{prefix}.scheduled_count", scheduled_count, metadata=metadata)
    log_metric(f"{prefix}.too_tight", 1 if too_tight else 0, metadata=metadata)
    log_metric(f"{prefix}.latency_ms", latency_ms, metadata=metadata)
