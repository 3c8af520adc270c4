"""
Event helper functions for structured JSON logging.

This module provides consistent event emission and stage timing utilities
for the caption service's logging system.
"""

import logging
import time
from typing import Optional

logger = logging.getLogger("captions.events")


def evt(event: str, level: int = logging.INFO, **fields) -> None:
    """
    Emit a structured event with consistent field naming.

    Args:
        event: The event type/name
        level: Logging level for the record (INFO by default)
        **fields: Additional fields to include in the event

    Example:
        evt("cache_hit", video_id="abc123", lang="en")
        evt("candidate_result", outcome="empty", attempt=2)
    """
    event_data = {"event": event}
    event_data.update(fields)

    logger.log(level, "", extra=event_data)


class StageTimer:
    """
    Context manager for automatic stage timing with structured logging.

    Emits stage_start on entry and stage_result on exit, with
    duration and the exception type when the stage raised.

    Example:
        with StageTimer("resolve_tracks", lang="en"):
            tracks = await resolver.resolve_tracks(video_id)
    """

    def __init__(self, stage: str, **context_fields):
        self.stage = stage
        self.context_fields = context_fields
        self.start_time: Optional[float] = None

    def __enter__(self):
        self.start_time = time.monotonic()
        evt("stage_start", stage=self.stage, **self.context_fields)
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if self.start_time is None:
            duration_ms = 0
        else:
            duration_ms = int((time.monotonic() - self.start_time) * 1000)

        event_fields = {
            "stage": self.stage,
            "outcome": "success" if exc_type is None else "error",
            "dur_ms": duration_ms,
            **self.context_fields
        }
        if exc_type is not None:
            event_fields["detail"] = f"{exc_type.__name__}: {exc_value}"

        evt("stage_result", **event_fields)

        # Never suppress the exception
        return False


def time_stage(stage: str, **context_fields) -> StageTimer:
    """Create a StageTimer context manager for the given stage."""
    return StageTimer(stage, **context_fields)


def classify_error_type(exception: Exception) -> str:
    """
    Classify exception into error type for structured logging.

    Args:
        exception: The exception to classify

    Returns:
        Error type string for consistent categorization
    """
    exception_name = type(exception).__name__.lower()
    exception_str = str(exception).lower()

    if "validation" in exception_name:
        return "validation_error"

    if "navigation" in exception_name or "browser" in exception_str or "page" in exception_str:
        return "navigation_error"

    if any(term in exception_str for term in ["connection", "timeout", "network", "dns", "ssl"]):
        return "network_error"

    if "caption" in exception_str or "transcript" in exception_str:
        return "transcript_error"

    if any(term in exception_str for term in ["memory", "disk", "quota", "limit"]):
        return "resource_error"

    return "service_error"
