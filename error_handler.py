#!/usr/bin/env python3
"""
Error taxonomy and API error mapping for the caption service.

Only validation failures and total resolution failures reach the HTTP
boundary. Fetch and screenshot failures are absorbed by their components.
"""
import logging
from typing import Dict, Any, Tuple

from log_events import evt, classify_error_type


class CaptionServiceError(Exception):
    """Base class for caption service errors."""


class ValidationError(CaptionServiceError):
    """Required request input is missing or invalid."""


class NavigationError(CaptionServiceError):
    """The headless session could not load or render the watch page."""

    def __init__(self, message: str, video_id: str = None):
        super().__init__(message)
        self.video_id = video_id


class FetchError(CaptionServiceError):
    """A caption-track payload could not be retrieved."""

    def __init__(self, message: str, url: str = None, status_code: int = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ScreenshotError(CaptionServiceError):
    """The best-effort screenshot could not be captured."""


def handle_api_error(endpoint: str, error: Exception) -> Tuple[Dict[str, Any], int]:
    """Log an error that reached the API boundary and build its response body."""
    if isinstance(error, ValidationError):
        evt("api_error", level=logging.WARNING, endpoint=endpoint,
            error_type="validation_error", detail=str(error))
        return {"error": str(error)}, 400

    evt("api_error", level=logging.ERROR, endpoint=endpoint,
        error_type=classify_error_type(error),
        exception=type(error).__name__, detail=str(error))
    return {"error": str(error) or type(error).__name__}, 500
