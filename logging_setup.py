"""
Core logging infrastructure for the caption service.

Provides minimal JSON logging with request-scoped context management,
rate limiting, and third-party library noise suppression.
"""

import json
import logging
import threading
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Optional, Set
from collections import defaultdict


# Context variable for request correlation; asyncio tasks inherit a copy
_request_ctx: ContextVar[Dict[str, str]] = ContextVar("request_ctx", default={})


def set_request_ctx(request_id: str = None, video_id: str = None):
    """
    Set context for request correlation.

    Args:
        request_id: Unique request identifier
        video_id: Video ID being resolved
    """
    context = dict(_request_ctx.get())

    if request_id is not None:
        context['request_id'] = request_id
    if video_id is not None:
        context['video_id'] = video_id

    _request_ctx.set(context)


def clear_request_ctx():
    """Clear request context."""
    _request_ctx.set({})


def get_request_ctx() -> Dict[str, str]:
    """Get current request context."""
    return dict(_request_ctx.get())


class JsonFormatter(logging.Formatter):
    """
    JSON formatter with standardized field order and context injection.

    Produces single-line JSON with stable schema:
    ts, lvl, request_id, video_id, stage, event, outcome, dur_ms, detail
    """

    ORDERED_FIELDS = ('stage', 'event', 'outcome', 'dur_ms', 'detail')
    OPTIONAL_FIELDS = ('lang', 'attempt', 'url', 'status_code')

    STANDARD_ATTRS = {
        'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
        'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
        'thread', 'threadName', 'processName', 'process', 'getMessage', 'exc_info',
        'exc_text', 'stack_info', 'taskName', 'message', 'asctime',
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as single-line JSON."""
        try:
            # Truncate microseconds to milliseconds for consistent format
            dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
            timestamp = dt.strftime('%Y-%m-%dT%H:%M:%S') + f'.{int(dt.microsecond / 1000):03d}Z'

            log_data = {
                'ts': timestamp,
                'lvl': record.levelname
            }

            context = get_request_ctx()
            if 'request_id' in context:
                log_data['request_id'] = context['request_id']
            if 'video_id' in context:
                log_data['video_id'] = context['video_id']

            for field in self.ORDERED_FIELDS + self.OPTIONAL_FIELDS:
                value = getattr(record, field, None)
                if value is not None:
                    log_data[field] = value

            # Any other extra fields passed via logger.info(extra=...)
            skip = self.STANDARD_ATTRS | set(log_data) | set(self.ORDERED_FIELDS) | set(self.OPTIONAL_FIELDS)
            for attr_name, attr_value in record.__dict__.items():
                if attr_name.startswith('_') or attr_name in skip:
                    continue
                if attr_value is not None:
                    log_data[attr_name] = attr_value

            if 'detail' not in log_data and record.getMessage():
                log_data['detail'] = record.getMessage()

            if record.exc_info:
                log_data['exc'] = self.formatException(record.exc_info)

            return json.dumps(log_data, separators=(',', ':'), ensure_ascii=False, default=str)

        except Exception:
            # Fallback to basic formatting on any error
            detail = str(record.msg).replace('\\', '\\\\').replace('"', '\\"')
            return f'{{"ts":"{datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")}","lvl":"{record.levelname}","detail":"{detail}"}}'


class RateLimitFilter(logging.Filter):
    """
    Rate limiting filter to prevent log spam.

    Limits free-text messages to 5 per key per 60-second sliding window.
    Emits a suppression marker when the limit is first exceeded.
    Structured events (records carrying an `event` field) always pass.
    """

    def __init__(self, per_key: int = 5, window_sec: int = 60):
        super().__init__()
        self.per_key = per_key
        self.window_sec = window_sec
        self.counts: Dict[str, list] = defaultdict(list)
        self.suppressed: Set[str] = set()
        self._lock = threading.Lock()
        self._last_sweep = time.time()

    def _get_message_key(self, record: logging.LogRecord) -> str:
        """Key on level and the first 100 chars of the message."""
        message = record.getMessage()[:100]
        return f"{record.levelname}:{message}"

    def _cleanup_old_entries(self, key: str, now: float):
        cutoff = now - self.window_sec
        remaining = [ts for ts in self.counts.get(key, ()) if ts > cutoff]
        if remaining:
            self.counts[key] = remaining
        else:
            self.counts.pop(key, None)

    def _sweep_stale_keys(self, now: float):
        """Drop keys with no timestamps inside the window."""
        if now - self._last_sweep < self.window_sec:
            return
        self._last_sweep = now
        cutoff = now - self.window_sec
        for key in [k for k, stamps in self.counts.items() if not stamps or stamps[-1] <= cutoff]:
            del self.counts[key]
            self.suppressed.discard(key)

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, 'event', None):
            return True

        try:
            key = self._get_message_key(record)
            now = time.time()

            with self._lock:
                self._sweep_stale_keys(now)
                self._cleanup_old_entries(key, now)

                if len(self.counts[key]) < self.per_key:
                    self.counts[key].append(now)
                    self.suppressed.discard(key)
                    return True

                if key not in self.suppressed:
                    # First time hitting limit in this window
                    self.suppressed.add(key)
                    record.msg = f"{record.getMessage()} [suppressed]"
                    record.args = ()
                    return True

                return False

        except Exception:
            return True


def configure_logging(log_level: str = "INFO", use_json: bool = True,
                      log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure application logging with JSON formatting and noise suppression.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        use_json: Whether to use JSON formatting (True) or basic formatting (False)
        log_file: Optional path of an additional file handler

    Returns:
        Configured root logger
    """
    try:
        root_logger = logging.getLogger()

        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        handlers = [logging.StreamHandler()]
        if log_file:
            handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

        rate_filter = RateLimitFilter() if use_json else None
        for handler in handlers:
            if use_json:
                handler.setFormatter(JsonFormatter())
                handler.addFilter(rate_filter)
            else:
                handler.setFormatter(logging.Formatter(
                    '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
                ))
            root_logger.addHandler(handler)

        _suppress_library_noise()

        return root_logger

    except Exception as e:
        logging.basicConfig(
            level=getattr(logging, log_level.upper(), logging.INFO),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        logging.error(f"Failed to configure structured logging: {e}")
        return logging.getLogger()


def _suppress_library_noise():
    """Suppress verbose logging from third-party libraries."""
    library_levels = {
        'playwright': logging.WARNING,
        'asyncio': logging.WARNING,
        'httpx': logging.WARNING,
        'httpcore': logging.WARNING,
        'werkzeug': logging.WARNING,
    }

    for library, level in library_levels.items():
        logging.getLogger(library).setLevel(level)


def get_logger(name: str = None) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
