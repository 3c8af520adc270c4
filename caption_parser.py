"""
Transcript payload parsing.

Normalizes the two caption payload encodings served for a caption track
into CaptionEntry sequences:

- timed-text XML: <transcript><text start="1.2" dur="3.4">...</text></transcript>
- json3 events:   {"events": [{"tStartMs": 1200, "dDurationMs": 3400, "segs": [{"utf8": "..."}]}]}

Parsers never raise on malformed input. A payload that yields nothing is an
empty list, which the selector treats as "try the next candidate".
"""

import html
import json
import math
import xml.etree.ElementTree as ET
from typing import Any, Iterable, List
from urllib.parse import urlparse, parse_qs

from logging_setup import get_logger
from models import CaptionEntry

logger = get_logger(__name__)


def _coerce_number(value: Any) -> float:
    """Convert an attribute or field to a non-negative float, 0 when unusable."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def _decode_text(raw_text: str) -> str:
    # The platform double-encodes entities (&amp;#39;), ElementTree undoes one level
    return html.unescape(raw_text).strip()


def parse_xml_payload(raw: str) -> List[CaptionEntry]:
    """
    Parse a timed-text XML document.

    Each <text> node becomes one entry in document order. Missing or
    unparsable start/dur attributes default to 0; missing inner text is "".
    """
    if not raw or not raw.strip():
        return []

    try:
        root = ET.fromstring(raw.strip())
    except (ET.ParseError, ValueError, RecursionError) as e:
        logger.debug(f"Timed-text XML did not parse: {str(e)[:100]}")
        return []

    entries = []
    for node in root.iter('text'):
        entries.append(CaptionEntry(
            start=_coerce_number(node.get('start')),
            dur=_coerce_number(node.get('dur')),
            text=_decode_text("".join(node.itertext())),
        ))
    return entries


def _segment_text(segment: Any) -> str:
    if not isinstance(segment, dict):
        return ""
    text = segment.get('utf8')
    if text is None:
        text = segment.get('text')
    return text if isinstance(text, str) else ""


def parse_json_events_payload(events: Iterable[Any]) -> List[CaptionEntry]:
    """
    Parse a json3 event list.

    Events without a "segs" field (window/style events) are dropped. Times are
    converted from milliseconds to seconds; a missing duration is 0.
    """
    if not isinstance(events, (list, tuple)):
        return []

    entries = []
    for event in events:
        if not isinstance(event, dict) or 'segs' not in event:
            continue

        segments = event.get('segs')
        if not isinstance(segments, (list, tuple)):
            segments = []

        entries.append(CaptionEntry(
            start=_coerce_number(event.get('tStartMs')) / 1000,
            dur=_coerce_number(event.get('dDurationMs')) / 1000,
            text="".join(_segment_text(seg) for seg in segments).strip(),
        ))
    return entries


def is_json_payload(body: str, content_type: str = "", source_url: str = "") -> bool:
    """Decide the declared format of a fetched payload."""
    if "json" in (content_type or "").lower():
        return True

    if source_url:
        try:
            fmt = parse_qs(urlparse(source_url).query).get('fmt', [''])[0]
        except ValueError:
            fmt = ''
        if fmt.startswith('json'):
            return True

    return (body or "").lstrip().startswith("{")


def parse_payload(body: str, content_type: str = "", source_url: str = "") -> List[CaptionEntry]:
    """Parse a fetched payload with the parser matching its declared format."""
    if not is_json_payload(body, content_type, source_url):
        return parse_xml_payload(body)

    try:
        document = json.loads(body)
    except (ValueError, TypeError, RecursionError) as e:
        logger.debug(f"json3 payload did not parse: {str(e)[:100]}")
        return []

    if not isinstance(document, dict):
        return []
    return parse_json_events_payload(document.get('events', []))
