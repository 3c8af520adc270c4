"""
Caption track discovery from the watch page player state.

The track list is not in the static HTML; it is read from the
ytInitialPlayerResponse object the player injects into the page runtime.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, List, Optional

from browser_engine import BrowserEngine, navigate, pre_navigation_delay, watch_url
from logging_setup import get_logger
from log_events import evt
from models import CaptionTrack
from service_config import ServiceConfig, get_service_config

logger = get_logger(__name__)

CAPTION_TRACKS_SCRIPT = """
() => {
    const pr = window.ytInitialPlayerResponse;
    return pr.captions.playerCaptionsTracklistRenderer.captionTracks.map(track => ({
        baseUrl: track.baseUrl,
        languageCode: track.languageCode,
        kind: track.kind || '',
        name: (track.name && (track.name.simpleText
            || (track.name.runs || []).map(r => r.text).join(''))) || ''
    }));
}
"""


def matches_language(track: CaptionTrack, lang: str) -> bool:
    """Exact code or prefix match, so "en" also accepts "en-US" (and "eng")."""
    code = track.language_code or ""
    return code == lang or code.startswith(lang)


def filter_tracks(tracks: List[CaptionTrack], lang: str) -> List[CaptionTrack]:
    """Language-matching tracks in their original order."""
    return [t for t in tracks if matches_language(t, lang)]


def _tracks_from_records(records: Any) -> List[CaptionTrack]:
    if not isinstance(records, list):
        return []

    tracks = []
    for record in records:
        if not isinstance(record, dict):
            continue
        base_url = record.get("baseUrl")
        language_code = record.get("languageCode")
        if not isinstance(base_url, str) or not base_url or not isinstance(language_code, str):
            continue
        tracks.append(CaptionTrack(
            source_url=base_url,
            language_code=language_code,
            kind=record.get("kind") or "",
            name=record.get("name") or "",
        ))
    return tracks


class TrackResolver:
    """Loads one watch page per call and returns its caption tracks."""

    def __init__(self, engine: BrowserEngine, config: Optional[ServiceConfig] = None,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep,
                 rng: random.Random = None):
        self.engine = engine
        self.config = config or get_service_config()
        self.sleep = sleep
        self.rng = rng or random.Random()

    async def resolve_tracks(self, video_id: str) -> List[CaptionTrack]:
        """
        Return the caption tracks exposed by the watch page.

        Raises NavigationError when the page cannot be loaded. A page that
        loads without caption metadata yields an empty list.
        """
        async with self.engine.session() as page:
            await pre_navigation_delay(self.config, self.sleep, self.rng)
            await navigate(page, watch_url(video_id), self.config.navigation_timeout_ms, video_id)
            tracks = await self._extract_tracks(page, video_id)

        evt("caption_tracks_resolved", video_id=video_id, tracks_count=len(tracks),
            languages=[t.language_code for t in tracks])
        return tracks

    async def _extract_tracks(self, page, video_id: str) -> List[CaptionTrack]:
        try:
            records = await page.evaluate(CAPTION_TRACKS_SCRIPT)
        except Exception as e:
            # Player state missing or reshaped; the page simply has no usable tracks
            evt("caption_tracks_unavailable", video_id=video_id, detail=str(e)[:120])
            return []
        return _tracks_from_records(records)
