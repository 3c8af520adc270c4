"""
Request pipeline: cache lookup, track resolution, fetch-and-select,
optional screenshot, cache write.
"""

import logging
from typing import Optional

from error_handler import ValidationError
from logging_setup import get_logger
from log_events import evt, time_stage
from models import TranscriptResult
from screenshot_service import ScreenshotService
from track_resolver import TrackResolver
from transcript_cache import TranscriptCache, cache_key
from transcript_selector import TranscriptSelector

logger = get_logger(__name__)

DEFAULT_LANG = "en"


class CaptionPipeline:
    """Composition root for one caption request; components are injected."""

    def __init__(self, cache: TranscriptCache, resolver: TrackResolver,
                 selector: TranscriptSelector,
                 screenshots: Optional[ScreenshotService] = None,
                 fetch_timeout_ms: Optional[int] = None):
        self.cache = cache
        self.resolver = resolver
        self.selector = selector
        self.screenshots = screenshots
        self.fetch_timeout_ms = fetch_timeout_ms

    async def get_captions(self, video_id: str, lang: str = DEFAULT_LANG,
                           screenshot: bool = False, nocache: bool = False) -> TranscriptResult:
        if not video_id:
            raise ValidationError("`video` query parameter required")
        lang = lang or DEFAULT_LANG

        key = cache_key(video_id, lang)
        cache = self.cache.view(bypass=nocache)

        cached = cache.get(key)
        if cached is not None:
            evt("cache_hit", video_id=video_id, lang=lang, entries=len(cached.captions))
            return cached

        with time_stage("resolve_tracks", lang=lang):
            tracks = await self.resolver.resolve_tracks(video_id)

        with time_stage("select_transcript", lang=lang):
            selection = await self.selector.select_transcript(tracks, lang, self.fetch_timeout_ms)

        if selection.chosen is None:
            evt("no_captions_found", level=logging.WARNING, video_id=video_id, lang=lang,
                tracks_count=len(tracks), attempts=len(selection.attempts))

        result = TranscriptResult(video_id=video_id, language_requested=lang,
                                  captions=selection.captions)

        if screenshot:
            result.screenshot_path = await self._try_screenshot(video_id, lang)

        cache.put(key, result)
        return result

    async def _try_screenshot(self, video_id: str, lang: str) -> Optional[str]:
        if self.screenshots is None:
            return None
        try:
            with time_stage("screenshot", lang=lang):
                return await self.screenshots.capture_screenshot(video_id, lang)
        except Exception as e:
            # The transcript stands on its own; only the screenshot field is dropped
            evt("screenshot_failed", level=logging.ERROR, video_id=video_id, lang=lang,
                detail=f"{type(e).__name__}: {str(e)[:200]}")
            return None
