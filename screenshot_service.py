"""
Best-effort screenshot of the watch page.

Used only when a request asks for it. The pipeline swallows every failure
raised from here; a failed capture only drops the screenshot field.
"""

import asyncio
import os
import random
import re
import time
from typing import Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError

from browser_engine import BrowserEngine, navigate, pre_navigation_delay, watch_url
from error_handler import ScreenshotError
from logging_setup import get_logger
from log_events import evt
from service_config import ServiceConfig, get_service_config

logger = get_logger(__name__)

PLAY_BUTTON_SELECTOR = "button.ytp-large-play-button"
PLAY_BUTTON_TIMEOUT_MS = 3000

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def screenshot_path(directory: str, video_id: str, lang: str, captured_at_ms: int) -> str:
    """shot_<video>_<lang>_<epoch ms>.png under directory, with unsafe characters replaced."""
    safe_video = _UNSAFE_CHARS.sub("-", video_id) or "unknown"
    safe_lang = _UNSAFE_CHARS.sub("-", lang) or "unknown"
    return os.path.join(directory, f"shot_{safe_video}_{safe_lang}_{captured_at_ms}.png")


class ScreenshotService:
    def __init__(self, engine: BrowserEngine, config: Optional[ServiceConfig] = None,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep,
                 clock: Callable[[], float] = time.time,
                 rng: random.Random = None):
        self.engine = engine
        self.config = config or get_service_config()
        self.sleep = sleep
        self.clock = clock
        self.rng = rng or random.Random()

    async def capture_screenshot(self, video_id: str, lang: str) -> str:
        """Capture the watch page to a PNG and return its path."""
        os.makedirs(self.config.screenshot_dir, exist_ok=True)

        async with self.engine.session() as page:
            await pre_navigation_delay(self.config, self.sleep, self.rng)
            await navigate(page, watch_url(video_id), self.config.navigation_timeout_ms, video_id)
            await self._dismiss_play_overlay(page)
            await self.sleep(self.config.screenshot_settle_ms / 1000)

            path = screenshot_path(self.config.screenshot_dir, video_id, lang,
                                   int(self.clock() * 1000))
            try:
                await page.screenshot(path=path)
            except PlaywrightError as e:
                raise ScreenshotError(f"Screenshot capture failed: {str(e)[:200]}") from e

        evt("screenshot_captured", video_id=video_id, lang=lang, path=path)
        return path

    async def _dismiss_play_overlay(self, page) -> None:
        try:
            await page.click(PLAY_BUTTON_SELECTOR, timeout=PLAY_BUTTON_TIMEOUT_MS)
        except PlaywrightError:
            # No overlay on this page
            logger.debug("Play overlay not present")
