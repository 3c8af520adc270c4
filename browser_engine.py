"""
Shared headless browser engine.

One Chromium instance is launched at process start and shared by every
request. It lives on a dedicated asyncio loop running in a background
thread (AsyncRunner); Flask worker threads submit pipeline coroutines to
that loop, so browser work, payload fetches and delays of concurrent
requests interleave cooperatively.

Every caller gets its own browser context through BrowserEngine.session(),
which closes the context on every exit path.
"""

import asyncio
import concurrent.futures
import random
import threading
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import quote

from playwright.async_api import (
    async_playwright,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)
from tenacity import retry, stop_after_attempt, wait_exponential_jitter, retry_if_exception_type

from error_handler import NavigationError
from logging_setup import get_logger
from log_events import evt
from service_config import ServiceConfig, get_service_config

logger = get_logger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
)
ACCEPT_LANGUAGE = "en-US,en;q=0.9"
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

BROWSER_LAUNCH_ATTEMPTS = 3


def watch_url(video_id: str) -> str:
    return WATCH_URL.format(video_id=quote(video_id, safe=""))


class AsyncRunner:
    """Owns an event loop running forever in a daemon thread."""

    def __init__(self, name: str = "caption-loop"):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name=name, daemon=True)
        self._thread.start()

    def _run_loop(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self.loop.is_closed()

    def run(self, coro: Awaitable, timeout: Optional[float] = None) -> Any:
        """Run a coroutine on the loop and block the calling thread for its result."""
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise

    def close(self, timeout: float = 5):
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            # A callback is still blocking the loop; it stops once that returns
            logger.warning(f"Event loop thread {self._thread.name} did not stop within {timeout}s")
            return
        self.loop.close()


async def pre_navigation_delay(config: ServiceConfig,
                               sleep: Callable[[float], Awaitable] = asyncio.sleep,
                               rng: random.Random = None) -> float:
    """Sleep for a random interval inside the configured bounds; returns seconds slept."""
    rng = rng or random
    delay_s = rng.uniform(config.pre_nav_delay_min_ms, config.pre_nav_delay_max_ms) / 1000
    await sleep(delay_s)
    return delay_s


async def navigate(page, url: str, timeout_ms: int, video_id: str = None) -> None:
    """Load url and wait for network idle, raising NavigationError on failure."""
    try:
        await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
    except PlaywrightTimeoutError as e:
        raise NavigationError(f"Timed out loading watch page after {timeout_ms}ms", video_id) from e
    except PlaywrightError as e:
        raise NavigationError(f"Failed to load watch page: {str(e)[:200]}", video_id) from e


class BrowserEngine:
    """
    Process-wide browser handle.

    Lifetime: start() once on the runner loop at process start, then
    session() per request, close() at shutdown.
    """

    def __init__(self, config: Optional[ServiceConfig] = None):
        self.config = config or get_service_config()
        self._playwright = None
        self._browser = None

    @property
    def is_ready(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    @retry(
        stop=stop_after_attempt(BROWSER_LAUNCH_ATTEMPTS),
        wait=wait_exponential_jitter(initial=1, max=5),
        retry=retry_if_exception_type(PlaywrightError),
        reraise=True,
        before_sleep=lambda s: logger.info(f"Browser launch failed, retrying in {s.next_action.sleep:.2f}s..."),
    )
    async def start(self) -> None:
        if self.is_ready:
            return

        if self._playwright is None:
            self._playwright = await async_playwright().start()

        self._browser = await self._playwright.chromium.launch(
            headless=self.config.browser_headless,
            args=["--no-sandbox", "--disable-dev-shm-usage"],
        )
        evt("browser_launched", headless=self.config.browser_headless)

    def _context_args(self, overrides: Dict[str, Any]) -> Dict[str, Any]:
        context_args = {
            "user_agent": USER_AGENT,
            "locale": "en-US",
            "viewport": {"width": 1280, "height": 720},
            "extra_http_headers": {"Accept-Language": ACCEPT_LANGUAGE},
        }
        context_args.update(overrides)
        return context_args

    @asynccontextmanager
    async def session(self, **context_overrides):
        """Yield a page in a fresh, isolated browser context."""
        if not self.is_ready:
            raise NavigationError("Browser engine is not running")

        try:
            context = await self._browser.new_context(**self._context_args(context_overrides))
        except PlaywrightError as e:
            raise NavigationError(f"Could not open browser context: {str(e)[:200]}") from e

        evt("browser_context_opened", context_id=id(context))
        try:
            page = await context.new_page()
            yield page
        finally:
            try:
                await context.close()
                evt("browser_context_closed", context_id=id(context))
            except PlaywrightError as e:
                logger.warning(f"Error closing browser context: {e}")

    async def close(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.warning(f"Error closing browser: {e}")
            self._browser = None

        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

        evt("browser_closed")
