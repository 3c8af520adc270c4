"""
End-to-end tests of the /captions and /health endpoints.

The Flask app is built around a real AsyncRunner loop and a real pipeline;
only the browser-driven parts (track resolution, screenshots) are mocked
and payload fetches go through httpx.MockTransport.
"""

import unittest
from unittest.mock import AsyncMock, MagicMock

import httpx

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import CaptionServices, create_app
from browser_engine import AsyncRunner
from caption_pipeline import CaptionPipeline
from error_handler import NavigationError
from models import CaptionTrack
from service_config import ServiceConfig
from transcript_cache import TranscriptCache
from transcript_selector import TranscriptSelector


THREE_LINES = (
    '<transcript>'
    '<text start="0" dur="1.5">one</text>'
    '<text start="1.5" dur="2">two</text>'
    '<text start="3.5" dur="1">three</text>'
    '</transcript>'
)

EN_TRACK = CaptionTrack(source_url="https://captions.test/abc123?lang=en", language_code="en")
DE_TRACK = CaptionTrack(source_url="https://captions.test/abc123?lang=de", language_code="de")


class TestCaptionsEndpoint(unittest.TestCase):

    def setUp(self):
        self.runner = AsyncRunner(name="test-loop")
        self.cache = TranscriptCache()

        self.resolver = MagicMock()
        self.resolver.resolve_tracks = AsyncMock(return_value=[EN_TRACK])

        self.screenshots = MagicMock()
        self.screenshots.capture_screenshot = AsyncMock(return_value="screenshots/shot_abc123_en_1.png")

        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, text=THREE_LINES, headers={"content-type": "text/xml"})
        )
        self.pipeline = CaptionPipeline(
            cache=self.cache,
            resolver=self.resolver,
            selector=TranscriptSelector(timeout_ms=10000, transport=transport),
            screenshots=self.screenshots,
            fetch_timeout_ms=10000,
        )
        self.engine = MagicMock()
        self.engine.is_ready = True

        services = CaptionServices(config=ServiceConfig(), runner=self.runner,
                                   pipeline=self.pipeline, engine=self.engine)
        self.app = create_app(services=services)
        self.client = self.app.test_client()

    def tearDown(self):
        self.runner.close()

    def test_scenario_a_captions_returned_and_cached(self):
        response = self.client.get("/captions?video=abc123&lang=en")

        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(data["video"], "abc123")
        self.assertEqual(data["lang"], "en")
        self.assertEqual(len(data["captions"]), 3)
        self.assertEqual(data["captions"][0], {"start": 0.0, "dur": 1.5, "text": "one"})
        self.assertNotIn("screenshot", data)
        self.assertIsNotNone(self.cache.get("abc123_en"))

    def test_scenario_b_repeat_within_ttl_uses_cache(self):
        first = self.client.get("/captions?video=abc123&lang=en").get_json()
        second = self.client.get("/captions?video=abc123&lang=en").get_json()

        self.assertEqual(first, second)
        self.assertEqual(self.resolver.resolve_tracks.await_count, 1)

    def test_scenario_c_no_matching_language_is_empty_200(self):
        self.resolver.resolve_tracks.return_value = [DE_TRACK]

        response = self.client.get("/captions?video=abc123&lang=en")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["captions"], [])

    def test_scenario_d_missing_video_is_400(self):
        response = self.client.get("/captions?lang=en")

        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.get_json())
        self.resolver.resolve_tracks.assert_not_awaited()

    def test_scenario_e_screenshot_failure_omits_field(self):
        self.screenshots.capture_screenshot.side_effect = RuntimeError("capture exploded")

        response = self.client.get("/captions?video=abc123&lang=en&screenshot=true")

        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(len(data["captions"]), 3)
        self.assertNotIn("screenshot", data)

    def test_screenshot_included_when_captured(self):
        data = self.client.get("/captions?video=abc123&screenshot=true").get_json()

        self.assertEqual(data["screenshot"], "screenshots/shot_abc123_en_1.png")

    def test_lang_defaults_to_en(self):
        data = self.client.get("/captions?video=abc123").get_json()

        self.assertEqual(data["lang"], "en")
        self.assertIsNotNone(self.cache.get("abc123_en"))

    def test_nocache_bypasses_read_and_write(self):
        self.client.get("/captions?video=abc123&nocache=true")
        self.assertIsNone(self.cache.get("abc123_en"))

        self.client.get("/captions?video=abc123&nocache=true")
        self.assertEqual(self.resolver.resolve_tracks.await_count, 2)

    def test_flags_require_literal_true(self):
        self.client.get("/captions?video=abc123&nocache=1&screenshot=yes")

        self.assertIsNotNone(self.cache.get("abc123_en"))
        self.screenshots.capture_screenshot.assert_not_awaited()

    def test_navigation_failure_is_500(self):
        self.resolver.resolve_tracks.side_effect = NavigationError("Timed out loading watch page", "abc123")

        response = self.client.get("/captions?video=abc123")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json(), {"error": "Timed out loading watch page"})

    def test_health_reports_cache_and_browser(self):
        self.client.get("/captions?video=abc123")

        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(data["status"], "healthy")
        self.assertTrue(data["browser_ready"])
        self.assertEqual(data["cache"]["valid_entries"], 1)

    def test_health_unhealthy_without_browser(self):
        self.engine.is_ready = False

        response = self.client.get("/healthz")

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.get_json()["status"], "unhealthy")


if __name__ == "__main__":
    unittest.main()
