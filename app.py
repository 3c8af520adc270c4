import atexit
import logging
from dataclasses import dataclass
from typing import Optional

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from browser_engine import AsyncRunner, BrowserEngine
from caption_pipeline import CaptionPipeline
from screenshot_service import ScreenshotService
from service_config import ServiceConfig, get_service_config
from track_resolver import TrackResolver
from transcript_cache import TranscriptCache
from transcript_selector import TranscriptSelector


@dataclass
class CaptionServices:
    """Process-wide handles shared by every request."""

    config: ServiceConfig
    runner: AsyncRunner
    pipeline: CaptionPipeline
    engine: Optional[BrowserEngine] = None

    def shutdown(self):
        if self.engine is not None and self.runner.is_running:
            try:
                self.runner.run(self.engine.close(), timeout=10)
            except Exception as e:
                logging.warning(f"Browser shutdown failed: {e}")
        self.runner.close()


def build_services(config: ServiceConfig) -> CaptionServices:
    """Start the shared browser on its loop and wire the pipeline around it."""
    runner = AsyncRunner()
    engine = BrowserEngine(config)

    try:
        runner.run(engine.start(), timeout=120)
        logging.info("Browser launched")
    except Exception as e:
        # Keep serving; /health reports the browser as unavailable
        logging.error(f"Browser launch failed: {e}")

    pipeline = CaptionPipeline(
        cache=TranscriptCache(),
        resolver=TrackResolver(engine, config),
        selector=TranscriptSelector(timeout_ms=config.caption_fetch_timeout_ms),
        screenshots=ScreenshotService(engine, config),
        fetch_timeout_ms=config.caption_fetch_timeout_ms,
    )
    return CaptionServices(config=config, runner=runner, pipeline=pipeline, engine=engine)


def create_app(services: Optional[CaptionServices] = None,
               config: Optional[ServiceConfig] = None) -> Flask:
    config = config or (services.config if services else get_service_config())

    if services is None:
        services = build_services(config)
        atexit.register(services.shutdown)

    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)
    app.extensions["captions"] = services

    from routes import main_routes
    app.register_blueprint(main_routes)

    logging.info(f"Caption service configured: {config.to_dict()}")
    return app
