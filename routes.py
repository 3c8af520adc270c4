import uuid

from flask import Blueprint, current_app, g, jsonify, request

from error_handler import ValidationError, handle_api_error
from logging_setup import set_request_ctx, clear_request_ctx
from log_events import evt

main_routes = Blueprint("main_routes", __name__)


def _flag(name: str) -> bool:
    """Query flags are on only for the literal string "true"."""
    return request.args.get(name) == "true"


async def _with_request_ctx(coro, request_id: str, video_id: str):
    # The coroutine runs on the engine loop thread, so context is set there
    set_request_ctx(request_id=request_id, video_id=video_id)
    try:
        return await coro
    finally:
        clear_request_ctx()


@main_routes.before_app_request
def log_request():
    g.request_id = uuid.uuid4().hex[:12]
    set_request_ctx(request_id=g.request_id)
    evt("request_received", method=request.method, path=request.full_path.rstrip("?"))


@main_routes.teardown_app_request
def clear_request(exc):
    clear_request_ctx()


@main_routes.route("/captions", methods=["GET"])
def get_captions():
    """Return captions for ?video=<id>&lang=<code>&screenshot=true&nocache=true"""
    services = current_app.extensions["captions"]

    video_id = request.args.get("video")
    lang = request.args.get("lang") or "en"

    try:
        if not video_id:
            raise ValidationError("`video` query parameter required")

        set_request_ctx(video_id=video_id)
        coro = services.pipeline.get_captions(
            video_id, lang, screenshot=_flag("screenshot"), nocache=_flag("nocache"),
        )
        result = services.runner.run(
            _with_request_ctx(coro, g.request_id, video_id),
            timeout=services.config.request_timeout_s,
        )
        return jsonify(result.to_dict())

    except Exception as e:
        error_response, status_code = handle_api_error("captions", e)
        return jsonify(error_response), status_code


@main_routes.route("/health")
@main_routes.route("/healthz")
def health_check():
    services = current_app.extensions["captions"]
    browser_ready = services.engine is not None and services.engine.is_ready

    health_info = {
        "status": "healthy" if browser_ready else "unhealthy",
        "browser_ready": browser_ready,
        "loop_running": services.runner.is_running,
        "cache": services.pipeline.cache.get_stats(),
    }
    return jsonify(health_info), 200 if browser_ready else 503
