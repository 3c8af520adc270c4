"""
WSGI entrypoint for the caption service.

Run with a single worker process and multiple threads, e.g.
gunicorn --workers 1 --threads 8 wsgi:app
Each worker process would otherwise launch its own browser and cache.
"""

from main import app  # noqa: F401

if __name__ == "__main__":
    from service_config import get_service_config
    app.run(host="0.0.0.0", port=get_service_config().port)
