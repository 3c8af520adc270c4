from dotenv import load_dotenv

# Load environment variables from .env file before reading configuration
load_dotenv()

from logging_setup import configure_logging
from service_config import get_service_config

config = get_service_config()

# Initialize logging before building the app
configure_logging(
    log_level=config.log_level,
    use_json=config.log_json,
    log_file=config.log_file or None,
)

from app import create_app  # noqa: E402

app = create_app(config=config)

if __name__ == "__main__":
    # Single process: the browser and its loop live in this process
    app.run(host="0.0.0.0", port=config.port, debug=False, threaded=True)
