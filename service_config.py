#!/usr/bin/env python3
"""
Configuration management for the caption service.

Loads settings from environment variables with sensible defaults and
clamps numeric values into safe ranges.
"""

import os
from dataclasses import dataclass
from typing import Optional, Dict, Any

from logging_setup import get_logger

logger = get_logger(__name__)


@dataclass
class ServiceConfig:
    """Runtime configuration for the caption service."""

    # HTTP
    port: int = 3000

    # Logging
    log_level: str = "INFO"
    log_json: bool = True
    log_file: str = ""

    # Timeouts
    navigation_timeout_ms: int = 30000
    caption_fetch_timeout_ms: int = 10000
    request_timeout_s: int = 120

    # Browser behaviour
    browser_headless: bool = True
    pre_nav_delay_min_ms: int = 500
    pre_nav_delay_max_ms: int = 1500

    # Screenshots
    screenshot_dir: str = "screenshots"
    screenshot_settle_ms: int = 1000

    @classmethod
    def from_env(cls) -> 'ServiceConfig':
        """Load configuration from environment variables with validation."""
        try:
            config = cls(
                port=cls._parse_int_env("PORT", 3000, min_val=1, max_val=65535),

                log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
                log_json=cls._parse_bool_env("LOG_JSON", True),
                log_file=os.getenv("LOG_FILE", ""),

                navigation_timeout_ms=cls._parse_int_env("NAVIGATION_TIMEOUT_MS", 30000, min_val=5000, max_val=120000),
                caption_fetch_timeout_ms=cls._parse_int_env("CAPTION_FETCH_TIMEOUT_MS", 10000, min_val=1000, max_val=60000),
                request_timeout_s=cls._parse_int_env("REQUEST_TIMEOUT_S", 120, min_val=10, max_val=600),

                browser_headless=cls._parse_bool_env("BROWSER_HEADLESS", True),
                pre_nav_delay_min_ms=cls._parse_int_env("PRE_NAV_DELAY_MIN_MS", 500, min_val=0, max_val=10000),
                pre_nav_delay_max_ms=cls._parse_int_env("PRE_NAV_DELAY_MAX_MS", 1500, min_val=0, max_val=10000),

                screenshot_dir=os.getenv("SCREENSHOT_DIR", "screenshots"),
                screenshot_settle_ms=cls._parse_int_env("SCREENSHOT_SETTLE_MS", 1000, min_val=0, max_val=10000),
            )

            config._validate_config()

            return config

        except Exception as e:
            logger.error(f"Failed to load service configuration: {e}")
            logger.warning("Using default service configuration")
            return cls()

    @staticmethod
    def _parse_bool_env(env_var: str, default: bool) -> bool:
        """Parse boolean environment variable."""
        value = os.getenv(env_var, str(default).lower())
        return value.lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _parse_int_env(env_var: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
        """Parse integer environment variable with range clamping."""
        try:
            value = int(os.getenv(env_var, str(default)))

            if min_val is not None and value < min_val:
                logger.warning(f"{env_var}={value} is below minimum {min_val}, using {min_val}")
                return min_val

            if max_val is not None and value > max_val:
                logger.warning(f"{env_var}={value} is above maximum {max_val}, using {max_val}")
                return max_val

            return value

        except (ValueError, TypeError):
            logger.error(f"Invalid value for {env_var}: {os.getenv(env_var)}, using default {default}")
            return default

    def _validate_config(self):
        """Fix up inconsistent combinations."""
        if self.pre_nav_delay_min_ms > self.pre_nav_delay_max_ms:
            logger.warning(
                f"PRE_NAV_DELAY_MIN_MS ({self.pre_nav_delay_min_ms}) exceeds "
                f"PRE_NAV_DELAY_MAX_MS ({self.pre_nav_delay_max_ms}), swapping"
            )
            self.pre_nav_delay_min_ms, self.pre_nav_delay_max_ms = (
                self.pre_nav_delay_max_ms, self.pre_nav_delay_min_ms
            )

        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.warning(f"Unknown LOG_LEVEL {self.log_level}, using INFO")
            self.log_level = "INFO"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "port": self.port,
            "navigation_timeout_ms": self.navigation_timeout_ms,
            "caption_fetch_timeout_ms": self.caption_fetch_timeout_ms,
            "request_timeout_s": self.request_timeout_s,
            "browser_headless": self.browser_headless,
            "pre_nav_delay_ms": [self.pre_nav_delay_min_ms, self.pre_nav_delay_max_ms],
            "screenshot_dir": self.screenshot_dir,
        }


_service_config: Optional[ServiceConfig] = None


def get_service_config() -> ServiceConfig:
    """Get the global service configuration instance."""
    global _service_config
    if _service_config is None:
        _service_config = ServiceConfig.from_env()
    return _service_config


def reload_service_config() -> ServiceConfig:
    """Reload configuration from environment variables."""
    global _service_config
    _service_config = ServiceConfig.from_env()
    return _service_config
