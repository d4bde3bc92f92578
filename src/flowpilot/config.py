"""
Console configuration for flowpilot.

Supports configuration via:
1. Environment variables (highest priority)
2. TOML config file (flowpilot.toml)
3. Default values (lowest priority)

Environment variables:
- FLOWPILOT_API_BASE_URL: Content API base URL
- FLOWPILOT_API_TOKEN: Bearer token for the content API
- FLOWPILOT_REQUEST_TIMEOUT: Request timeout in seconds
- FLOWPILOT_PAGE_SIZE: Default page size for collection fetches
- FLOWPILOT_RETRY_MAX_ATTEMPTS: Attempts per remote call, first one included
- FLOWPILOT_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
- FLOWPILOT_CONFIG_FILE: Path to TOML config file

The API token is never logged; keep it out of the TOML file in shared
checkouts and prefer the environment variable.
"""

import os
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from flowpilot.core.resilience.models import RetryConfig

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.webflow.com/v2"


@dataclass
class ConsoleConfig:
    """Console configuration with support for env vars and TOML overrides."""

    # Content API
    api_base_url: str = DEFAULT_API_BASE_URL
    api_token: Optional[str] = field(default=None, repr=False)
    request_timeout: float = 30.0

    # Collections
    default_page_size: int = 25
    bulk_batch_size: int = 25
    bulk_batch_delay: float = 1.0

    # Retry
    retry: RetryConfig = field(default_factory=RetryConfig)

    # Logging configuration
    log_level: str = "INFO"
    structured_logging: bool = True

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "ConsoleConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. TOML config file
        3. Default values
        """
        config = cls()

        # Load TOML config if available
        toml_path = config_file or os.environ.get("FLOWPILOT_CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            # Try default locations
            for default_path in ["flowpilot.toml", ".flowpilot.toml"]:
                if Path(default_path).exists():
                    config._load_toml(Path(default_path))
                    break

        # Override with environment variables
        config._load_env()

        return config

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            # API settings
            if "api" in data:
                api = data["api"]
                if "base_url" in api:
                    self.api_base_url = api["base_url"]
                if "token" in api:
                    self.api_token = api["token"]
                if "timeout" in api:
                    self.request_timeout = float(api["timeout"])

            # Collection settings
            if "cms" in data:
                cms = data["cms"]
                if "page_size" in cms:
                    self.default_page_size = int(cms["page_size"])
                if "bulk_batch_size" in cms:
                    self.bulk_batch_size = int(cms["bulk_batch_size"])
                if "bulk_batch_delay" in cms:
                    self.bulk_batch_delay = float(cms["bulk_batch_delay"])

            # Retry settings
            if "retry" in data:
                known = {f.name for f in fields(RetryConfig)}
                overrides = {k: v for k, v in data["retry"].items() if k in known}
                self.retry = replace(self.retry, **overrides)

            # Logging settings
            if "logging" in data:
                log = data["logging"]
                if "level" in log:
                    self.log_level = log["level"].upper()
                if "structured" in log:
                    self.structured_logging = log["structured"]

        except Exception as e:
            logger.error(f"Error loading config file {path}: {e}")

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        if base_url := os.environ.get("FLOWPILOT_API_BASE_URL"):
            self.api_base_url = base_url

        if token := os.environ.get("FLOWPILOT_API_TOKEN"):
            self.api_token = token

        self.request_timeout = _env_number(
            "FLOWPILOT_REQUEST_TIMEOUT", float, self.request_timeout
        )
        self.default_page_size = _env_number(
            "FLOWPILOT_PAGE_SIZE", int, self.default_page_size
        )

        max_attempts = _env_number("FLOWPILOT_RETRY_MAX_ATTEMPTS", int, self.retry.max_attempts)
        if max_attempts != self.retry.max_attempts:
            try:
                self.retry = replace(self.retry, max_attempts=max_attempts)
            except ValueError as e:
                logger.warning(f"Ignoring FLOWPILOT_RETRY_MAX_ATTEMPTS: {e}")

        # Log level
        if level := os.environ.get("FLOWPILOT_LOG_LEVEL"):
            self.log_level = level.upper()

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        level = getattr(logging, self.log_level, logging.INFO)

        if self.structured_logging:
            # JSON-style structured logging
            formatter = logging.Formatter(
                '{"timestamp":"%(asctime)s","level":"%(levelname)s",'
                '"logger":"%(name)s","message":"%(message)s"}'
            )
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )

        handler = logging.StreamHandler()
        handler.setFormatter(formatter)

        root_logger = logging.getLogger("flowpilot")
        root_logger.setLevel(level)
        for existing in list(root_logger.handlers):
            if getattr(existing, "_flowpilot_handler", False):
                root_logger.removeHandler(existing)
        handler._flowpilot_handler = True  # type: ignore[attr-defined]
        root_logger.addHandler(handler)

    def to_dict(self) -> Dict[str, Any]:
        """Settings with the API token masked, for diagnostics."""
        return {
            "api_base_url": self.api_base_url,
            "api_token": "****" if self.api_token else None,
            "request_timeout": self.request_timeout,
            "default_page_size": self.default_page_size,
            "bulk_batch_size": self.bulk_batch_size,
            "bulk_batch_delay": self.bulk_batch_delay,
            "retry": {
                "max_attempts": self.retry.max_attempts,
                "base_delay": self.retry.base_delay,
                "max_delay": self.retry.max_delay,
                "backoff_factor": self.retry.backoff_factor,
            },
            "log_level": self.log_level,
            "structured_logging": self.structured_logging,
        }


def _env_number(name: str, cast: Callable[[str], Any], current: Any) -> Any:
    raw = os.environ.get(name)
    if not raw:
        return current
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {raw!r}; keeping {current!r}")
        return current


# Global configuration instance
_config: Optional[ConsoleConfig] = None


def get_config() -> ConsoleConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ConsoleConfig.from_env()
    return _config


def set_config(config: ConsoleConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
