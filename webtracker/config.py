"""Runtime settings read from the environment."""

import os
from dataclasses import dataclass
from pathlib import Path

from webtracker.errors import ConfigurationError

TRUE_VALUES = ("true", "1", "yes", "on")


def _env_int(name: str, default: int) -> int:
    val = os.environ.get(name)
    if val is None or val.strip() == "":
        return default
    try:
        return int(val)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {val!r}") from e


def _env_float(name: str, default: float) -> float:
    val = os.environ.get(name)
    if val is None or val.strip() == "":
        return default
    try:
        return float(val)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {val!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    val = os.environ.get(name)
    if val is None or val.strip() == "":
        return default
    return val.strip().lower() in TRUE_VALUES


@dataclass
class Settings:
    """Tracker settings. Build with ``Settings.from_env()``."""

    base_url: str = "http://localhost:3000"
    db_path: Path = Path("data/tracker.db")

    # Tracking
    retry_attempts: int = 3
    min_parse_confidence: int = 0
    low_confidence_is_error: bool = False
    product_delay_seconds: float = 1.0
    cycle_cron: str = "0 * * * *"
    default_check_interval: str = "0 0 * * *"

    # Rendering
    render_timeout_ms: int = 30000
    selector_timeout_ms: int = 10000
    settle_ms: int = 2000
    screenshot_quality: int = 80

    # Notifier fallbacks
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_secure: bool = False
    smtp_user: str | None = None
    smtp_pass: str | None = None
    smtp_from: str | None = None
    discord_webhook: str | None = None

    log_level: str = "INFO"
    log_file: str | None = None

    def __post_init__(self) -> None:
        if self.retry_attempts < 1:
            raise ConfigurationError("RETRY_ATTEMPTS must be at least 1")
        if not 0 <= self.min_parse_confidence <= 100:
            raise ConfigurationError("MIN_PARSE_CONFIDENCE must be between 0 and 100")
        if self.product_delay_seconds < 0:
            raise ConfigurationError("PRODUCT_DELAY_SECONDS must not be negative")
        if not 10 <= self.screenshot_quality <= 100:
            raise ConfigurationError("SCREENSHOT_QUALITY must be between 10 and 100")
        self.base_url = self.base_url.rstrip("/")

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from environment variables (``.env`` is loaded by main)."""
        return cls(
            base_url=os.environ.get("BASE_URL", "http://localhost:3000"),
            db_path=Path(os.environ.get("DB_PATH", "data/tracker.db")),
            retry_attempts=_env_int("RETRY_ATTEMPTS", 3),
            min_parse_confidence=_env_int("MIN_PARSE_CONFIDENCE", 0),
            low_confidence_is_error=_env_bool("LOW_CONFIDENCE_IS_ERROR", False),
            product_delay_seconds=_env_float("PRODUCT_DELAY_SECONDS", 1.0),
            cycle_cron=os.environ.get("CYCLE_CRON", "0 * * * *"),
            default_check_interval=os.environ.get("DEFAULT_CHECK_INTERVAL", "0 0 * * *"),
            render_timeout_ms=_env_int("RENDER_TIMEOUT_MS", 30000),
            selector_timeout_ms=_env_int("SELECTOR_TIMEOUT_MS", 10000),
            settle_ms=_env_int("SETTLE_MS", 2000),
            screenshot_quality=_env_int("SCREENSHOT_QUALITY", 80),
            smtp_host=os.environ.get("SMTP_HOST"),
            smtp_port=_env_int("SMTP_PORT", 587),
            smtp_secure=_env_bool("SMTP_SECURE", False),
            smtp_user=os.environ.get("SMTP_USER"),
            smtp_pass=os.environ.get("SMTP_PASS"),
            smtp_from=os.environ.get("SMTP_FROM"),
            discord_webhook=os.environ.get("DISCORD_WEBHOOK"),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            log_file=os.environ.get("LOG_FILE"),
        )
