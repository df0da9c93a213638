"""Configuration management for duedesk."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .core.calendar import CalendarWindow

logger = logging.getLogger(__name__)

DUEDESK_HOME = Path(os.environ.get("DUEDESK_HOME", Path.home() / "duedesk"))
CONFIG_FILE = DUEDESK_HOME / "config" / "duedesk.conf"
DATA_DIR = DUEDESK_HOME / "data"


@dataclass
class Config:
    """duedesk configuration."""

    timezone: str = "Asia/Kolkata"
    data_dir: str = ""
    calendar_id: str = "primary"
    calendar_start_hour: int = 10
    calendar_end_hour: int = 12
    google_token_file: str = ""
    google_client_secret_file: str = ""
    google_client_id: str = ""
    mail_from: str = ""
    mail_signature: str = "Compliance Team"
    default_trigger_days: int = 15
    digest_window_days: int = 30
    digest_internal_emails: list[str] = field(default_factory=list)
    digest_to_assignees: bool = True
    daily_job_time: str = "05:00"
    client_start_job_time: str = "08:15"
    bulk_max_ids: int = 2000
    store_batch_limit: int = 350
    log_level: str = "INFO"

    @property
    def data_path(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir).expanduser()
        return DATA_DIR

    @property
    def token_path(self) -> Path:
        if self.google_token_file:
            return Path(self.google_token_file).expanduser()
        return DUEDESK_HOME / "config" / "token.json"

    @property
    def calendar_window(self) -> CalendarWindow:
        return CalendarWindow(
            start_hour=self.calendar_start_hour,
            end_hour=self.calendar_end_hour,
            timezone=self.timezone,
        )


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "y", "on")


def _int(key: str, value: str, fallback: int) -> int:
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {key.upper()}: {value!r}, using {fallback}")
        return fallback


def parse_job_time(value: str) -> tuple[int, int]:
    """Parse HH:MM into (hour, minute). Raises ValueError."""
    hour_str, minute_str = value.strip().split(":")
    hour, minute = int(hour_str), int(minute_str)
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Out of range time: {value}")
    return hour, minute


def load_config(path: Path | None = None) -> Config:
    """Load configuration from duedesk.conf file."""
    config = Config()
    path = path or CONFIG_FILE

    if not path.exists():
        return config

    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip().lower()
        value = value.strip()

        # Handle quoted values with inline comments: "value" # comment
        if value.startswith('"') or value.startswith("'"):
            quote = value[0]
            end_quote = value.find(quote, 1)
            value = value[1:end_quote] if end_quote != -1 else value[1:]
        elif "#" in value:
            value = value.split("#")[0].strip()

        match key:
            case "timezone":
                config.timezone = value
            case "data_dir":
                config.data_dir = value
            case "calendar_id":
                config.calendar_id = value
            case "calendar_start_hour":
                config.calendar_start_hour = _int(key, value, config.calendar_start_hour)
            case "calendar_end_hour":
                config.calendar_end_hour = _int(key, value, config.calendar_end_hour)
            case "google_token_file":
                config.google_token_file = value
            case "google_client_secret_file":
                config.google_client_secret_file = value
            case "google_client_id":
                config.google_client_id = value
            case "mail_from":
                config.mail_from = value
            case "mail_signature":
                config.mail_signature = value
            case "default_trigger_days":
                config.default_trigger_days = _int(key, value, config.default_trigger_days)
            case "digest_window_days":
                config.digest_window_days = _int(key, value, config.digest_window_days)
            case "digest_internal_emails":
                config.digest_internal_emails = [e.strip() for e in value.split(",") if e.strip()]
            case "digest_to_assignees":
                config.digest_to_assignees = _truthy(value)
            case "daily_job_time":
                config.daily_job_time = value
            case "client_start_job_time":
                config.client_start_job_time = value
            case "bulk_max_ids":
                config.bulk_max_ids = _int(key, value, config.bulk_max_ids)
            case "store_batch_limit":
                config.store_batch_limit = _int(key, value, config.store_batch_limit)
            case "log_level":
                config.log_level = value.upper()
            case _:
                logger.warning(f"Unknown config key: {key.upper()}")

    return config
