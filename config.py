# config.py
"""Environment driven settings.

Loaded once on import so the rest of the code never calls os.getenv directly.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(slots=True)
class Settings:
    mongodb_uri: str = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
    mongodb_db: str = os.getenv("MONGODB_DB", "bus_schedules")
    timezone: str = os.getenv("SCHEDULE_TIMEZONE", "UTC")

    window_days: int = int(os.getenv("WINDOW_DAYS", "14"))
    past_due_hours: float = float(os.getenv("PAST_DUE_HOURS", "2"))
    auto_missed_hours: float = float(os.getenv("AUTO_MISSED_HOURS", "4"))
    archive_after_days: float = float(os.getenv("ARCHIVE_AFTER_DAYS", "5"))
    write_batch_size: int = int(os.getenv("WRITE_BATCH_SIZE", "500"))

    monitor_interval_seconds: int = int(os.getenv("MONITOR_INTERVAL_SECONDS", "60"))
    monitor_enabled: bool = _flag("MONITOR_ENABLED")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
