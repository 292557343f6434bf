import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Scheduler trigger (shared secret sent as X-Cron-Secret)
    CRON_SECRET: Optional[str] = None

    # Sweep
    SWEEP_HABIT_SOFT_TIMEOUT_MS: int = 2000
    WEEKLY_SWEEP_WEEKDAY: int = 0  # Monday, the day after week close

    # Dashboard
    MOMENTUM_HISTORY_MAX_DAYS: int = 365

    # Retention cleanup
    RECORD_RETENTION_DAYS: int = 365
    RECORD_CLEANUP_DRY_RUN: bool = True

    # CORS
    CORS_ALLOW_ORIGINS: str = "http://localhost:3000"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("habitmomentum")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "CRON_SECRET",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
