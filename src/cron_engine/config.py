"""Engine settings loaded from environment variables."""

import logging
import os
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cron_engine.domain.job import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY_MS, DEFAULT_TIMEOUT_MS


def _env_file() -> Optional[str]:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Cron engine configuration. All values come from ``CRON_ENGINE_*`` environment variables."""

    database_url: str = Field(default="sqlite+aiosqlite:///./cron_jobs.db")

    # Defaults applied to jobs created without explicit values
    default_timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    default_max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    default_retry_delay_ms: int = Field(default=DEFAULT_RETRY_DELAY_MS, ge=0)

    # How long stop() waits for in-flight executions before cancelling them
    shutdown_grace_seconds: float = Field(default=5.0, ge=0)

    # Notifications
    alert_webhook_url: str = Field(default="")
    admin_recipients: str = Field(default="")

    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="CRON_ENGINE_",
        env_file=_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_admin_recipients(self) -> List[str]:
        """Parse the comma-separated admin recipient list."""
        return [r.strip() for r in self.admin_recipients.split(",") if r.strip()]


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
