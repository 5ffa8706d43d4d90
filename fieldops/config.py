"""Field ops configuration via pydantic-settings."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic_settings import BaseSettings


class FieldOpsSettings(BaseSettings):
    environment: str = "development"
    app_title: str = "Field Ops"
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///fieldops.db"
    echo_sql: bool = False
    sqlite_busy_timeout_ms: int = 5000

    # Canvass interactions created within this window are updated in place.
    interaction_session_window_seconds: int = 7200

    # Change ledger / notifier
    change_page_limit: int = 100
    change_poll_interval_seconds: float = 2.0
    notifier_enabled: bool = True

    # Live channel
    live_queue_size: int = 256
    live_reconnect_delay_seconds: float = 5.0
    live_reconnect_jitter_seconds: float = 1.0

    seed_default_fields: bool = True

    model_config = {"env_prefix": "FIELDOPS_", "env_file": ".env", "extra": "ignore"}

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent

    @property
    def alembic_ini(self) -> Path:
        return self.base_dir / "alembic.ini"

    @property
    def interaction_session_window(self) -> timedelta:
        return timedelta(seconds=self.interaction_session_window_seconds)

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = FieldOpsSettings()
