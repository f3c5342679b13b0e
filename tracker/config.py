"""
Application Configuration.

Pydantic Settings model for the affiliate tracker.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")

    # --- Local cache ---
    SQLITE_PATH: Path = Path("tracker_local.db")

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "tracker.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    # --- Reporting windows ---
    DEFAULT_WINDOW_DAYS: int = Field(default=30, ge=1)
    WINDOW_PRESETS: tuple[int, ...] = (7, 30, 90)

    # --- Incentives ---
    CURRENCY: str = "IDR"
    SEED_DEFAULT_RULES: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Log a startup warning when critical configuration is empty."""
        _log = logging.getLogger("tracker.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; configuration loaded from "
                "environment variables or defaults."
            )

        if not self.SUPABASE_URL:
            _log.warning(
                "SUPABASE_URL is empty. Supabase connectivity is disabled "
                "and the tracker will operate on the local cache only."
            )

        if self.DEFAULT_WINDOW_DAYS not in self.WINDOW_PRESETS:
            _log.warning(
                "DEFAULT_WINDOW_DAYS=%d is not one of the presets %s.",
                self.DEFAULT_WINDOW_DAYS,
                self.WINDOW_PRESETS,
            )

        return self


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Uses a check-lock-check pattern so the fast path takes no lock while
    first initialisation stays thread-safe.  Prefer constructor injection
    of ``AppConfig`` in new code.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
