"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """DoseClock server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Default to loopback; the server has no auth layer and holds a live alarm.
    doseclock_host: str = "127.0.0.1"
    doseclock_port: int = 8003
    doseclock_log_level: str = "info"
    doseclock_allow_insecure_bind: bool = False

    # Regimen (static dose definitions)
    # `regimen_path` wins over `regimen` when set.
    regimen: Literal["standard", "demo"] = "standard"
    regimen_path: str = ""

    # Alarm engine
    tick_interval_seconds: float = 1.0
    alarm_threshold_percent: int = 100
    repeat_signal: bool = True


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
