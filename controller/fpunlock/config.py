"""Central configuration for the fingerprint unlock service."""
from __future__ import annotations

import shlex
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_ENV_FILE = ROOT_DIR / ".env"


# ============================================================
# Nested Configuration Classes
# ============================================================

class TimeoutSettings(BaseModel):
    """Bounded waits and idle thresholds (seconds)."""
    connect_seconds: float = Field(10.0, description="Max time for a single bus/manager connection attempt")
    bootstrap_seconds: float = Field(60.0, description="Total budget for the bootstrap retry loop")
    bootstrap_retry_seconds: float = Field(3.0, description="Spacing between bootstrap attempts")
    default_device_settle_seconds: float = Field(3.0, description="Wait after a hardware restart before re-querying the default device")
    verify_start_seconds: float = Field(10.0, description="Max wait for VerifyStart acknowledgment")
    restart_delay_seconds: float = Field(1.0, description="Delay before each restart step")
    force_restart_seconds: float = Field(3.0, description="Min time since last verify-start before a forced restart is honoured")
    idle_verify_seconds: float = Field(60.0, description="Re-issue verify-start (or treat round as stuck) after this long")
    idle_signal_seconds: float = Field(60.0, description="Restart when the daemon has been silent this long")
    activity_seconds: float = Field(60.0, description="Tear down instead of restarting when nobody was active this long")


class LimitSettings(BaseModel):
    """Retry budgets and disable thresholds."""
    bootstrap_attempts: int = Field(5, description="Connection attempts per bootstrap")
    default_device_attempts: int = Field(5, description="GetDefaultDevice attempts per acquisition")
    claim_attempts: int = Field(3, description="Claim attempts before a hardware restart")
    unknown_error_streak: int = Field(3, description="Consecutive unknown errors tolerated before restarting")
    max_fail_count: int = Field(10, description="No-match results before the subsystem is disabled")
    max_restart_count: int = Field(3, description="Restart cycles before the subsystem is disabled")


class HardwareSettings(BaseModel):
    """USB power-cycle command configuration."""
    restart_command: List[str] = Field(
        default_factory=lambda: ["sudo", "/usr/local/bin/vh-special-sudo", "restart-fingerprint"],
        description="Command that power-cycles the fingerprint reader",
    )
    full_argument: str = Field("full", description="Argument appended for a full reset")
    cooldown_seconds: float = Field(3.0, description="Debounce window for restarts")
    wait_timeout_seconds: float = Field(5.0, description="Max wait for a restart command to finish")

    @field_validator("restart_command", mode="before")
    @classmethod
    def _split_command(cls, value: object) -> object:
        if isinstance(value, str):
            return shlex.split(value)
        return value


class FprintdSettings(BaseModel):
    """fprintd bus addressing."""
    bus_name: str = Field("net.reactivated.Fprint", description="Well-known bus name of fprintd")
    manager_path: str = Field("/net/reactivated/Fprint/Manager", description="Object path of the fprintd manager")
    finger: str = Field("any", description="Finger name passed to VerifyStart")
    username: str = Field("", description="User passed to Claim (empty means the caller)")


class Settings(BaseSettings):
    """Environment-driven settings for the unlock service."""

    # Controller HTTP Server
    controller_host: str = Field("127.0.0.1", description="Host interface for local FastAPI server")
    controller_port: int = Field(5010, description="Port for FastAPI server")

    # Session driving
    auto_poll: bool = Field(False, description="Poll the session from a background loop instead of the lock UI")
    poll_interval_seconds: float = Field(0.5, description="Background poll cadence when auto_poll is enabled")
    watch_sleep: bool = Field(True, description="Follow logind PrepareForSleep to suspend/resume the session")
    ui_event_queue_size: int = Field(8, description="Max buffered status events per UI subscriber")

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_directory: Path = Field(ROOT_DIR / "logs", description="Log directory path")
    log_retention_days: int = Field(14, description="Number of log files to retain")
    logger_levels: Dict[str, str] = Field(
        default_factory=lambda: {"dbus_fast": "WARNING"},
        description="Per-logger level overrides, e.g. to quiet the bus library",
    )

    # Nested Configuration Objects
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings, description="Bounded waits")
    limits: LimitSettings = Field(default_factory=LimitSettings, description="Retry budgets and thresholds")
    hardware: HardwareSettings = Field(default_factory=HardwareSettings, description="Hardware recovery")
    fprintd: FprintdSettings = Field(default_factory=FprintdSettings, description="fprintd addressing")

    model_config = SettingsConfigDict(
        env_file=str(DEFAULT_ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings(override_env_file: Optional[Path] = None) -> Settings:
    """Cached Settings instance; accepts optional env override for tests."""

    if override_env_file:
        return Settings(_env_file=str(override_env_file))
    return Settings()
