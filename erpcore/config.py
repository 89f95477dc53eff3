"""Runtime configuration loaded from ERPCORE_* environment variables."""

import json
from pathlib import Path
from typing import Optional, Union
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from .models import RetryPolicy


class Settings(BaseSettings):
    """Retry, circuit breaker and storage settings."""

    model_config = SettingsConfigDict(env_prefix="ERPCORE_", extra="ignore")

    data_dir: str = ".erpcore"
    log_level: str = "WARNING"

    # retry policy, delays in milliseconds
    max_retries: int = Field(default=3, ge=0)
    base_delay_ms: float = Field(default=1000, ge=0)
    max_delay_ms: float = Field(default=10000, ge=0)
    exponential_base: float = Field(default=2.0, ge=0)

    # circuit breaker
    failure_threshold: int = Field(default=5, ge=1)
    recovery_time_ms: float = Field(default=60000, ge=0)

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy described by these settings."""
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay_ms,
            max_delay=self.max_delay_ms,
            exponential_base=self.exponential_base,
        )


def load_settings(data_dir: Optional[Union[str, Path]] = None) -> Settings:
    """Settings from the environment with values saved by `erpcore config set` on top.

    Reads the data directory without creating it.
    """
    data_dir = Path(data_dir or Settings().data_dir)
    config_file = data_dir / "config.json"
    overrides = {}
    if config_file.exists():
        with open(config_file, "r") as f:
            overrides = json.load(f)
    return Settings(**overrides)


# Keys accepted by `erpcore config set`, mapped to Settings fields.
CONFIG_KEYS = {
    "max-retries": ("max_retries", int),
    "base-delay": ("base_delay_ms", float),
    "max-delay": ("max_delay_ms", float),
    "exponential-base": ("exponential_base", float),
    "failure-threshold": ("failure_threshold", int),
    "recovery-time": ("recovery_time_ms", float),
    "log-level": ("log_level", str),
}
