from __future__ import annotations

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BootstrapSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="HOSTKIT_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    allow_override: bool = Field(
        default=True,
        description="Duplicate registration policy: True means last write wins.",
    )
    diagnostics_enabled: bool = True
    log_level: str = Field(default="INFO", min_length=1)
    # Let the bootstrapper configure structlog when the host has not done so.
    manage_logging: bool = True


@lru_cache(maxsize=1)
def get_settings() -> BootstrapSettings:
    load_dotenv(override=False)
    return BootstrapSettings()
