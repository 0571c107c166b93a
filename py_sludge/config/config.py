from pathlib import Path
from dotenv import dotenv_values
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

import os

# Explicitly load .env for local/dev environments only if values are missing from the environment
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_file = BASE_DIR / ".env"

if env_file.exists():
    file_env = dotenv_values(env_file)
    missing_keys = {k: v for k, v in file_env.items() if k not in os.environ and v is not None}
    for k, v in missing_keys.items():
        os.environ[k] = v


class Settings(BaseSettings):
    """Application settings pulled from SLUDGE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SLUDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Logging format (plain or json)")

    # World Configuration
    default_world_width: int = Field(default=100, gt=0, description="Default world width in cells")
    default_world_height: int = Field(default=100, gt=0, description="Default world height in cells")
    max_world_width: int = Field(default=1024, gt=0, description="Max allowed world width")
    max_world_height: int = Field(default=1024, gt=0, description="Max allowed world height")

    # Scheduling Configuration
    tick_rate_hz: float = Field(default=20.0, gt=0, description="Fluid simulation ticks per second")
    broadcast_rate_hz: float = Field(default=10.0, gt=0, description="Snapshot broadcasts per second")
    max_catch_up_ticks: int = Field(default=5, ge=1, description="Max ticks run per advance() call")

    # Transmission Configuration
    compress_snapshots: bool = Field(default=False, description="Run-length encode broadcast snapshots")

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("plain", "json"):
            raise ValueError(f"log_format must be 'plain' or 'json', got {value!r}")
        return value


# Instantiate singleton settings object
settings = Settings()
