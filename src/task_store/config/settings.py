"""Runtime settings."""

from functools import lru_cache
import os
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Storage settings loaded from environment variables."""

    table_name: str = Field(default="tasks", min_length=1)
    region_name: str = ""
    endpoint_url: str = ""
    max_workers: int = Field(default=8, ge=1)
    max_pagination_rounds: int | None = Field(default=64, ge=1)
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="TASK_STORE_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    @field_validator("max_pagination_rounds", mode="before")
    @classmethod
    def _parse_unbounded(cls, value: Any) -> Any:
        # TASK_STORE_MAX_PAGINATION_ROUNDS="" or "none" disables the cap.
        if isinstance(value, str) and value.strip().lower() in {"", "none"}:
            return None
        return value

    def resolved_region_name(self) -> str:
        return (
            self.region_name
            or os.getenv("AWS_REGION", "")
            or os.getenv("AWS_DEFAULT_REGION", "")
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
