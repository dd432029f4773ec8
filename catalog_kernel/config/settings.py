"""
Configuration management using Pydantic Settings.

Every value can be set through a ``CATALOG_``-prefixed environment variable,
e.g. ``CATALOG_DATADIR=/etc/catalog/data`` or
``CATALOG_HIERARCHY='["nodes/%{certname}", "common"]'``.
"""

from functools import lru_cache
from typing import List, Optional

from croniter import croniter
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from catalog_kernel.lookup.service import DEFAULT_HIERARCHY
from catalog_kernel.models.agent import AgentConfig


class KernelSettings(BaseSettings):
    """Process-level settings."""

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Lookup data
    datadir: Optional[str] = Field(default=None, description="YAML hierarchy datadir")
    hierarchy: List[str] = Field(
        default_factory=lambda: list(DEFAULT_HIERARCHY),
        description="Level templates, most specific first",
    )

    # Roles and classification
    site_file: Optional[str] = Field(default=None, description="Site YAML with roles and rules")

    # Reports
    report_db_path: str = Field(default=":memory:", description="SQLite path for run reports")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="'json' or 'text'")

    # Agent
    run_interval_seconds: int = Field(default=1800, ge=1)
    run_schedule: Optional[str] = Field(default=None, description="Cron expression")
    run_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    noop: bool = False

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, v: str) -> str:
        if v not in ("json", "text"):
            raise ValueError(f"log_format must be 'json' or 'text', got {v!r}")
        return v

    @field_validator("run_schedule")
    @classmethod
    def _valid_cron(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not croniter.is_valid(v):
            raise ValueError(f"Invalid cron expression: {v!r}")
        return v

    def agent_config(self) -> AgentConfig:
        return AgentConfig(
            run_interval_seconds=self.run_interval_seconds,
            run_schedule=self.run_schedule,
            run_timeout_seconds=self.run_timeout_seconds,
            noop=self.noop,
        )


@lru_cache()
def get_settings() -> KernelSettings:
    """Cached settings instance."""
    return KernelSettings()
