"""Agent configuration."""

from typing import Optional

from pydantic import BaseModel, Field


class AgentConfig(BaseModel):
    """Configuration for agent runs."""

    run_interval_seconds: int = Field(default=1800, ge=1)
    run_schedule: Optional[str] = None      # Cron expression, replaces the interval
    run_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    noop: bool = False                      # Report changes without applying them
