"""Run reports — what one agent run compiled, changed, and failed."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel


class ResourceOutcome(str, Enum):
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    NOOP = "noop"           # Would have changed; noop run
    FAILED = "failed"
    SKIPPED = "skipped"     # A dependency failed


class RunStatus(str, Enum):
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    FAILED = "failed"


class ResourceStatus(BaseModel):
    """Outcome of reconciling a single assertion."""

    ref: str                                # e.g., "File[/etc/motd]"
    outcome: ResourceOutcome
    changes: Dict[str, dict] = {}           # attribute -> {"from": ..., "to": ...}
    message: Optional[str] = None


class RunReport(BaseModel):
    """
    The record of one agent run. One per node per run, whether the
    catalog compiled or not.
    """

    id: str
    certname: str
    status: RunStatus
    noop: bool = False

    # COMPILE
    role: Optional[str] = None
    catalog_digest: Optional[str] = None
    resource_count: int = 0
    error_code: Optional[str] = None        # Machine-readable, from CatalogError.code
    error_subject: Optional[str] = None
    error_detail: Optional[str] = None      # Human-readable

    # APPLY
    resource_statuses: List[ResourceStatus] = []

    # META
    started_at: datetime
    finished_at: datetime
    duration_seconds: float = 0.0

    # INTEGRITY
    signature: str = ""
    prior_report_hash: Optional[str] = None

    def count(self, outcome: ResourceOutcome) -> int:
        return sum(1 for s in self.resource_statuses if s.outcome == outcome)
