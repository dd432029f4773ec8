"""
Agent — one node's run loop.

Each run:
  collect facts -> compile catalog -> apply -> report

Runs are synchronous and run to completion. A compile failure aborts the run
before anything is applied and is still reported. Between runs the agent
waits for the fixed interval, or for the next cron fire time when a
schedule is configured.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Protocol, Union
from uuid import uuid4

from croniter import croniter

from catalog_kernel.apply.engine import ReconciliationEngine
from catalog_kernel.compiler.compiler import CatalogCompiler
from catalog_kernel.errors import CatalogError
from catalog_kernel.models.agent import AgentConfig
from catalog_kernel.models.node import Node
from catalog_kernel.models.report import ResourceOutcome, RunReport, RunStatus
from catalog_kernel.reports.store import ReportStore

logger = logging.getLogger(__name__)


class FactSource(Protocol):
    """Supplies a read-only fact snapshot before each run."""

    def collect(self) -> Node: ...


class StaticFactSource:
    """A fixed set of facts, e.g. from a test or an API request."""

    def __init__(self, certname: str, facts: Optional[Dict[str, Any]] = None):
        self.certname = certname
        self.facts = dict(facts or {})

    def collect(self) -> Node:
        return Node(certname=self.certname, facts=self.facts)


def next_run_at(config: AgentConfig, last_run: datetime) -> datetime:
    """When the run after ``last_run`` is due."""
    if config.run_schedule:
        return croniter(config.run_schedule, last_run).get_next(datetime)
    return last_run + timedelta(seconds=config.run_interval_seconds)


class Agent:
    """Compiles, applies and reports for nodes, once or on a timer."""

    def __init__(
        self,
        compiler: CatalogCompiler,
        engine: ReconciliationEngine,
        report_store: ReportStore,
        config: Optional[AgentConfig] = None,
    ):
        self.compiler = compiler
        self.engine = engine
        self.report_store = report_store
        self.config = config or AgentConfig()
        self._running = False
        self._last_run: Dict[str, datetime] = {}

    @property
    def status(self) -> str:
        return "running" if self._running else "stopped"

    def last_run(self, certname: str) -> Optional[datetime]:
        return self._last_run.get(certname)

    def is_run_due(self, certname: str, current_time: Optional[datetime] = None) -> bool:
        """True if the node has never run or its next run time has passed."""
        last = self._last_run.get(certname)
        if last is None:
            return True
        if current_time is None:
            current_time = datetime.now(timezone.utc)
        elif current_time.tzinfo is None:
            # Naive times are taken as UTC, the zone run times are kept in
            current_time = current_time.replace(tzinfo=timezone.utc)
        return current_time >= next_run_at(self.config, last)

    def run_once(
        self,
        source: Union[FactSource, Node],
        noop: Optional[bool] = None,
    ) -> RunReport:
        """Run compile, apply and report for one node. Always returns a report."""
        node = source if isinstance(source, Node) else source.collect()
        noop = self.config.noop if noop is None else noop
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()

        report_fields: Dict[str, Any] = {}
        try:
            catalog = self.compiler.compile(node)
        except CatalogError as e:
            logger.warning("Run for %s aborted: %s", node.certname, e.detail)
            status = RunStatus.FAILED
            report_fields.update(
                error_code=e.code,
                error_subject=e.subject,
                error_detail=e.detail,
            )
            statuses = []
        else:
            report_fields.update(
                role=catalog.role,
                catalog_digest=catalog.digest,
                resource_count=len(catalog.resources),
            )
            try:
                statuses = self.engine.apply(catalog, noop=noop)
            except CatalogError as e:
                logger.warning("Apply for %s aborted: %s", node.certname, e.detail)
                statuses = []
                report_fields.update(
                    error_code=e.code,
                    error_subject=e.subject,
                    error_detail=e.detail,
                )
            status = _run_status(statuses, report_fields.get("error_code"))

        finished_at = datetime.now(timezone.utc)
        report = RunReport(
            id=f"run_{uuid4().hex[:12]}",
            certname=node.certname,
            status=status,
            noop=noop,
            resource_statuses=statuses,
            started_at=started_at,
            finished_at=finished_at,
            duration_seconds=round(time.monotonic() - start, 3),
            **report_fields,
        )
        self.report_store.append(report)
        self._last_run[node.certname] = started_at

        logger.info(
            "Run %s for %s finished: %s (%d changed, %d failed)",
            report.id, node.certname, report.status.value,
            report.count(ResourceOutcome.CHANGED), report.count(ResourceOutcome.FAILED),
        )
        return report

    async def run_async(
        self,
        source: FactSource,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Run on the configured interval or schedule until ``stop_event`` is set."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                report = self.run_once(source)
                due = next_run_at(self.config, self._last_run[report.certname])
                wait = max(0.0, (due - datetime.now(timezone.utc)).total_seconds())
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=wait)
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False


def _run_status(statuses, error_code: Optional[str]) -> RunStatus:
    if error_code or any(
        s.outcome in (ResourceOutcome.FAILED, ResourceOutcome.SKIPPED) for s in statuses
    ):
        return RunStatus.FAILED
    if any(s.outcome == ResourceOutcome.CHANGED for s in statuses):
        return RunStatus.CHANGED
    return RunStatus.UNCHANGED
