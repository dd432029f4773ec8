"""
Report Store — append-only, hash-chained record of agent runs.

Behavioral Contract:
- Append-only. No report is ever modified or deleted.
- Each report is hashed and chained to the previous one (tamper-evident).
- Queryable by certname, failure status, and recency.
"""

import hashlib
import json
import logging
import sqlite3
import threading
from typing import List, Optional

from catalog_kernel.models.report import RunReport, RunStatus

logger = logging.getLogger(__name__)


def _sign(report: RunReport) -> str:
    report_dict = report.model_dump(mode="json")
    report_dict["signature"] = ""
    raw = json.dumps(report_dict, sort_keys=True, default=str).encode()
    return hashlib.sha256(raw).hexdigest()


class ReportStore:
    """
    Run reports in SQLite. ``:memory:`` by default; pass a file path to keep
    reports across restarts.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS reports (
                id TEXT PRIMARY KEY,
                certname TEXT NOT NULL,
                status TEXT NOT NULL,
                noop INTEGER NOT NULL DEFAULT 0,
                role TEXT,
                catalog_digest TEXT,
                error_code TEXT,
                started_at TEXT NOT NULL,
                finished_at TEXT NOT NULL,
                signature TEXT NOT NULL,
                prior_report_hash TEXT,
                report_json TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_reports_certname ON reports(certname)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_reports_status ON reports(status)
        """)
        self._conn.commit()

    def append(self, report: RunReport) -> RunReport:
        """Chain, sign and store a report. Returns it with integrity fields set."""
        with self._lock:
            report.prior_report_hash = self._get_latest_hash()
            report.signature = _sign(report)

            self._conn.execute(
                """
                INSERT INTO reports (
                    id, certname, status, noop, role, catalog_digest, error_code,
                    started_at, finished_at, signature, prior_report_hash, report_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    report.id,
                    report.certname,
                    report.status.value,
                    int(report.noop),
                    report.role,
                    report.catalog_digest,
                    report.error_code,
                    report.started_at.isoformat(),
                    report.finished_at.isoformat(),
                    report.signature,
                    report.prior_report_hash,
                    report.model_dump_json(),
                ),
            )
            self._conn.commit()
        logger.debug("Stored report %s for %s (%s)", report.id, report.certname, report.status.value)
        return report

    def _get_latest_hash(self) -> Optional[str]:
        row = self._conn.execute(
            "SELECT signature FROM reports ORDER BY rowid DESC LIMIT 1"
        ).fetchone()
        return row["signature"] if row else None

    def _deserialize(self, row: sqlite3.Row) -> RunReport:
        return RunReport.model_validate_json(row["report_json"])

    def get_by_id(self, report_id: str) -> Optional[RunReport]:
        row = self._conn.execute(
            "SELECT report_json FROM reports WHERE id = ?", (report_id,)
        ).fetchone()
        return self._deserialize(row) if row else None

    def query_by_certname(self, certname: str) -> List[RunReport]:
        """All runs of one node, oldest first."""
        rows = self._conn.execute(
            "SELECT report_json FROM reports WHERE certname = ? ORDER BY rowid",
            (certname,),
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def latest_for(self, certname: str) -> Optional[RunReport]:
        row = self._conn.execute(
            "SELECT report_json FROM reports WHERE certname = ? "
            "ORDER BY rowid DESC LIMIT 1",
            (certname,),
        ).fetchone()
        return self._deserialize(row) if row else None

    def query_failed(self) -> List[RunReport]:
        rows = self._conn.execute(
            "SELECT report_json FROM reports WHERE status = ? ORDER BY rowid",
            (RunStatus.FAILED.value,),
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def query_recent(self, limit: int = 50) -> List[RunReport]:
        rows = self._conn.execute(
            "SELECT report_json FROM reports ORDER BY rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._deserialize(r) for r in reversed(rows)]

    def verify_chain_integrity(self) -> bool:
        """Verify no report has been altered and the chain is unbroken."""
        rows = self._conn.execute(
            "SELECT report_json, signature FROM reports ORDER BY rowid"
        ).fetchall()

        prior_sig: Optional[str] = None
        for row in rows:
            report = self._deserialize(row)
            if report.signature != row["signature"] or _sign(report) != report.signature:
                return False
            if report.prior_report_hash != prior_sig:
                return False
            prior_sig = report.signature
        return True

    def count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS cnt FROM reports").fetchone()
        return row["cnt"]

    def close(self) -> None:
        self._conn.close()
