"""
Run Tracker for the Cluster Status ETL

Keeps per-run statistics and the per-row load results, so a caller can tell
a clean run from a partial one without reading logs.

Usage:
    from shared.run_tracker import RunTracker

    tracker = RunTracker('backup_inventory.cluster_status')
    tracker.start()
    tracker.record_row(result)
    summary = tracker.complete()
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class RowResult:
    """Outcome of loading one record"""
    cluster_id: Optional[str]
    success: bool
    target_table: str
    error: Optional[Exception] = None


@dataclass
class RunSummary:
    """Final state of one run"""
    target: str
    status: str
    started_at: datetime
    completed_at: datetime
    duration_seconds: float
    records_received: int = 0
    records_discarded: int = 0
    records_processed: int = 0
    records_loaded: int = 0
    records_failed: int = 0
    rows_merged: int = 0
    destination_rows: Optional[int] = None
    staging_table: Optional[str] = None
    error_message: Optional[str] = None
    row_results: List[RowResult] = field(default_factory=list)

    @property
    def failed_rows(self) -> List[RowResult]:
        return [r for r in self.row_results if not r.success]


class RunTracker:
    """Tracks one ETL run from start to completion or failure"""

    STATUS_SUCCESS = 'success'
    STATUS_PARTIAL = 'partial'
    STATUS_FAILED = 'failed'

    def __init__(self, target: str):
        """
        Args:
            target: Qualified destination table (schema.table)
        """
        self.target = target
        self.stats = {
            'received': 0,
            'discarded': 0,
            'processed': 0,
            'loaded': 0,
            'failed': 0,
            'merged': 0
        }
        self.row_results: List[RowResult] = []
        self.started_at: Optional[datetime] = None
        self.staging_table: Optional[str] = None
        self.destination_rows: Optional[int] = None
        self.logger = logging.getLogger(f"RunTracker.{target}")

    def start(self) -> datetime:
        """Mark run as started"""
        self.started_at = datetime.utcnow()
        self.logger.info(f"Run started at {self.started_at.isoformat()}Z")
        return self.started_at

    def set_received(self, received: int, discarded: int = 0):
        self.stats['received'] = received
        self.stats['discarded'] = discarded

    def record_row(self, result: RowResult):
        """Add one row outcome"""
        self.row_results.append(result)
        self.stats['processed'] += 1
        if result.success:
            self.stats['loaded'] += 1
        else:
            self.stats['failed'] += 1

    def set_merged(self, count: int):
        self.stats['merged'] = count

    def complete(self, merge_ok: bool = True, error_message: str = None) -> RunSummary:
        """
        Mark run as finished. The status is partial when rows failed or the
        merge did not go through.
        """
        status = self.STATUS_SUCCESS
        if self.stats['failed'] or not merge_ok:
            status = self.STATUS_PARTIAL
        return self._finish(status, error_message)

    def fail(self, error_message: str) -> RunSummary:
        """Mark run as failed with error message"""
        return self._finish(self.STATUS_FAILED, error_message)

    def _finish(self, status: str, error_message: str = None) -> RunSummary:
        completed_at = datetime.utcnow()
        started_at = self.started_at or completed_at
        duration = (completed_at - started_at).total_seconds()

        summary = RunSummary(
            target=self.target,
            status=status,
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=duration,
            records_received=self.stats['received'],
            records_discarded=self.stats['discarded'],
            records_processed=self.stats['processed'],
            records_loaded=self.stats['loaded'],
            records_failed=self.stats['failed'],
            rows_merged=self.stats['merged'],
            staging_table=self.staging_table,
            destination_rows=self.destination_rows,
            error_message=error_message,
            row_results=list(self.row_results)
        )

        self.logger.info(f"Run finished at {completed_at.isoformat()}Z with status '{status}'")
        return summary
