"""
Cluster Status ETL pipeline
Loads one batch of cluster status records into the destination table through
a per-run staging table and a single merge statement
"""

import logging
from typing import Dict, Iterable

import psycopg2

from cluster_etl.config import DATABASE_CONFIG, validate_identifier
from cluster_etl.exceptions import ClusterETLError
from cluster_etl.housekeeping import truncate_all
from cluster_etl.loader import RowLoader
from cluster_etl.merge import MergeEngine
from cluster_etl.schema import SchemaManager
from cluster_etl.source import filter_identified
from cluster_etl.staging import StagingCoordinator
from shared.run_tracker import RunTracker, RunSummary


class ClusterStatusETL:
    """
    ETL pipeline for cluster status snapshots

    Features:
    - Destination table created on first run
    - Optional purge of existing rows
    - Per-run staging table, merged in one statement
    - Direct-write mode when staging is skipped
    - Per-row failure isolation with a result per row
    """

    def __init__(
        self,
        db,
        schema: str = None,
        table_name: str = None,
        drop_existing_rows: bool = False,
        skip_staging: bool = False
    ):
        """
        Initialize ETL pipeline

        Args:
            db: Open DatabaseManager, owned by the caller
            schema: Destination schema
            table_name: Destination table
            drop_existing_rows: Delete every destination row before loading
            skip_staging: Write straight into the destination (no merge)
        """
        self.db = db
        self.schema = validate_identifier(schema or DATABASE_CONFIG['schema'], 'schema name')
        self.table_name = validate_identifier(table_name or DATABASE_CONFIG['table_name'], 'table name')
        self.drop_existing_rows = drop_existing_rows
        self.skip_staging = skip_staging

        self.schema_mgr = SchemaManager(db, self.schema, self.table_name)
        self.staging = StagingCoordinator(db, self.schema, self.table_name)
        self.merge_engine = MergeEngine(db, self.staging)

        self.logger = logging.getLogger(f"ETL.{self.schema}.{self.table_name}")

    @property
    def target(self) -> str:
        return f"{self.schema}.{self.table_name}"

    def run(self, records: Iterable[Dict]) -> RunSummary:
        """
        Execute one load.

        Store failures never escape: the returned summary carries status
        'success', 'partial' (failed rows or failed merge) or 'failed'
        (schema or staging could not be set up).
        """
        tracker = RunTracker(self.target)
        run_timestamp = tracker.start()
        handle = None

        self.logger.info(f"="*60)
        self.logger.info(f"Starting load: {self.target}")
        self.logger.info(f"Staging: {'off' if self.skip_staging else 'on'}, "
                         f"drop existing rows: {'yes' if self.drop_existing_rows else 'no'}")
        self.logger.info(f"="*60)

        records = list(records)
        kept, discarded = filter_identified(records)
        tracker.set_received(len(records), discarded)
        if discarded:
            self.logger.warning(f"Discarded {discarded} records without a cluster_id")

        try:
            self.schema_mgr.ensure_table()

            if self.drop_existing_rows:
                truncate_all(self.db, self.schema, self.table_name)

            if self.skip_staging:
                target_table = self.table_name
            else:
                handle = self.staging.begin_staging()
                tracker.staging_table = handle.qualified_name
                target_table = handle.table_name

            loader = RowLoader(self.db, self.schema, run_timestamp)
            loader.load_rows(target_table, kept, tracker=tracker)

        except ClusterETLError as e:
            self.logger.error(f"Load aborted: {e}")
            summary = tracker.fail(str(e))
            self._log_summary(summary)
            return summary
        except Exception as e:
            tracker.fail(str(e))
            self.logger.error(f"Load failed: {e}", exc_info=True)
            raise

        merge_ok = True
        merge_error = None
        if handle is not None:
            rows_before = self._destination_count()
            merge_ok = self.merge_engine.commit(handle)
            if merge_ok:
                tracker.set_merged(self.merge_engine.rows_merged)
                if self.merge_engine.staging_dropped:
                    tracker.staging_table = None
            else:
                merge_error = str(self.merge_engine.last_error)

        tracker.destination_rows = self._destination_count()
        if handle is not None:
            self.logger.info(f"Destination rows: {rows_before} before merge, "
                             f"{tracker.destination_rows} after")

        summary = tracker.complete(merge_ok=merge_ok, error_message=merge_error)
        self._log_summary(summary)
        return summary

    def _destination_count(self):
        try:
            return self.schema_mgr.row_count()
        except psycopg2.Error as e:
            self.logger.warning(f"Could not count rows in {self.target}: {e}")
            return None

    def _log_summary(self, summary: RunSummary):
        self.logger.info(f"="*60)
        self.logger.info(f"Load Complete: {summary.status.upper()}")
        self.logger.info(f"="*60)
        self.logger.info(f"Started: {summary.started_at.isoformat()}Z")
        self.logger.info(f"Finished: {summary.completed_at.isoformat()}Z")
        self.logger.info(f"Duration: {summary.duration_seconds:.1f} seconds")
        self.logger.info(f"Records received: {summary.records_received}")
        self.logger.info(f"Records discarded: {summary.records_discarded}")
        self.logger.info(f"Records processed: {summary.records_processed}")
        self.logger.info(f"Records loaded: {summary.records_loaded}")
        self.logger.info(f"Records failed: {summary.records_failed}")
        if not self.skip_staging:
            self.logger.info(f"Rows merged: {summary.rows_merged}")
        if summary.destination_rows is not None:
            self.logger.info(f"Destination rows: {summary.destination_rows}")
        if summary.staging_table:
            self.logger.warning(f"Staging table left behind: {summary.staging_table}")
        if summary.error_message:
            self.logger.error(f"Error: {summary.error_message}")
        self.logger.info(f"="*60)
