"""
Row loading: per-record normalization and single-row inserts
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List

import psycopg2

from cluster_etl.config import (
    DATABASE_CONFIG,
    EXTRA_STRIP_CHARS,
    FREE_TEXT_COLUMNS,
    NATURAL_KEY,
    ZERO_DEFAULT_COLUMNS,
    get_insert_columns,
    validate_identifier
)
from cluster_etl.exceptions import RowLoadError
from shared.run_tracker import RowResult


def sanitize_text(value, extra_chars: str = ''):
    """Strip apostrophes (and any extra characters) from a text value"""
    if not isinstance(value, str):
        return value
    for char in "'" + extra_chars:
        value = value.replace(char, '')
    return value


class RowLoader:
    """Turns ClusterRecords into rows and inserts them one at a time"""

    def __init__(self, db, schema: str, run_timestamp: datetime):
        """
        Args:
            db: Open DatabaseManager
            schema: Schema holding the write target
            run_timestamp: UTC capture time shared by every row of the run
        """
        self.db = db
        self.schema = validate_identifier(schema, 'schema name')
        self.run_timestamp = run_timestamp
        self.columns = get_insert_columns()
        self.logger = logging.getLogger(f"Loader.{schema}")

    def transform_row(self, record: Dict) -> Dict:
        """Build the persisted row for one record"""
        row = {column: record.get(column) for column in self.columns}

        # Quantities are never stored as NULL
        for column in ZERO_DEFAULT_COLUMNS:
            if row.get(column) is None:
                row[column] = 0

        for column in FREE_TEXT_COLUMNS:
            row[column] = sanitize_text(row.get(column), EXTRA_STRIP_CHARS.get(column, ''))

        row['date_utc'] = self.run_timestamp
        row['exported'] = False

        return row

    def load_row(self, target_table: str, record: Dict) -> RowResult:
        """
        Insert one record into target_table. Store errors are logged and
        returned on the result, never raised.
        """
        cluster_id = record.get(NATURAL_KEY)
        row = self.transform_row(record)

        columns_str = ', '.join(self.columns)
        placeholders = ', '.join(['%s'] * len(self.columns))
        query = f"""
            INSERT INTO {self.schema}.{target_table} ({columns_str})
            VALUES ({placeholders})
        """

        try:
            self.db.execute(query, tuple(row[col] for col in self.columns))
        except psycopg2.Error as e:
            error = RowLoadError(
                "Row insert failed",
                context={'cluster_id': cluster_id, 'target_table': f"{self.schema}.{target_table}"},
                original_exception=e
            )
            self.logger.error(str(error), exc_info=True)
            return RowResult(cluster_id=cluster_id, success=False,
                             target_table=target_table, error=error)

        return RowResult(cluster_id=cluster_id, success=True, target_table=target_table)

    def load_rows(self, target_table: str, records: Iterable[Dict], tracker=None) -> List[RowResult]:
        """
        Load every record into target_table, one statement per row.

        Args:
            target_table: Staging table, or the destination when staging is skipped
            records: Records to load
            tracker: Optional RunTracker fed with each result

        Returns:
            One RowResult per record, in input order
        """
        target_table = validate_identifier(target_table, 'table name')
        records = list(records)
        total = len(records)
        every = DATABASE_CONFIG['progress_every']
        results = []

        self.logger.info(f"Loading {total} records into {self.schema}.{target_table}")

        for index, record in enumerate(records, start=1):
            result = self.load_row(target_table, record)
            results.append(result)
            if tracker is not None:
                tracker.record_row(result)

            self.logger.debug(f"[{index}/{total}] {result.cluster_id}: "
                              f"{'loaded' if result.success else 'failed'}")
            if index % every == 0 or index == total:
                self.logger.info(f"[{index}/{total}] records processed")

        failed = sum(1 for r in results if not r.success)
        if failed:
            self.logger.warning(f"{failed} of {total} records failed to load into {target_table}")

        return results
