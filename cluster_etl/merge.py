"""
Staged merge: moves a run's staging table into the destination in a single
statement, so readers see the whole batch or none of it.
"""

import logging

import psycopg2

from cluster_etl.config import ROW_ID_COLUMN, get_insert_columns
from cluster_etl.exceptions import MergeError
from cluster_etl.staging import StagingHandle, StagingCoordinator


class MergeEngine:
    """Reconciles a staging table into its destination, then drops it"""

    def __init__(self, db, staging: StagingCoordinator):
        self.db = db
        self.staging = staging
        self.rows_merged = 0
        self.last_error = None
        self.staging_dropped = False
        self.logger = logging.getLogger(f"Merge.{staging.schema}.{staging.dest_table}")

    def build_merge_sql(self, handle: StagingHandle, dest_table: str = None) -> str:
        # Insert-if-absent by row_id. The staging clone copies the destination's
        # nextval() default, so both tables draw row_id from one sequence and
        # every staged row is new to the destination.
        dest = f"{handle.schema}.{dest_table or handle.dest_table}"
        columns_str = ', '.join(get_insert_columns())
        select_str = ', '.join(f"s.{col}" for col in get_insert_columns())

        return f"""
            INSERT INTO {dest} ({columns_str})
            SELECT {select_str}
            FROM {handle.qualified_name} s
            WHERE NOT EXISTS (
                SELECT 1 FROM {dest} d
                WHERE d.{ROW_ID_COLUMN} = s.{ROW_ID_COLUMN}
            )
        """

    def commit(self, handle: StagingHandle, dest_table: str = None) -> bool:
        """
        Merge the staging table into the destination and drop it.

        Returns:
            True if the merge statement committed. On failure the staging
            table is left in place and False is returned.
        """
        dest_table = dest_table or handle.dest_table
        self.rows_merged = 0
        self.last_error = None
        self.staging_dropped = False

        self.logger.info(f"Merging {handle.qualified_name} into {handle.schema}.{dest_table}")

        try:
            self.rows_merged = self.db.execute(self.build_merge_sql(handle, dest_table))
        except psycopg2.Error as e:
            self.last_error = MergeError(
                "Staged merge failed, batch is not visible in the destination",
                context={'staging_table': handle.qualified_name,
                         'dest_table': f"{handle.schema}.{dest_table}"},
                original_exception=e
            )
            self.logger.error(str(self.last_error))
            self.logger.warning(
                f"Staging table {handle.qualified_name} was kept with the loaded rows. "
                f"Merge or drop it manually."
            )
            return False

        self.logger.info(f"Merged {self.rows_merged} rows into {handle.schema}.{dest_table}")

        # Destination already holds the batch, a failed drop only leaves litter
        self.staging_dropped = self.staging.discard_staging(handle)
        return True
