"""
Per-run staging tables.

Each run writes into its own zero-row structural clone of the destination,
so readers and concurrent runs never see the in-flight batch.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

import psycopg2

from cluster_etl.config import DATABASE_CONFIG, MAX_IDENTIFIER_LENGTH, validate_identifier
from cluster_etl.exceptions import StagingError


@dataclass
class StagingHandle:
    """A staging table created for one run"""
    schema: str
    table_name: str
    dest_table: str
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.table_name}"

    @property
    def qualified_dest(self) -> str:
        return f"{self.schema}.{self.dest_table}"


def make_staging_name(dest_table: str) -> str:
    """
    <dest>_stg_<16 hex chars>, trimmed to PostgreSQL's identifier limit.

    The suffix comes from uuid4, which keeps collisions between concurrent
    runs negligible.
    """
    suffix = f"{DATABASE_CONFIG['staging_suffix']}{uuid.uuid4().hex[:16]}"
    base = dest_table[:MAX_IDENTIFIER_LENGTH - len(suffix)]
    return f"{base}{suffix}"


class StagingCoordinator:
    """Creates and drops per-run staging tables"""

    def __init__(self, db, schema: str, dest_table: str):
        self.db = db
        self.schema = validate_identifier(schema, 'schema name')
        self.dest_table = validate_identifier(dest_table, 'table name')
        self.logger = logging.getLogger(f"Staging.{schema}.{dest_table}")

    def begin_staging(self, dest_table: str = None) -> StagingHandle:
        """
        Create an empty clone of the destination table.

        Raises:
            StagingError: If the CREATE fails
        """
        dest_table = validate_identifier(dest_table or self.dest_table, 'table name')
        handle = StagingHandle(
            schema=self.schema,
            table_name=make_staging_name(dest_table),
            dest_table=dest_table
        )

        try:
            self.db.execute(f"""
                CREATE TABLE {handle.qualified_name}
                (LIKE {handle.qualified_dest} INCLUDING DEFAULTS INCLUDING CONSTRAINTS)
            """)
        except psycopg2.Error as e:
            self.logger.error(f"Failed to create staging table {handle.qualified_name}: {e}")
            raise StagingError(
                "Staging table could not be created",
                context={'staging_table': handle.qualified_name, 'dest_table': handle.qualified_dest},
                original_exception=e
            )

        self.logger.info(f"Created staging table {handle.qualified_name}")
        return handle

    def discard_staging(self, handle: StagingHandle) -> bool:
        """
        Drop the staging table. A failure here is logged, never raised.

        Returns:
            True if the table was dropped
        """
        try:
            self.db.execute(f"DROP TABLE IF EXISTS {handle.qualified_name}")
        except psycopg2.Error as e:
            self.logger.warning(
                f"Could not drop staging table {handle.qualified_name}: {e}. "
                f"Drop it manually."
            )
            return False

        self.logger.info(f"Dropped staging table {handle.qualified_name}")
        return True
