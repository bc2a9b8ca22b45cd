"""
Destination table management: catalog lookups and first-run creation
"""

import logging

import psycopg2

from cluster_etl.config import CLUSTER_COLUMNS, validate_identifier
from cluster_etl.exceptions import SchemaError


class SchemaManager:
    """Makes sure the destination table exists with the cluster status layout"""

    def __init__(self, db, schema: str, table_name: str):
        """
        Args:
            db: Open DatabaseManager
            schema: Destination schema
            table_name: Default destination table
        """
        self.db = db
        self.schema = validate_identifier(schema, 'schema name')
        self.table_name = validate_identifier(table_name, 'table name')
        self.logger = logging.getLogger(f"Schema.{schema}")

    def table_exists(self, table_name: str = None) -> bool:
        """Check the catalog for schema.table_name"""
        table_name = table_name or self.table_name
        row = self.db.execute("""
            SELECT EXISTS (
                SELECT 1 FROM information_schema.tables
                WHERE table_schema = %s AND table_name = %s
            )
        """, (self.schema, table_name), fetch='one')
        return bool(row and row[0])

    def row_count(self, table_name: str = None) -> int:
        table_name = validate_identifier(table_name or self.table_name, 'table name')
        row = self.db.execute(
            f"SELECT COUNT(*) FROM {self.schema}.{table_name}",
            fetch='one'
        )
        return row[0] if row else 0

    def ensure_table(self, table_name: str = None) -> bool:
        """
        Create the destination table on first run. No-op if it already exists.

        Returns:
            True once the table exists

        Raises:
            SchemaError: If the catalog lookup or the CREATE fails
        """
        table_name = validate_identifier(table_name or self.table_name, 'table name')
        context = {'schema': self.schema, 'table_name': table_name}

        try:
            if self.table_exists(table_name):
                self.logger.info(f"Table {self.schema}.{table_name} already exists")
                return True

            self.logger.info(f"Creating table {self.schema}.{table_name}")
            columns_sql = ",\n                ".join(
                f"{name} {definition}" for name, definition in CLUSTER_COLUMNS
            )
            self.db.execute(f"CREATE SCHEMA IF NOT EXISTS {self.schema}")
            self.db.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.schema}.{table_name} (
                {columns_sql}
                )
            """)
            self.logger.info(f"Created table {self.schema}.{table_name}")
            return True

        except psycopg2.Error as e:
            self.logger.error(f"Could not verify or create {self.schema}.{table_name}: {e}")
            raise SchemaError(
                "Destination table could not be verified or created",
                context=context,
                original_exception=e
            )
