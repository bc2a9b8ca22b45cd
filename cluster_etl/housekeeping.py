"""
Housekeeping around a run: optional pre-run purge of the destination
"""

import logging

import psycopg2

from cluster_etl.config import validate_identifier

logger = logging.getLogger("Housekeeping")


def truncate_all(db, schema: str, table_name: str) -> bool:
    """
    Delete every row from schema.table_name before loading.

    Returns:
        True if the purge committed, False if it failed (logged)
    """
    schema = validate_identifier(schema, 'schema name')
    table_name = validate_identifier(table_name, 'table name')

    try:
        deleted = db.execute(f"DELETE FROM {schema}.{table_name}")
    except psycopg2.Error as e:
        logger.error(f"Failed to purge {schema}.{table_name}: {e}")
        return False

    logger.info(f"Purged {deleted} existing rows from {schema}.{table_name}")
    return True
