#!/usr/bin/env python3
"""
Cluster Status ETL CLI Runner
Fetch cluster status from the management API and load it into PostgreSQL

Usage:
    cluster-status-etl
    cluster-status-etl --table cluster_status_daily --drop-existing-rows
    cluster-status-etl --skip-staging --echo-statements
"""

import argparse
import logging
import sys

from cluster_etl.config import API_CONFIG, LOGGING_CONFIG, load_settings
from cluster_etl.etl_base import ClusterStatusETL
from cluster_etl.source import ClusterSource
from shared.auth_manager import TokenManager
from shared.database import DatabaseManager
from shared.run_tracker import RunTracker


def setup_logging(level: str = 'INFO'):
    """Setup logging configuration"""
    logging.basicConfig(
        level=getattr(logging, level),
        format=LOGGING_CONFIG['format'],
        datefmt=LOGGING_CONFIG['date_format']
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Cluster Status ETL Runner',
        epilog="""
Examples:
  %(prog)s                                   # Staged load into the default table
  %(prog)s --table cluster_status_latest --drop-existing-rows
  %(prog)s --skip-staging                    # Write rows straight into the table
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '--dsn',
        help='Destination connection string (default: built from DB_* in .env)'
    )
    parser.add_argument(
        '--schema',
        help='Destination schema (default: DB_SCHEMA or backup_inventory)'
    )
    parser.add_argument(
        '--table',
        dest='table_name',
        help='Destination table (default: DB_TABLE or cluster_status)'
    )
    parser.add_argument(
        '--drop-existing-rows',
        action='store_true',
        default=None,
        help='Delete every existing row before loading'
    )
    parser.add_argument(
        '--skip-staging',
        action='store_true',
        default=None,
        help='Insert straight into the destination table (no staging, no merge)'
    )
    parser.add_argument(
        '--echo-statements',
        action='store_true',
        default=None,
        help='Log every write statement with its parameters'
    )
    parser.add_argument(
        '--log-level',
        default=LOGGING_CONFIG['level'],
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: INFO)'
    )
    return parser


def main(argv=None):
    """Main CLI entry point"""
    args = build_parser().parse_args(argv)

    setup_logging(args.log_level)
    logger = logging.getLogger("Main")

    try:
        settings = load_settings(overrides={
            'dsn': args.dsn,
            'schema': args.schema,
            'table_name': args.table_name,
            'drop_existing_rows': args.drop_existing_rows,
            'skip_staging': args.skip_staging,
            'echo_statements': args.echo_statements
        })
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    # Fetch before touching the database
    try:
        token_mgr = TokenManager(
            settings['api_auth_url'],
            settings['api_client_id'],
            settings['api_client_secret'],
            timeout=API_CONFIG['timeout']
        )
        records = ClusterSource(token_mgr, settings['api_base_url']).fetch()
    except Exception as e:
        logger.error(f"Could not fetch cluster status: {e}", exc_info=True)
        sys.exit(1)

    db = DatabaseManager(
        settings['dsn'],
        statement_timeout_ms=settings['statement_timeout_ms'],
        echo_statements=settings['echo_statements']
    )

    try:
        logger.info("Connecting to database...")
        db.connect()
        logger.info(f"Connected to database: {db.connection.info.dbname}")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        sys.exit(1)

    try:
        with db:
            etl = ClusterStatusETL(
                db,
                schema=settings['schema'],
                table_name=settings['table_name'],
                drop_existing_rows=settings['drop_existing_rows'],
                skip_staging=settings['skip_staging']
            )
            summary = etl.run(records)
    except KeyboardInterrupt:
        logger.warning("ETL interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"ETL failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        logger.info("Database connection closed")

    if summary.status == RunTracker.STATUS_FAILED:
        logger.error(f"ETL failed: {summary.error_message}")
        sys.exit(1)

    if summary.status == RunTracker.STATUS_PARTIAL:
        logger.warning(f"ETL completed with {summary.records_failed} failed row(s)"
                       f"{', merge failed' if summary.error_message else ''}")


if __name__ == '__main__':
    main()
