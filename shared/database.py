"""
Database connection management for the Cluster Status ETL.

A DatabaseManager is an explicit handle: it is opened before the pipeline
runs and closed on every exit path. Every statement runs under the same
statement_timeout, set once at connect time.

Usage:
    from shared.database import DatabaseManager

    with DatabaseManager(dsn) as db:
        with db.get_cursor() as cur:
            cur.execute("SELECT 1")

        row = db.execute("SELECT COUNT(*) FROM t", fetch='one')
"""

import logging
from contextlib import contextmanager
from typing import Optional

import psycopg2


class DatabaseManager:
    """Owns one psycopg2 connection for the lifetime of a run"""

    def __init__(
        self,
        dsn: Optional[str] = None,
        statement_timeout_ms: int = 600000,
        echo_statements: bool = False,
        connection=None
    ):
        """
        Args:
            dsn: libpq connection string / URL
            statement_timeout_ms: Time limit applied to every statement
            echo_statements: Log every write statement with its parameters
            connection: Pre-opened DB-API connection (used instead of dsn)
        """
        self.dsn = dsn
        self.statement_timeout_ms = statement_timeout_ms
        self.echo_statements = echo_statements
        self.logger = logging.getLogger("DatabaseManager")
        self._connection = connection

    # ------------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------------

    def connect(self):
        """Open the connection if it is not open yet"""
        if self._connection is None or self._connection.closed:
            if not self.dsn:
                raise ValueError("No DSN configured for DatabaseManager")
            self._connection = psycopg2.connect(
                self.dsn,
                options=f"-c statement_timeout={int(self.statement_timeout_ms)}"
            )
        return self._connection

    @property
    def connection(self):
        return self.connect()

    def close(self):
        """Close the connection, if open"""
        if self._connection is not None and not self._connection.closed:
            self._connection.close()
        self._connection = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # ------------------------------------------------------------------------
    # Statement execution
    # ------------------------------------------------------------------------

    @contextmanager
    def get_cursor(self, commit: bool = True):
        """
        Context manager for a cursor with automatic commit/rollback.

        Args:
            commit: Whether to commit on success (default: True)

        Yields:
            DB-API cursor
        """
        conn = self.connection
        cur = conn.cursor()
        try:
            yield cur
            if commit:
                conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cur.close()

    def execute(self, query: str, params: tuple = None, fetch: Optional[str] = None):
        """
        Execute one statement in its own transaction.

        Args:
            query: SQL text with %s placeholders
            params: Bound parameters (optional)
            fetch: None, 'one' or 'all'

        Returns:
            fetchone()/fetchall() result when fetch is set, otherwise the
            statement's rowcount
        """
        self._echo(query, params)
        with self.get_cursor() as cur:
            cur.execute(query, params)
            if fetch == 'one':
                return cur.fetchone()
            if fetch == 'all':
                return cur.fetchall()
            return cur.rowcount

    def _echo(self, query: str, params):
        if not self.echo_statements:
            return
        statement = " ".join(query.split())
        if statement.upper().startswith('SELECT'):
            return
        self.logger.info(f"SQL: {statement} | params={params}")
