"""
Exceptions for the Cluster Status ETL.

Exception Hierarchy:
    ClusterETLError (base)
    ├── SchemaError      - destination table cannot be verified or created
    ├── StagingError     - staging table cannot be created
    ├── RowLoadError     - a single row failed to persist
    └── MergeError       - staged reconciliation failed
"""

from typing import Optional, Dict, Any


class ClusterETLError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context (table names, cluster id, ...)
        original_exception: The store/driver exception that was caught
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += (f" | Caused by: {type(self.original_exception).__name__}: "
                         f"{str(self.original_exception).strip()}")

        return base_msg


class SchemaError(ClusterETLError):
    """
    Destination table could not be verified or created. Fatal for the run.

    Context should include:
        - schema: Destination schema
        - table_name: Destination table
    """
    pass


class StagingError(ClusterETLError):
    """
    Staging table could not be created. Fatal for the run, nothing is loaded.

    Context should include:
        - staging_table: Generated staging table name
        - dest_table: Destination table it was cloned from
    """
    pass


class RowLoadError(ClusterETLError):
    """
    A single row failed to persist. Never raised out of the load loop,
    carried on the RowResult instead.

    Context should include:
        - cluster_id: Natural key of the record
        - target_table: Table the insert was aimed at
    """
    pass


class MergeError(ClusterETLError):
    """
    Staged reconciliation failed. The staging table is kept for recovery.

    Context should include:
        - staging_table: Orphaned staging table
        - dest_table: Destination table
    """
    pass
