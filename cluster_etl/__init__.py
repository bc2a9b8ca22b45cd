"""
Cluster Status ETL.

Loads cluster status snapshots from the backup management API into a
PostgreSQL history table through a per-run staging table.
"""

__version__ = "1.0.0"
