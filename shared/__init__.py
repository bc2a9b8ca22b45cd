"""
Shared utilities for the Cluster Status ETL.

This package provides common functionality for:
- Authentication and token management
- Database connections
- Run tracking
"""

__version__ = "1.0.0"
