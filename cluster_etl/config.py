"""
Configuration module for the Cluster Status ETL
Centralized configuration for the remote API, the destination table layout,
and the run options read from .env / environment
"""

import os
import re

from dotenv import dotenv_values

# ============================================================================
# API CONFIGURATION
# ============================================================================

API_CONFIG = {
    'base_url': 'https://backup.example.com/api/v1',
    'auth_url': 'https://backup.example.com/api/v1/service_account/session',
    'clusters_endpoint': '/clusters',
    'page_size': 100,
    'timeout': 30,
    'max_retries': 3,
    'retry_delay': 5
}

# ============================================================================
# DATABASE CONFIGURATION
# ============================================================================

DATABASE_CONFIG = {
    'schema': 'backup_inventory',
    'table_name': 'cluster_status',
    'statement_timeout_ms': 600000,  # 10 minutes, applied to every statement
    'staging_suffix': '_stg_',
    'progress_every': 25  # Log a progress line every N rows
}

# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

LOGGING_CONFIG = {
    'level': 'INFO',
    'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    'date_format': '%Y-%m-%d %H:%M:%S'
}

# ============================================================================
# DESTINATION TABLE LAYOUT
# ============================================================================

# Ordered column definitions. row_id is generated by the store and is never
# part of an INSERT issued by the loader.
CLUSTER_COLUMNS = [
    ('row_id', 'BIGSERIAL PRIMARY KEY'),
    ('date_utc', 'TIMESTAMP NOT NULL'),
    ('cluster_id', 'VARCHAR(64) NOT NULL'),
    ('cluster_name', 'VARCHAR(255)'),
    ('status', 'VARCHAR(50)'),
    ('version', 'VARCHAR(50)'),
    ('connection_status', 'VARCHAR(50)'),
    ('pause_status', 'VARCHAR(50)'),
    ('last_connected', 'TIMESTAMP'),
    ('registered_utc', 'TIMESTAMP'),
    ('node_count', 'INTEGER'),
    ('disk_count', 'INTEGER'),
    ('total_capacity_tb', 'NUMERIC(14,3)'),
    ('used_capacity_tb', 'NUMERIC(14,3)'),
    ('available_capacity_tb', 'NUMERIC(14,3)'),
    ('runway_days', 'INTEGER'),
    ('snapshot_count', 'INTEGER'),
    ('location', 'VARCHAR(255)'),
    ('latitude', 'VARCHAR(32)'),
    ('longitude', 'VARCHAR(32)'),
    ('timezone', 'VARCHAR(64)'),
    ('exported', 'BOOLEAN NOT NULL DEFAULT FALSE')
]

ROW_ID_COLUMN = 'row_id'
NATURAL_KEY = 'cluster_id'

# Quantities: absent values are persisted as zero
ZERO_DEFAULT_COLUMNS = [
    'node_count',
    'disk_count',
    'total_capacity_tb',
    'used_capacity_tb',
    'available_capacity_tb',
    'runway_days',
    'snapshot_count'
]

# Free text: apostrophes are stripped from all of these
FREE_TEXT_COLUMNS = [
    'cluster_name',
    'status',
    'version',
    'connection_status',
    'pause_status',
    'location',
    'latitude',
    'longitude',
    'timezone'
]

# Extra characters stripped per column, on top of the apostrophe
EXTRA_STRIP_CHARS = {
    'location': ','
}

# ============================================================================
# API FIELD MAPPING
# ============================================================================

FIELDS_MAPPING = {
    # API field → Database column
    'id': 'cluster_id',
    'name': 'cluster_name',
    'status': 'status',
    'version': 'version',
    'connectionStatus': 'connection_status',
    'pauseStatus': 'pause_status',
    'lastConnectionTime': 'last_connected',
    'registrationTime': 'registered_utc',
    'nodeCount': 'node_count',
    'diskCount': 'disk_count',
    'estimatedRunway': 'runway_days',
    'snapshotCount': 'snapshot_count'
}

NESTED_FIELDS = {
    'metric': {
        'totalCapacity': 'total_capacity_tb',
        'usedCapacity': 'used_capacity_tb',
        'availableCapacity': 'available_capacity_tb'
    },
    'geoLocation': {
        'address': 'location',
        'latitude': 'latitude',
        'longitude': 'longitude'
    },
    'systemStatus': {
        'timezone': 'timezone'
    }
}

BYTES_TO_TB_COLUMNS = ['total_capacity_tb', 'used_capacity_tb', 'available_capacity_tb']
DATETIME_COLUMNS = ['last_connected', 'registered_utc']
INTEGER_COLUMNS = ['node_count', 'disk_count', 'runway_days', 'snapshot_count']

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

_IDENTIFIER_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
MAX_IDENTIFIER_LENGTH = 63

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def get_insert_columns() -> list:
    """Columns written by the loader and the merge (everything but row_id)"""
    return [name for name, _ in CLUSTER_COLUMNS if name != ROW_ID_COLUMN]


def validate_identifier(name: str, kind: str = 'identifier') -> str:
    """Reject schema/table names that cannot be used unquoted in SQL"""
    if not name or not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid {kind}: {name!r}. Use letters, digits and underscores only")
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(f"Invalid {kind}: {name!r} is longer than {MAX_IDENTIFIER_LENGTH} characters")
    return name


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES


def build_dsn(envs: dict) -> str:
    """Build a libpq connection URL from DB_* settings"""
    if envs.get('DATABASE_URL'):
        return envs['DATABASE_URL']

    return (f"postgresql://{envs.get('DB_USER', 'postgres')}:{envs.get('DB_PASSWORD', '')}"
            f"@{envs.get('DB_HOST', 'localhost')}:{envs.get('DB_PORT', '5432')}"
            f"/{envs.get('DB_NAME', 'postgres')}?sslmode={envs.get('DB_SSLMODE', 'prefer')}")


def load_settings(env_path: str = None, overrides: dict = None) -> dict:
    """
    Resolve run settings.

    Precedence (lowest to highest): built-in defaults, .env file, process
    environment, explicit overrides (CLI flags). Overrides set to None are
    ignored.

    Args:
        env_path: Path to the .env file (default: project root .env)
        overrides: Values from the command line

    Returns:
        dict with dsn, schema, table_name, drop_existing_rows, skip_staging,
        echo_statements, statement_timeout_ms and the API credentials
    """
    if env_path is None:
        env_path = os.path.join(os.path.dirname(__file__), '..', '.env')

    envs = {k: v for k, v in dotenv_values(env_path).items() if v is not None}
    for key, value in os.environ.items():
        if key.startswith(('DB_', 'API_')) or key in (
                'DATABASE_URL', 'DROP_EXISTING_ROWS', 'SKIP_STAGING', 'ECHO_STATEMENTS'):
            envs[key] = value

    settings = {
        'dsn': build_dsn(envs),
        'schema': envs.get('DB_SCHEMA', DATABASE_CONFIG['schema']),
        'table_name': envs.get('DB_TABLE', DATABASE_CONFIG['table_name']),
        'drop_existing_rows': _as_bool(envs.get('DROP_EXISTING_ROWS')),
        'skip_staging': _as_bool(envs.get('SKIP_STAGING')),
        'echo_statements': _as_bool(envs.get('ECHO_STATEMENTS')),
        'statement_timeout_ms': int(envs.get('DB_STATEMENT_TIMEOUT_MS',
                                             DATABASE_CONFIG['statement_timeout_ms'])),
        'api_base_url': envs.get('API_BASE_URL', API_CONFIG['base_url']),
        'api_auth_url': envs.get('API_AUTH_URL', API_CONFIG['auth_url']),
        'api_client_id': envs.get('API_CLIENT_ID'),
        'api_client_secret': envs.get('API_CLIENT_SECRET')
    }

    for key, value in (overrides or {}).items():
        if value is not None:
            settings[key] = value

    validate_identifier(settings['schema'], 'schema name')
    validate_identifier(settings['table_name'], 'table name')

    return settings
