"""
Pytest configuration and fixtures for Cluster Status ETL tests
"""

import itertools
import re
from datetime import datetime
from decimal import Decimal

import psycopg2
import pytest

from shared.database import DatabaseManager


# ============================================================================
# SAMPLE API RESPONSE FIXTURES
# ============================================================================

@pytest.fixture
def sample_cluster():
    """Sample cluster object as returned by the management API"""
    return {
        "id": "c-0001",
        "name": "Prod-CDM-01",
        "status": "Connected",
        "version": "9.1.2-p3",
        "connectionStatus": "Connected",
        "pauseStatus": "ACTIVE",
        "lastConnectionTime": "2026-10-18T06:15:00Z",
        "registrationTime": "2023-02-01T10:00:00Z",
        "nodeCount": 4,
        "diskCount": 48,
        "estimatedRunway": 212,
        "snapshotCount": 15230,
        "metric": {
            "totalCapacity": 120000000000000,
            "usedCapacity": 80500000000000,
            "availableCapacity": 39500000000000
        },
        "geoLocation": {
            "address": "O'Hare Campus, Chicago, IL",
            "latitude": 41.9742,
            "longitude": -87.9073
        },
        "systemStatus": {
            "timezone": "America/Chicago"
        }
    }


@pytest.fixture
def sample_cluster_with_null_values():
    """Sample cluster with missing/null values for edge case testing"""
    return {
        "id": "c-0002",
        "name": "Edge-Site's Cluster",
        "status": None,
        "version": None,
        "connectionStatus": "Disconnected",
        "pauseStatus": None,
        "lastConnectionTime": "not-a-date",
        "registrationTime": None,
        "nodeCount": None,
        "diskCount": "n/a",
        "estimatedRunway": None,
        "snapshotCount": None,
        "metric": None,
        "geoLocation": {},
        "systemStatus": None
    }


# ============================================================================
# FLATTENED RECORD FIXTURES
# ============================================================================

def make_record(cluster_id, **overrides):
    record = {
        "cluster_id": cluster_id,
        "cluster_name": f"cluster-{cluster_id}",
        "status": "Connected",
        "version": "9.1.2",
        "connection_status": "Connected",
        "pause_status": "ACTIVE",
        "last_connected": datetime(2026, 10, 18, 6, 15),
        "registered_utc": datetime(2023, 2, 1, 10, 0),
        "node_count": 4,
        "disk_count": 48,
        "total_capacity_tb": Decimal("120.000"),
        "used_capacity_tb": Decimal("80.500"),
        "available_capacity_tb": Decimal("39.500"),
        "runway_days": 212,
        "snapshot_count": 15230,
        "location": "Chicago IL",
        "latitude": "41.9742",
        "longitude": "-87.9073",
        "timezone": "America/Chicago"
    }
    record.update(overrides)
    return record


@pytest.fixture
def record_factory():
    """Build flattened ClusterRecords with overrides"""
    return make_record


@pytest.fixture
def scenario_records():
    """Cluster A with null capacities, cluster B with a comma in its location"""
    return [
        make_record(
            "A",
            total_capacity_tb=None,
            used_capacity_tb=None,
            available_capacity_tb=None
        ),
        make_record(
            "B",
            total_capacity_tb=Decimal("12.5"),
            location="New York, NY"
        )
    ]


# ============================================================================
# IN-MEMORY STORE
# ============================================================================

def _normalize(query):
    return " ".join(str(query).split())


class FakeStore:
    """
    In-memory stand-in for the PostgreSQL database.

    Understands exactly the statements the pipeline issues and enforces the
    column definitions given at CREATE time (NOT NULL, INTEGER, NUMERIC,
    VARCHAR(n)), so bad rows fail the way they would on a real server.
    """

    def __init__(self):
        self.schemas = set()
        self.tables = {}
        self.queries = []
        self.failures = []
        self.observed = {}
        self._row_ids = itertools.count(1)

    # -- test helpers -------------------------------------------------------

    def connect(self):
        return FakeConnection(self)

    def fail_on(self, pattern, exc=None):
        """Raise exc for every statement matching the regex"""
        self.failures.append((re.compile(pattern), exc or psycopg2.OperationalError("forced failure")))

    def observe(self, table):
        """Record the row count of table after every statement"""
        self.observed[table] = []

    def rows(self, table):
        return self.tables[table]['rows']

    def staging_tables(self, dest):
        return [name for name in self.tables if name.startswith(f"{dest}_stg_")]

    def seed(self, table, count, record_factory):
        for i in range(count):
            row = dict(record_factory(f"old-{i}"), date_utc=datetime(2020, 1, 1), exported=True)
            row['row_id'] = next(self._row_ids)
            self.tables[table]['rows'].append(row)

    # -- statement handling -------------------------------------------------

    def execute(self, query, params):
        statement = _normalize(query)
        self.queries.append((statement, params))

        for pattern, exc in self.failures:
            if pattern.search(statement):
                raise exc

        result, rowcount = self._dispatch(statement, params or ())

        for table, counts in self.observed.items():
            counts.append(len(self.tables[table]['rows']) if table in self.tables else None)

        return result, rowcount

    def _dispatch(self, statement, params):
        if statement.startswith("SELECT EXISTS"):
            schema, table = params
            return [(f"{schema}.{table}" in self.tables,)], 1

        m = re.match(r"^SELECT COUNT\(\*\) FROM (\S+)$", statement)
        if m:
            return [(len(self._table(m.group(1))['rows']),)], 1

        m = re.match(r"^CREATE SCHEMA IF NOT EXISTS (\S+)$", statement)
        if m:
            self.schemas.add(m.group(1))
            return None, -1

        m = re.match(r"^CREATE TABLE IF NOT EXISTS (\S+) \((.*)\)$", statement)
        if m:
            name = m.group(1)
            self._check_schema(name)
            if name not in self.tables:
                columns = {}
                for column_def in m.group(2).strip().split(", "):
                    column, definition = column_def.split(" ", 1)
                    columns[column] = definition
                self.tables[name] = {'columns': columns, 'rows': []}
            return None, -1

        m = re.match(r"^CREATE TABLE (\S+) \(LIKE (\S+) INCLUDING", statement)
        if m:
            name, source = m.group(1), m.group(2)
            self._check_schema(name)
            if name in self.tables:
                raise psycopg2.ProgrammingError(f'relation "{name}" already exists')
            self.tables[name] = {'columns': dict(self._table(source)['columns']), 'rows': []}
            return None, -1

        m = re.match(r"^INSERT INTO (\S+) \((.+?)\) SELECT .+? FROM (\S+) s WHERE NOT EXISTS", statement)
        if m:
            dest, columns, staging = self._table(m.group(1)), m.group(2).split(", "), self._table(m.group(3))
            existing = {row['row_id'] for row in dest['rows']}
            new_rows = []
            for row in staging['rows']:
                if row['row_id'] in existing:
                    continue
                copied = {column: row[column] for column in columns}
                copied['row_id'] = next(self._row_ids)
                new_rows.append(copied)
            dest['rows'].extend(new_rows)
            return None, len(new_rows)

        m = re.match(r"^INSERT INTO (\S+) \((.+?)\) VALUES \((.+)\)$", statement)
        if m:
            table = self._table(m.group(1))
            row = dict(zip(m.group(2).split(", "), params))
            for column, definition in table['columns'].items():
                if column != 'row_id':
                    self._check_value(column, definition, row.get(column))
            row['row_id'] = next(self._row_ids)
            table['rows'].append(row)
            return None, 1

        m = re.match(r"^DELETE FROM (\S+)$", statement)
        if m:
            table = self._table(m.group(1))
            deleted = len(table['rows'])
            table['rows'] = []
            return None, deleted

        m = re.match(r"^DROP TABLE IF EXISTS (\S+)$", statement)
        if m:
            self.tables.pop(m.group(1), None)
            return None, -1

        raise AssertionError(f"FakeStore does not understand: {statement}")

    def _check_schema(self, name):
        schema = name.split(".", 1)[0]
        if schema not in self.schemas:
            raise psycopg2.ProgrammingError(f'schema "{schema}" does not exist')

    def _table(self, name):
        if name not in self.tables:
            raise psycopg2.ProgrammingError(f'relation "{name}" does not exist')
        return self.tables[name]

    @staticmethod
    def _check_value(column, definition, value):
        if value is None:
            if "NOT NULL" in definition:
                raise psycopg2.IntegrityError(f'null value in column "{column}" violates not-null constraint')
            return
        if definition.startswith("INTEGER"):
            if isinstance(value, bool) or not isinstance(value, int):
                raise psycopg2.DataError(f'invalid input syntax for type integer: "{value}"')
        elif definition.startswith("NUMERIC"):
            if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
                raise psycopg2.DataError(f'invalid input syntax for type numeric: "{value}"')
        elif definition.startswith("VARCHAR"):
            limit = int(re.match(r"VARCHAR\((\d+)\)", definition).group(1))
            if len(str(value)) > limit:
                raise psycopg2.DataError(f"value too long for type character varying({limit})")


class FakeCursor:
    """Cursor over a FakeStore"""

    def __init__(self, store):
        self.store = store
        self.results = []
        self.rowcount = -1

    def execute(self, query, params=None):
        results, self.rowcount = self.store.execute(query, params)
        self.results = results or []

    def fetchone(self):
        return self.results[0] if self.results else None

    def fetchall(self):
        return self.results

    def close(self):
        pass


class FakeConnection:
    """Connection over a FakeStore"""

    def __init__(self, store):
        self.store = store
        self.closed = 0
        self.commits = 0
        self.rollbacks = 0

    def cursor(self, cursor_factory=None):
        return FakeCursor(self.store)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = 1


@pytest.fixture
def store():
    """Empty in-memory store"""
    return FakeStore()


@pytest.fixture
def db(store):
    """DatabaseManager bound to the in-memory store"""
    manager = DatabaseManager(connection=store.connect())
    yield manager
    manager.close()


DEST = "backup_inventory.cluster_status"


@pytest.fixture
def dest():
    return DEST
