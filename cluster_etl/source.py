"""
Cluster record source: pages through the management API's cluster list and
flattens each cluster into a ClusterRecord dict keyed by column name
"""

import logging
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Tuple

import requests

from cluster_etl.config import (
    API_CONFIG,
    BYTES_TO_TB_COLUMNS,
    DATETIME_COLUMNS,
    FIELDS_MAPPING,
    INTEGER_COLUMNS,
    NATURAL_KEY,
    NESTED_FIELDS
)

logger = logging.getLogger("Source")

BYTES_PER_TB = Decimal(1000) ** 4


def _retry_after_seconds(response, default):
    # Only the delta-seconds form is honoured; HTTP-date values fall back
    try:
        return int(response.headers.get('Retry-After', default))
    except (TypeError, ValueError):
        return default


def api_request_with_retry(url: str, headers: dict, timeout: int = 30,
                           max_retries: int = 3, retry_delay: float = 5):
    """
    GET with retries on timeouts, connection errors, 5xx and 429.

    Other 4xx responses raise immediately. When every attempt fails the last
    exception is re-raised.
    """
    last_error = None

    for attempt in range(1, max_retries + 1):
        try:
            response = requests.get(url, headers=headers, timeout=timeout)
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            last_error = e
            logger.warning(f"Request failed (attempt {attempt}/{max_retries}): {e}")
            if attempt < max_retries:
                time.sleep(retry_delay * attempt)
            continue

        if response.status_code == 429:
            retry_after = _retry_after_seconds(response, retry_delay)
            logger.warning(f"Rate limited, waiting {retry_after} seconds...")
            last_error = requests.exceptions.HTTPError("429 Too Many Requests", response=response)
            if attempt < max_retries:
                time.sleep(retry_after)
            continue

        if response.status_code >= 500:
            logger.warning(f"Server error {response.status_code} (attempt {attempt}/{max_retries})")
            last_error = requests.exceptions.HTTPError(
                f"{response.status_code} Server Error", response=response
            )
            if attempt < max_retries:
                time.sleep(retry_delay * attempt)
            continue

        response.raise_for_status()
        return response

    raise last_error


def _to_terabytes(value):
    try:
        return (Decimal(str(value)) / BYTES_PER_TB).quantize(Decimal('0.001'))
    except (InvalidOperation, ValueError, TypeError):
        return None


def _to_datetime(value):
    """Parse to a naive UTC datetime; the target columns are TIMESTAMP"""
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except (ValueError, TypeError):
            return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _to_int(value):
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def flatten_cluster(record: Dict) -> Dict:
    """Flatten one API cluster object into column -> value"""
    flattened = {}

    for api_field, column in FIELDS_MAPPING.items():
        flattened[column] = record.get(api_field)

    for parent_field, nested_mapping in NESTED_FIELDS.items():
        parent_value = record.get(parent_field) or {}
        if isinstance(parent_value, dict):
            for nested_field, column in nested_mapping.items():
                flattened[column] = parent_value.get(nested_field)
        else:
            for column in nested_mapping.values():
                flattened[column] = None

    # Type conversions
    for column, value in flattened.items():
        if value is None:
            continue
        if column in BYTES_TO_TB_COLUMNS:
            flattened[column] = _to_terabytes(value)
        elif column in DATETIME_COLUMNS:
            flattened[column] = _to_datetime(value)
        elif column in INTEGER_COLUMNS:
            flattened[column] = _to_int(value)
        elif column in ('latitude', 'longitude'):
            flattened[column] = str(value)

    if flattened.get(NATURAL_KEY) is not None:
        flattened[NATURAL_KEY] = str(flattened[NATURAL_KEY])

    return flattened


def filter_identified(records: Iterable[Dict]) -> Tuple[List[Dict], int]:
    """
    Drop records without a cluster_id; they cannot be identified.

    Returns:
        (kept records, number discarded)
    """
    kept = []
    discarded = 0
    for record in records:
        if record.get(NATURAL_KEY) in (None, ''):
            discarded += 1
            continue
        kept.append(record)
    return kept, discarded


class ClusterSource:
    """Fetches and flattens cluster status records from the management API"""

    def __init__(self, token_mgr, base_url: str = None):
        self.token_mgr = token_mgr
        self.base_url = (base_url or API_CONFIG['base_url']).rstrip('/')
        self.api_calls = 0
        self.logger = logging.getLogger("Source.clusters")

    def fetch_raw(self) -> List[Dict]:
        """Page through the cluster list"""
        all_records = []
        page = 1
        endpoint = f"{self.base_url}{API_CONFIG['clusters_endpoint']}"

        while True:
            url = f"{endpoint}?limit={API_CONFIG['page_size']}&page={page}"
            self.logger.debug(f"Fetching page {page}: {url}")

            response = api_request_with_retry(
                url,
                self.token_mgr.auth_headers(),
                timeout=API_CONFIG['timeout'],
                max_retries=API_CONFIG['max_retries'],
                retry_delay=API_CONFIG['retry_delay']
            )
            self.api_calls += 1

            data = response.json()

            # Handle both response formats: direct list or dict with 'results' key
            if isinstance(data, list):
                results = data
            elif isinstance(data, dict):
                results = data.get('results', [])
            else:
                results = []

            if not results:
                break

            all_records.extend(results)

            # Direct list responses are not paginated
            if isinstance(data, list) or not data.get('next'):
                break

            page += 1

        return all_records

    def fetch(self) -> List[Dict]:
        """Fetch every cluster as a flattened ClusterRecord"""
        self.logger.info("Fetching cluster status from management API")
        raw = self.fetch_raw()

        records = []
        for item in raw:
            try:
                records.append(flatten_cluster(item))
            except Exception as e:
                self.logger.error(f"Could not flatten cluster {item.get('id')}: {e}")

        self.logger.info(f"Fetched {len(records)} clusters in {self.api_calls} API calls")
        return records
