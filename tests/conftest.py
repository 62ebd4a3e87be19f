"""
Pytest configuration and fixtures for catalog-ingest tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import fnmatch
import json
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Generator
from uuid import uuid4

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

from catalog_ingest.core.models import ExchangeRateSnapshot
from catalog_ingest.queue.queue_client import QueueClient
from catalog_ingest.warehouse.connection import DatabaseConnectionPool
from catalog_ingest.warehouse.schema_mgmt import CatalogSchema


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance
    """
    with PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_catalog",
        password="test_password",
        dbname="test_catalog",
        driver=None,
    ) as postgres:
        yield postgres


@pytest.fixture(scope="session")
def db_pool(postgres_container) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Open a pool against the container and create the catalog schema

    Yields:
        Open DatabaseConnectionPool
    """
    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_catalog",
        user="test_catalog",
        password="test_password",
        min_size=1,
        max_size=4,
    )
    pool.open()
    CatalogSchema(pool).create()
    yield pool
    pool.close()


@pytest.fixture(scope="function")
def clean_db(db_pool) -> DatabaseConnectionPool:
    """
    Provide a pool over an empty products table

    Returns:
        Open DatabaseConnectionPool
    """
    with db_pool.get_connection() as conn:
        conn.execute("TRUNCATE TABLE products RESTART IDENTITY")
        conn.commit()
    return db_pool


# =======================
# CACHE FIXTURES
# =======================

class InMemoryCache:
    """Stand-in for RedisCache with the same JSON round-trip behaviour."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail_reads = False
        self.fail_writes = False

    def get(self, key: str) -> Any:
        if self.fail_reads or key not in self.data:
            return None
        return json.loads(self.data[key])

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        if self.fail_writes:
            return False
        self.data[key] = json.dumps(value)
        self.ttls[key] = ttl
        return True

    def delete(self, key: str) -> bool:
        self.ttls.pop(key, None)
        return self.data.pop(key, None) is not None

    def delete_pattern(self, pattern: str) -> int:
        keys = [key for key in self.data if fnmatch.fnmatchcase(key, pattern)]
        for key in keys:
            self.delete(key)
        return len(keys)

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass


@pytest.fixture(scope="function")
def memory_cache() -> InMemoryCache:
    return InMemoryCache()


# =======================
# PERSISTENCE DOUBLES
# =======================

class FakeConnection:
    """Connection double with nested transaction (savepoint) semantics."""

    def __init__(self, committed: list[dict]):
        self.committed = committed
        self._levels: list[list[dict]] = []

    @contextmanager
    def transaction(self):
        self._levels.append([])
        try:
            yield self
        except Exception:
            self._levels.pop()
            raise
        rows = self._levels.pop()
        if self._levels:
            self._levels[-1].extend(rows)
        else:
            self.committed.extend(rows)

    def stage(self, row: dict) -> None:
        if self._levels:
            self._levels[-1].append(row)
        else:
            self.committed.append(row)


class FakeProductStore:
    """
    Pool and repository doubles sharing one in-memory products table.

    Rows whose name is in bad_names fail to insert with a DataError.
    """

    def __init__(self):
        self.rows: list[dict] = []
        self.bad_names: set[str] = set()
        self.fail_clear = False
        self.clear_calls = 0
        self.insert_many_calls = 0
        self.invalidations: list[int] = []

    # pool interface
    @contextmanager
    def get_connection(self):
        yield FakeConnection(self.rows)

    # repository interface
    def clear(self, conn=None) -> int:
        if self.fail_clear:
            raise psycopg.OperationalError("connection lost")
        self.clear_calls += 1
        deleted = len(self.rows)
        self.rows.clear()
        return deleted

    def invalidate_cache(self) -> None:
        # Number of bulk inserts done when the cache was dropped
        self.invalidations.append(self.insert_many_calls)

    def insert_many(self, conn: FakeConnection, rows: list[dict]) -> int:
        self.insert_many_calls += 1
        for row in rows:
            self._check(row)
            conn.stage(row)
        return len(rows)

    def insert_one(self, conn: FakeConnection, row: dict) -> None:
        self._check(row)
        conn.stage(row)

    def _check(self, row: dict) -> None:
        if row["name"] in self.bad_names:
            raise psycopg.DataError(f"invalid input for {row['name']}")


@pytest.fixture(scope="function")
def product_store() -> FakeProductStore:
    return FakeProductStore()


# =======================
# ENRICHMENT FIXTURES
# =======================

@pytest.fixture(scope="function")
def snapshot() -> ExchangeRateSnapshot:
    return ExchangeRateSnapshot(
        as_of=datetime(2025, 11, 17, 10, 0, tzinfo=timezone.utc),
        base="USD",
        rates={"EUR": 0.92, "GBP": 0.79, "BRL": 5.01},
    )


class StaticRateService:
    """Rate service double returning a fixed snapshot (or raising)."""

    def __init__(self, snapshot: ExchangeRateSnapshot, error: Exception | None = None):
        self.snapshot = snapshot
        self.error = error
        self.calls = 0

    def get_snapshot(self) -> ExchangeRateSnapshot:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.snapshot

    def close(self) -> None:
        pass


@pytest.fixture(scope="function")
def rate_service(snapshot) -> StaticRateService:
    return StaticRateService(snapshot)


# =======================
# QUEUE FIXTURES (kombu memory transport)
# =======================

def make_queue_client(**overrides) -> QueueClient:
    """
    Build a client on the in-process memory broker.

    The memory broker is shared by the whole process, so every client gets
    its own exchange and queue names.
    """
    suffix = uuid4().hex[:8]
    options = dict(
        url="memory://",
        exchange_name=f"test_exchange_{suffix}",
        queue_name=f"test_queue_{suffix}",
        routing_key="process.csv",
        transport_options={"polling_interval": 0.01},
        poll_interval=0.05,
        reconnect_delay=0.01,
        max_reconnect_attempts=3,
        connection_wait_timeout=2.0,
    )
    options.update(overrides)
    return QueueClient(**options)


@pytest.fixture(scope="function")
def queue_factory():
    """Factory for memory-broker clients; every client is closed after the test."""
    clients: list[QueueClient] = []

    def factory(**overrides) -> QueueClient:
        client = make_queue_client(**overrides)
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.close()


@pytest.fixture(scope="function")
def queue_client(queue_factory) -> QueueClient:
    """Connected memory-broker client."""
    client = queue_factory()
    assert client.connect()
    return client


# =======================
# FILE FIXTURES
# =======================

def make_csv(rows: list[str], header: str = "name;price;expiration") -> bytes:
    """Join a header and rows into a ';'-delimited payload."""
    return ("\n".join([header, *rows]) + "\n").encode("utf-8")


@pytest.fixture(scope="session")
def csv_builder():
    return make_csv


@pytest.fixture(scope="function")
def scenario_csv() -> bytes:
    """One valid row followed by a bad price and a bad date."""
    return make_csv([
        "Milk;$1,234.56;12/31/2025",
        "Bread;abc;12/31/2025",
        "Eggs;2.50;02/30/2025",
    ])


# =======================
# TIME FIXTURES
# =======================

class FakeClock:
    """Monotonic clock that only moves when a test advances it."""

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture(scope="function")
def fake_clock() -> FakeClock:
    return FakeClock()
