"""
Pytest configuration and fixtures for cadastro-batch tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import psycopg
import pytest
from dotenv import load_dotenv
from testcontainers.postgres import PostgresContainer

from cadastro_batch.batch.readers import FlatFileItemReader
from cadastro_batch.batch.writers import SqlBatchItemWriter
from cadastro_batch.config import DEFAULT_COLUMNS
from cadastro_batch.core.errors import ResourceUnavailableError
from cadastro_batch.warehouse.connection import DatabaseConnectionPool
from cadastro_batch.warehouse.transaction import TransactionManager

PROJECT_ROOT = Path(__file__).resolve().parent.parent


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
        "markers", "e2e: End-to-end tests that run the CLI against real databases"
    )


# =======================
# FAKE DATABASE (unit tests)
# =======================

class FakeCursor:
    """Cursor that stages executemany rows on its connection."""

    def __init__(self, connection: "FakeConnection"):
        self.connection = connection
        self.rowcount = -1

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def executemany(self, query, params_seq):
        pool = self.connection.pool
        params = list(params_seq)
        pool.executemany_calls.append((query, params))

        if pool.fail_on_call == len(pool.executemany_calls):
            raise psycopg.OperationalError("server closed the connection unexpectedly")

        self.connection.pending.extend(params)
        self.rowcount = len(params) if pool.reported_rowcount is None else pool.reported_rowcount


class FakeConnection:
    """Connection whose staged rows become visible in the pool only on commit."""

    def __init__(self, pool: "FakePool"):
        self.pool = pool
        self.pending: list[dict] = []

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        if self.pool.fail_commit:
            raise psycopg.OperationalError("could not commit transaction")
        self.pool.rows.extend(self.pending)
        self.pending.clear()
        self.pool.commits += 1

    def rollback(self):
        self.pending.clear()
        self.pool.rollbacks += 1


class FakePool:
    """
    Stand-in for DatabaseConnectionPool with an in-memory table.

    Attributes:
        rows: Committed rows
        executemany_calls: (query, params) of every executemany, in order
        fail_on_call: 1-based executemany call that raises, None for never
        fail_open: Make open() raise ResourceUnavailableError
        fail_commit: Make every commit raise
        reported_rowcount: Force the rowcount reported by executemany
    """

    def __init__(self):
        self.rows: list[dict] = []
        self.executemany_calls: list[tuple[str, list[dict]]] = []
        self.commits = 0
        self.rollbacks = 0
        self.checkouts = 0
        self.active = 0
        self.fail_on_call: int | None = None
        self.fail_commit = False
        self.fail_open = False
        self.opened = False
        self.reported_rowcount: int | None = None

    def open(self):
        if self.fail_open:
            raise ResourceUnavailableError("datasource 'sink'", "failed to connect after 3 attempts")
        self.opened = True

    @property
    def write_sizes(self) -> list[int]:
        return [len(params) for _, params in self.executemany_calls]

    @contextmanager
    def get_connection(self):
        self.checkouts += 1
        self.active += 1
        try:
            yield FakeConnection(self)
        finally:
            self.active -= 1


@pytest.fixture
def fake_pool() -> FakePool:
    """In-memory pool with commit/rollback semantics"""
    return FakePool()


@pytest.fixture
def transaction_manager(fake_pool) -> TransactionManager:
    return TransactionManager(fake_pool)


@pytest.fixture
def pessoa_writer(transaction_manager) -> SqlBatchItemWriter:
    return SqlBatchItemWriter(transaction_manager, table="pessoa", columns=DEFAULT_COLUMNS)


# =======================
# ENVIRONMENT
# =======================

@pytest.fixture(scope="session", autouse=True)
def test_env_vars():
    """
    Set test environment variables

    This fixture loads config/test.env and sets environment variables
    """
    env_path = PROJECT_ROOT / "config" / "test.env"

    if env_path.exists():
        load_dotenv(env_path, override=True)


# =======================
# FILE FIXTURES
# =======================

@pytest.fixture
def write_source(tmp_path):
    """
    Write a source file from a list of lines

    Returns:
        Function taking the lines and returning the file path
    """
    def _write(lines: list[str], name: str = "cadastros.csv") -> Path:
        path = tmp_path / name
        path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_reader():
    """Build a reader over a path with the default pessoa columns"""
    def _make(path, **kwargs) -> FlatFileItemReader:
        return FlatFileItemReader(path, names=DEFAULT_COLUMNS, **kwargs)

    return _make


@pytest.fixture
def data_lines():
    """Generate valid pessoa source lines"""
    def _lines(count: int) -> list[str]:
        return [
            f"Pessoa {i},{10000000000 + i},pessoa{i}@example.com,555-{i:04d},{18 + i % 60}"
            for i in range(1, count + 1)
        ]

    return _lines


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance with the sink and metadata tables created
    """
    with PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_batch",
        password="test_password",
        dbname="test_cadastros",
    ) as postgres:
        pool = DatabaseConnectionPool(**container_db_kwargs(postgres), name="init")
        pool.open()
        try:
            for script in ("init-db.sql", "init-batch-metadata.sql"):
                init_sql = (PROJECT_ROOT / "docker" / script).read_text()
                with pool.get_connection() as conn:
                    with conn.cursor() as cur:
                        cur.execute(init_sql)
                    conn.commit()
        finally:
            pool.close()

        yield postgres


def container_db_kwargs(postgres: PostgresContainer) -> dict:
    """Connection arguments for a DatabaseConnectionPool on the test container"""
    return {
        "host": postgres.get_container_host_ip(),
        "port": int(postgres.get_exposed_port(5432)),
        "database": "test_cadastros",
        "user": "test_batch",
        "password": "test_password",
    }


@pytest.fixture
def db_kwargs(postgres_container) -> dict:
    """Connection arguments of the test database"""
    return container_db_kwargs(postgres_container)


@pytest.fixture(scope="function")
def db_pool(postgres_container) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Open pool on the test database with empty tables

    Yields:
        DatabaseConnectionPool
    """
    pool = DatabaseConnectionPool(**container_db_kwargs(postgres_container), name="test")
    pool.open()
    pool.execute_command("TRUNCATE TABLE batch_step_execution, batch_job_execution, pessoa RESTART IDENTITY")
    try:
        yield pool
    finally:
        pool.close()


@pytest.fixture
def container_env(postgres_container, monkeypatch):
    """Point both datasources of the job at the test container via env vars"""
    kwargs = container_db_kwargs(postgres_container)
    for prefix in ("SINK_DB", "METADATA_DB"):
        monkeypatch.setenv(f"{prefix}_HOST", kwargs["host"])
        monkeypatch.setenv(f"{prefix}_PORT", str(kwargs["port"]))
        monkeypatch.setenv(f"{prefix}_NAME", kwargs["database"])
        monkeypatch.setenv(f"{prefix}_USER", kwargs["user"])
        monkeypatch.setenv(f"{prefix}_PASSWORD", kwargs["password"])
    return kwargs


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep datasource variables from the developer shell out of tests"""
    for name in list(os.environ):
        if name.startswith(("SINK_DB_", "METADATA_DB_", "BATCH_")):
            monkeypatch.delenv(name, raising=False)
