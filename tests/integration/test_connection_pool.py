"""
Integration tests for the database connection pool

Tests the PostgreSQL connection pool against a testcontainers database.
"""
import pytest

from cadastro_batch.config import DataSourceSettings
from cadastro_batch.core.errors import ResourceUnavailableError
from cadastro_batch.warehouse.connection import DatabaseConnectionPool


@pytest.mark.integration
def test_connection_pool_initialization(db_kwargs):
    """Test that connection pool initializes correctly"""
    pool = DatabaseConnectionPool(**db_kwargs, min_size=2, max_size=5)

    pool.open()

    assert pool._pool is not None
    assert pool._pool.min_size == 2
    assert pool._pool.max_size == 5

    pool.close()
    assert pool._pool is None


@pytest.mark.integration
def test_get_connection(db_kwargs):
    """Test getting a connection from the pool"""
    with DatabaseConnectionPool(**db_kwargs) as pool:
        with pool.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 as test")
                result = cur.fetchone()
                assert result["test"] == 1


@pytest.mark.integration
def test_execute_query_and_command(db_pool):
    """Test executing commands and queries using the pool"""
    affected = db_pool.execute_command(
        "INSERT INTO pessoa (name, document, email, phone, age) VALUES (%s, %s, %s, %s, %s)",
        ("Ana", "111", "ana@x.com", "555-0001", 30),
    )
    assert affected == 1

    result = db_pool.execute_query("SELECT name, age FROM pessoa")
    assert result == [{"name": "Ana", "age": 30}]


@pytest.mark.integration
def test_from_settings(db_kwargs):
    """Test building a pool from datasource settings"""
    settings = DataSourceSettings(**db_kwargs)

    with DatabaseConnectionPool.from_settings(settings, "sink") as pool:
        assert pool.name == "sink"
        assert pool.execute_query("SELECT 42 as answer")[0]["answer"] == 42


@pytest.mark.integration
def test_unreachable_database(db_kwargs):
    """Test that a wrong password fails with ResourceUnavailableError"""
    kwargs = {**db_kwargs, "password": "wrong", "timeout": 2.0}
    pool = DatabaseConnectionPool(**kwargs, name="sink")

    with pytest.raises(ResourceUnavailableError) as exc_info:
        pool.open(max_retries=2, retry_delay=0.1)

    assert "sink" in exc_info.value.resource
    assert pool._pool is None


@pytest.mark.unit
def test_password_required():
    """Test that a pool cannot be configured without a password"""
    with pytest.raises(ValueError, match="password"):
        DatabaseConnectionPool(host="localhost", port=5432, database="db", user="u", password="")


@pytest.mark.unit
def test_get_connection_before_open():
    """Test that using a closed pool raises"""
    pool = DatabaseConnectionPool(host="localhost", port=5432, database="db", user="u", password="p")

    with pytest.raises(RuntimeError, match="not open"):
        with pool.get_connection():
            pass
