"""
Integration tests for the batch job against PostgreSQL.

Tests chunked commits, rollback of a failing chunk and run metadata.
"""

import pytest

from cadastro_batch.batch.pipeline import BatchPipeline, build_job
from cadastro_batch.config import DataSourceSettings, JobSettings, build_settings
from cadastro_batch.core.errors import MalformedRecordError, ResourceUnavailableError
from cadastro_batch.warehouse.job_repository import PostgresJobRepository


def count_rows(pool) -> int:
    return pool.execute_query("SELECT COUNT(*) AS count FROM pessoa")[0]["count"]


@pytest.fixture
def run_job(db_pool):
    """Run the pessoa job over a source file and return the RunResult"""
    repository = PostgresJobRepository(db_pool)

    def _run(path, chunk_size: int = 200):
        settings = JobSettings(source_path=path, chunk_size=chunk_size)
        return build_job(settings, db_pool, repository).run()

    return _run


@pytest.mark.integration
def test_single_record_chunks(run_job, write_source, db_pool):
    """Test the two-record file with a comment line and chunk size 1"""
    path = write_source([
        "Ana,111,ana@x.com,555-0001,30",
        "---skip",
        "Bob,222,bob@x.com,555-0002,41",
    ])

    result = run_job(path, chunk_size=1)

    assert result.status == "COMPLETED"
    rows = db_pool.execute_query("SELECT name, document, email, phone, age FROM pessoa ORDER BY id")
    assert rows == [
        {"name": "Ana", "document": "111", "email": "ana@x.com", "phone": "555-0001", "age": 30},
        {"name": "Bob", "document": "222", "email": "bob@x.com", "phone": "555-0002", "age": 41},
    ]


@pytest.mark.integration
def test_450_records(run_job, write_source, db_pool, data_lines):
    """Test that 450 records are committed in three chunks"""
    result = run_job(write_source(data_lines(450)), chunk_size=200)

    assert result.status == "COMPLETED"
    assert result.write_count == 450
    assert count_rows(db_pool) == 450

    step = db_pool.execute_query("SELECT commit_count, write_count FROM batch_step_execution")[0]
    assert step == {"commit_count": 3, "write_count": 450}


@pytest.mark.integration
def test_non_numeric_age_writes_nothing(run_job, write_source, db_pool):
    """Test that a malformed only record fails the run with no rows"""
    result = run_job(write_source(["Ana,111,ana@x.com,555-0001,thirty"]))

    assert result.status == "FAILED"
    assert isinstance(result.error, MalformedRecordError)
    assert count_rows(db_pool) == 0

    job = db_pool.execute_query("SELECT status, exit_description FROM batch_job_execution")[0]
    assert job["status"] == "FAILED"
    assert "MalformedRecordError" in job["exit_description"]


@pytest.mark.integration
def test_failure_keeps_committed_chunks(run_job, write_source, db_pool, data_lines):
    """Test that chunks committed before a malformed line stay committed"""
    lines = data_lines(10)
    lines[6] = "Broken,000,broken@x.com,555-0000,old"

    result = run_job(write_source(lines), chunk_size=3)

    assert result.status == "FAILED"
    assert count_rows(db_pool) == 6


@pytest.mark.integration
def test_run_ids_recorded(run_job, write_source, db_pool, data_lines):
    """Test that every run gets the next run id, failed runs included"""
    path = write_source(data_lines(2))
    bad = write_source(["Ana,111,ana@x.com,555-0001,thirty"], name="bad.csv")

    results = [run_job(path), run_job(bad), run_job(path)]

    assert [result.run_id for result in results] == [1, 2, 3]
    rows = db_pool.execute_query("SELECT run_id, status FROM batch_job_execution ORDER BY run_id")
    assert rows == [
        {"run_id": 1, "status": "COMPLETED"},
        {"run_id": 2, "status": "FAILED"},
        {"run_id": 3, "status": "COMPLETED"},
    ]
    assert count_rows(db_pool) == 4


@pytest.mark.integration
def test_pipeline_with_both_datasources(db_pool, db_kwargs, write_source, data_lines):
    """Test BatchPipeline opening the sink and metadata pools"""
    datasource = DataSourceSettings(**db_kwargs)
    settings = build_settings({
        "job": {"source_path": str(write_source(data_lines(5))), "chunk_size": 2},
        "sink": datasource,
        "metadata": datasource,
    })

    with BatchPipeline(settings) as pipeline:
        result = pipeline.run()
        history = pipeline.recent_runs()

    assert result.status == "COMPLETED"
    assert [execution.run_id for execution in history] == [1]
    assert count_rows(db_pool) == 5
    assert pipeline.sink_pool is None


@pytest.mark.integration
def test_unreachable_sink_records_failed_run(db_pool, db_kwargs, write_source, data_lines):
    """An unreachable sink fails the run, and the run is still recorded"""
    metadata = DataSourceSettings(**db_kwargs)
    sink = DataSourceSettings(**{**db_kwargs, "host": "127.0.0.1", "port": 1, "timeout": 1.0})
    settings = build_settings({
        "job": {"source_path": str(write_source(data_lines(3)))},
        "sink": sink,
        "metadata": metadata,
    })

    with BatchPipeline(settings) as pipeline:
        result = pipeline.run()

    assert result.status == "FAILED"
    assert isinstance(result.error, ResourceUnavailableError)
    job = db_pool.execute_query("SELECT run_id, status, exit_description FROM batch_job_execution")[0]
    assert job["run_id"] == 1
    assert job["status"] == "FAILED"
    assert "ResourceUnavailableError" in job["exit_description"]
    assert count_rows(db_pool) == 0
