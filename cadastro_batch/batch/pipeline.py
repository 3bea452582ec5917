"""
Batch job assembly.

Builds the reader, writer, transaction manager, step and job from
validated settings, and owns the datasource pools for the life of a run.
"""

from pydantic import BaseModel

from cadastro_batch.batch.job import SimpleJob
from cadastro_batch.batch.readers import FlatFileItemReader
from cadastro_batch.batch.repository import InMemoryJobRepository, JobRepository
from cadastro_batch.batch.step import ChunkOrientedStep
from cadastro_batch.batch.writers import SqlBatchItemWriter
from cadastro_batch.config import BatchSettings, JobSettings
from cadastro_batch.core.errors import ConfigurationError
from cadastro_batch.core.models import JobExecution, Pessoa, RunResult
from cadastro_batch.observability.logger import get_logger
from cadastro_batch.warehouse.connection import DatabaseConnectionPool
from cadastro_batch.warehouse.job_repository import PostgresJobRepository
from cadastro_batch.warehouse.transaction import TransactionManager

logger = get_logger(__name__)


def check_column_mapping(job_settings: JobSettings, target_type: type[BaseModel] = Pessoa) -> None:
    """
    Check that reader names, writer columns and model fields line up.

    Records are mapped by position: field i of a line becomes attribute i
    of the model and is bound to column i of the insert.

    Raises:
        ConfigurationError: If the three lists differ
    """
    fields = list(target_type.model_fields)
    names = [name.strip() for name in job_settings.names]
    columns = [column.strip() for column in job_settings.columns]

    if names != fields:
        raise ConfigurationError(
            f"Reader names {names} do not match {target_type.__name__} fields {fields}"
        )
    if columns != names:
        raise ConfigurationError(f"Writer columns {columns} do not match reader names {names}")


def build_job(
    job_settings: JobSettings,
    sink_pool: DatabaseConnectionPool,
    repository: JobRepository,
    target_type: type[BaseModel] = Pessoa,
) -> SimpleJob:
    """
    Assemble the job from its settings.

    Args:
        job_settings: Job, reader and writer settings
        sink_pool: Open pool of the business datasource
        repository: Job repository
        target_type: Model each source line is decoded into

    Returns:
        A SimpleJob with one chunk-oriented step

    Raises:
        ConfigurationError: If the settings are inconsistent
    """
    check_column_mapping(job_settings, target_type)

    reader = FlatFileItemReader(
        path=job_settings.source_path,
        names=job_settings.names,
        target_type=target_type,
        comment_prefixes=job_settings.comment_prefixes,
        delimiter=job_settings.delimiter,
        encoding=job_settings.encoding,
        strict=job_settings.strict,
    )
    transaction_manager = TransactionManager(sink_pool)
    writer = SqlBatchItemWriter(
        transaction_manager=transaction_manager,
        table=job_settings.table,
        columns=job_settings.columns,
    )
    step = ChunkOrientedStep(
        name=job_settings.step_name,
        reader=reader,
        writer=writer,
        transaction_manager=transaction_manager,
        chunk_size=job_settings.chunk_size,
    )
    return SimpleJob(name=job_settings.job_name, steps=[step], repository=repository)


class BatchPipeline:
    """
    Runs the configured job against real datasources.

    Opens the job metadata pool, when configured, on entry. The sink pool
    is opened by the step at the start of a run, so an unreachable sink
    fails that run and is recorded like any other step failure. Both pools
    are closed on exit:

        with BatchPipeline(settings) as pipeline:
            result = pipeline.run()
    """

    def __init__(self, settings: BatchSettings):
        """
        Initialize batch pipeline.

        Args:
            settings: Validated batch settings
        """
        self.settings = settings
        self.sink_pool: DatabaseConnectionPool | None = None
        self.metadata_pool: DatabaseConnectionPool | None = None
        self.repository: JobRepository | None = None

    def open(self) -> None:
        """
        Open the metadata pool and prepare the sink pool.

        Raises:
            ResourceUnavailableError: If the metadata datasource cannot be reached
        """
        if self.settings.metadata is not None:
            self.metadata_pool = DatabaseConnectionPool.from_settings(self.settings.metadata, "metadata")
            self.metadata_pool.open()
            self.repository = PostgresJobRepository(self.metadata_pool)
        else:
            logger.warning("No metadata datasource configured, job history is kept in memory only")
            self.repository = InMemoryJobRepository()

        self.sink_pool = DatabaseConnectionPool.from_settings(self.settings.sink, "sink")

    def close(self) -> None:
        for pool in (self.sink_pool, self.metadata_pool):
            if pool is not None:
                pool.close()
        self.sink_pool = None
        self.metadata_pool = None

    def run(self) -> RunResult:
        """
        Execute one run of the configured job.

        Returns:
            RunResult of the run
        """
        if self.sink_pool is None or self.repository is None:
            raise RuntimeError("Pipeline is not open. Call open() first.")

        job = build_job(self.settings.job, self.sink_pool, self.repository)
        return job.run()

    def recent_runs(self, limit: int = 20) -> list[JobExecution]:
        """Most recent executions of the configured job, newest first."""
        if self.repository is None:
            raise RuntimeError("Pipeline is not open. Call open() first.")
        return self.repository.find_job_executions(self.settings.job.job_name, limit)

    def __enter__(self):
        try:
            self.open()
        except Exception:
            self.close()
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
