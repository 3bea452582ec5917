"""
Chunk-oriented step.

Coordinates the loop: read up to chunk_size records → open transaction →
write chunk → commit, until the source is exhausted.
"""

import time
from datetime import datetime
from enum import Enum

import psycopg

from cadastro_batch.batch.chunk import Chunk
from cadastro_batch.batch.readers import FlatFileItemReader
from cadastro_batch.batch.writers import SqlBatchItemWriter
from cadastro_batch.core.errors import ConfigurationError, WriteFailure
from cadastro_batch.core.models import StepExecution
from cadastro_batch.observability.logger import get_logger
from cadastro_batch.observability.metrics import (
    increment_counter,
    items_read_total,
    observe_histogram,
    record_chunk_committed,
    record_chunk_rolled_back,
    step_duration_seconds,
)
from cadastro_batch.warehouse.transaction import TransactionManager

logger = get_logger(__name__)


class StepState(str, Enum):
    STARTING = "STARTING"
    READING = "READING"
    WRITING = "WRITING"
    COMMITTED = "COMMITTED"
    FINISHED = "FINISHED"
    FAILED = "FAILED"


class ChunkOrientedStep:
    """
    Runs the read-write loop of one step, one transaction per chunk.

    Flow:
    1. Open the sink datasource and the reader
    2. Fill a chunk until it holds chunk_size records or the source ends
    3. Write the chunk inside one transaction and commit it
    4. Repeat until the source is exhausted, then close the reader

    The first read or write error rolls back the in-flight chunk, marks the
    step FAILED and is re-raised. Chunks committed before it stay committed.
    """

    def __init__(
        self,
        name: str,
        reader: FlatFileItemReader,
        writer: SqlBatchItemWriter,
        transaction_manager: TransactionManager,
        chunk_size: int = 200,
    ):
        """
        Initialize the step.

        Args:
            name: Step name
            reader: Source of records
            writer: Sink for chunks
            transaction_manager: Transactions on the sink datasource
            chunk_size: Records per chunk (and per transaction)

        Raises:
            ConfigurationError: If chunk_size is not a positive integer
        """
        if not isinstance(chunk_size, int) or isinstance(chunk_size, bool) or chunk_size < 1:
            raise ConfigurationError(f"Step '{name}': chunk_size must be a positive integer, got {chunk_size!r}")

        self.name = name
        self.reader = reader
        self.writer = writer
        self.transaction_manager = transaction_manager
        self.chunk_size = chunk_size
        self.state = StepState.STARTING

    def execute(self, step_execution: StepExecution) -> StepExecution:
        """
        Execute the step, updating step_execution as chunks are processed.

        Args:
            step_execution: Execution record to update

        Returns:
            The updated step_execution

        Raises:
            BatchError: The error that failed the step (after rollback)
        """
        self.state = StepState.STARTING
        step_execution.status = "STARTED"
        step_execution.start_time = datetime.now()
        started = time.time()
        chunk_number = 0

        try:
            self.transaction_manager.open()
            with self.reader:
                while True:
                    chunk = self._read_chunk(step_execution)
                    if len(chunk) > 0:
                        chunk_number += 1
                        self._write_chunk(chunk, chunk_number, step_execution)
                    if chunk.exhausted:
                        break
        except Exception as e:
            self.state = StepState.FAILED
            step_execution.status = "FAILED"
            step_execution.end_time = datetime.now()
            step_execution.exit_description = f"{type(e).__name__}: {e}"
            observe_histogram(step_duration_seconds, time.time() - started, step=self.name, status="FAILED")
            raise

        self.state = StepState.FINISHED
        step_execution.status = "COMPLETED"
        step_execution.end_time = datetime.now()
        observe_histogram(step_duration_seconds, time.time() - started, step=self.name, status="COMPLETED")
        logger.info(
            f"Step '{self.name}' finished: read={step_execution.read_count} "
            f"written={step_execution.write_count} commits={step_execution.commit_count}"
        )
        return step_execution

    def _read_chunk(self, step_execution: StepExecution) -> Chunk:
        self.state = StepState.READING
        chunk = Chunk(self.chunk_size)

        while not chunk.is_full:
            try:
                item = self.reader.read()
            except Exception as e:
                # Nothing of this chunk has reached the sink; it is discarded whole
                step_execution.rollback_count += 1
                record_chunk_rolled_back(self.name, type(e).__name__)
                raise

            if item is None:
                chunk.exhausted = True
                break

            chunk.add(item)
            step_execution.read_count += 1
            increment_counter(items_read_total, 1, step=self.name)

        return chunk

    def _write_chunk(self, chunk: Chunk, chunk_number: int, step_execution: StepExecution) -> None:
        self.state = StepState.WRITING

        try:
            with self.transaction_manager.transaction():
                self.writer.write(chunk.items)
        except WriteFailure as e:
            step_execution.rollback_count += 1
            record_chunk_rolled_back(self.name, type(e).__name__)
            logger.error(f"Chunk {chunk_number} of step '{self.name}' rolled back: {e}")
            raise
        except psycopg.Error as e:
            # Connection checkout or commit failed
            step_execution.rollback_count += 1
            record_chunk_rolled_back(self.name, type(e).__name__)
            logger.error(f"Chunk {chunk_number} of step '{self.name}' rolled back: {e}")
            raise WriteFailure(
                f"Failed to commit chunk {chunk_number} of step '{self.name}': {e}", len(chunk)
            ) from e

        self.state = StepState.COMMITTED
        step_execution.commit_count += 1
        step_execution.write_count += len(chunk)
        record_chunk_committed(self.name, len(chunk))
        logger.info(f"Committed chunk {chunk_number} of step '{self.name}' ({len(chunk)} items)")
