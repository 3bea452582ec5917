"""
Job runner.

A job is an ordered list of steps. Every run gets a fresh run id, its
execution metadata is stored in the job repository, and the first failing
step ends the run.
"""

from collections.abc import Sequence
from datetime import datetime

from cadastro_batch.batch.repository import JobRepository
from cadastro_batch.batch.step import ChunkOrientedStep
from cadastro_batch.core.errors import ConfigurationError
from cadastro_batch.core.models import JobExecution, RunResult, StepExecution
from cadastro_batch.observability.logger import get_logger, log_operation, run_context
from cadastro_batch.observability.metrics import increment_counter, job_runs_total

logger = get_logger(__name__)


class RunIdIncrementer:
    """Derives the next run id from the last one recorded (1, 2, 3, ...)."""

    def next_run_id(self, last_run_id: int | None) -> int:
        return (last_run_id or 0) + 1


class SimpleJob:
    """
    Runs its steps in order, one run per call to run().
    """

    def __init__(
        self,
        name: str,
        steps: Sequence[ChunkOrientedStep],
        repository: JobRepository,
        incrementer: RunIdIncrementer | None = None,
    ):
        """
        Initialize the job.

        Args:
            name: Job name, the key run ids are scoped to
            steps: Steps to execute, in order
            repository: Store for execution metadata
            incrementer: Run id generator (RunIdIncrementer by default)

        Raises:
            ConfigurationError: If no step is given
        """
        if not steps:
            raise ConfigurationError(f"Job '{name}' must have at least one step")

        self.name = name
        self.steps = list(steps)
        self.repository = repository
        self.incrementer = incrementer or RunIdIncrementer()

    def run(self) -> RunResult:
        """
        Execute one run of the job.

        Returns:
            RunResult with the terminal status, the run id and, when the run
            failed, the error that failed it

        Raises:
            JobExecutionAlreadyRunningError: If the generated run id is already taken
        """
        run_id = self.incrementer.next_run_id(self.repository.last_run_id(self.name))
        execution = self.repository.create_job_execution(self.name, run_id)

        with run_context(job=self.name, run_id=run_id):
            error = self._execute_steps(execution)

            execution.end_time = datetime.now()
            if error is None:
                execution.status = "COMPLETED"
                logger.info(f"Job '{self.name}' run_id={run_id} completed: {execution.write_count} records written")
            else:
                execution.status = "FAILED"
                execution.exit_description = f"{type(error).__name__}: {error}"
                logger.error(f"Job '{self.name}' run_id={run_id} failed: {execution.exit_description}")

            self.repository.update_job_execution(execution)
            increment_counter(job_runs_total, 1, job=self.name, status=execution.status)

        return RunResult(
            job_name=self.name,
            run_id=run_id,
            status=execution.status,
            write_count=execution.write_count,
            error=error,
        )

    def _execute_steps(self, execution: JobExecution) -> Exception | None:
        """Run the steps in order, stopping at the first failure, and return that failure."""
        execution.status = "STARTED"
        execution.start_time = datetime.now()
        self.repository.update_job_execution(execution)
        logger.info(f"Job '{self.name}' started with run_id={execution.run_id}")

        for step in self.steps:
            step_execution = StepExecution(step_name=step.name)
            execution.step_executions.append(step_execution)
            self.repository.add_step_execution(execution, step_execution)

            try:
                with log_operation(f"Step {step.name}", logger=logger, step=step.name):
                    step.execute(step_execution)
            except Exception as e:
                return e
            finally:
                self.repository.update_step_execution(execution, step_execution)

        return None
