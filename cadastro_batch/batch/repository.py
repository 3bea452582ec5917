"""
Job repository interface and in-memory implementation.

The repository records job and step executions so runs can be audited
and so each run gets an identifier that was never used before.
"""

from abc import ABC, abstractmethod

from cadastro_batch.core.errors import JobExecutionAlreadyRunningError
from cadastro_batch.core.models import JobExecution, StepExecution


class JobRepository(ABC):
    """
    Abstract store for job and step execution metadata.

    Implementations must reject a second execution with the same
    (job_name, run_id) pair.
    """

    @abstractmethod
    def last_run_id(self, job_name: str) -> int | None:
        """Return the highest run id recorded for the job, None if never run."""
        pass

    @abstractmethod
    def create_job_execution(self, job_name: str, run_id: int) -> JobExecution:
        """
        Register a new execution.

        Raises:
            JobExecutionAlreadyRunningError: If (job_name, run_id) already exists
        """
        pass

    @abstractmethod
    def update_job_execution(self, job_execution: JobExecution) -> None:
        pass

    @abstractmethod
    def add_step_execution(self, job_execution: JobExecution, step_execution: StepExecution) -> None:
        """Persist a step execution that the job has attached to job_execution."""
        pass

    @abstractmethod
    def update_step_execution(self, job_execution: JobExecution, step_execution: StepExecution) -> None:
        pass

    @abstractmethod
    def find_job_executions(self, job_name: str, limit: int = 20) -> list[JobExecution]:
        """Return the most recent executions of a job, newest first."""
        pass


class InMemoryJobRepository(JobRepository):
    """
    Repository kept in process memory.

    Used when no metadata datasource is configured; history is lost when
    the process exits.
    """

    def __init__(self):
        self._executions: dict[tuple[str, int], JobExecution] = {}
        self._next_job_execution_id = 1
        self._next_step_execution_id = 1

    def last_run_id(self, job_name: str) -> int | None:
        run_ids = [run_id for name, run_id in self._executions if name == job_name]
        return max(run_ids) if run_ids else None

    def create_job_execution(self, job_name: str, run_id: int) -> JobExecution:
        key = (job_name, run_id)
        if key in self._executions:
            raise JobExecutionAlreadyRunningError(job_name, run_id)

        execution = JobExecution(
            job_name=job_name,
            run_id=run_id,
            job_execution_id=self._next_job_execution_id,
        )
        self._next_job_execution_id += 1
        self._executions[key] = execution
        return execution

    def update_job_execution(self, job_execution: JobExecution) -> None:
        self._executions[(job_execution.job_name, job_execution.run_id)] = job_execution

    def add_step_execution(self, job_execution: JobExecution, step_execution: StepExecution) -> None:
        step_execution.step_execution_id = self._next_step_execution_id
        self._next_step_execution_id += 1

    def update_step_execution(self, job_execution: JobExecution, step_execution: StepExecution) -> None:
        # Step executions are held by reference on the job execution
        pass

    def find_job_executions(self, job_name: str, limit: int = 20) -> list[JobExecution]:
        executions = [
            execution for (name, _), execution in self._executions.items() if name == job_name
        ]
        executions.sort(key=lambda execution: execution.run_id, reverse=True)
        return executions[:limit]
