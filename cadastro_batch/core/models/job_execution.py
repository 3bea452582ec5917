"""
Execution metadata for job runs and their steps.

JobExecution and StepExecution are written to the job repository at start
and on completion; RunResult is what a caller gets back from a run.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

BatchStatus = Literal["STARTING", "STARTED", "COMPLETED", "FAILED"]


class StepExecution(BaseModel):
    """
    Progress and outcome of one step within a run.

    Attributes:
        step_name: Configured step name
        status: Current status of the step
        read_count: Records decoded from the source
        write_count: Records written in committed chunks
        commit_count: Chunks committed
        rollback_count: Chunks rolled back or discarded
        start_time: When the step started
        end_time: When the step finished (None while running)
        exit_description: Error summary when the step failed
        step_execution_id: Repository identifier, assigned on insert
    """

    step_name: str = Field(..., min_length=1)
    status: BatchStatus = "STARTING"
    read_count: int = 0
    write_count: int = 0
    commit_count: int = 0
    rollback_count: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None
    exit_description: str | None = None
    step_execution_id: int | None = None


class JobExecution(BaseModel):
    """
    One run of a job.

    Attributes:
        job_name: Configured job name
        run_id: Run identifier, unique per job name
        status: Current status of the run
        create_time: When the execution was registered
        start_time: When the first step started
        end_time: When the run finished (None while running)
        exit_description: Error summary when the run failed
        step_executions: Steps executed so far, in order
        job_execution_id: Repository identifier, assigned on insert
    """

    job_name: str = Field(..., min_length=1)
    run_id: int = Field(..., ge=1)
    status: BatchStatus = "STARTING"
    create_time: datetime = Field(default_factory=datetime.now)
    start_time: datetime | None = None
    end_time: datetime | None = None
    exit_description: str | None = None
    step_executions: list[StepExecution] = Field(default_factory=list)
    job_execution_id: int | None = None

    @property
    def write_count(self) -> int:
        return sum(step.write_count for step in self.step_executions)


class RunResult(BaseModel):
    """Outcome of JobRunner.run()."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    job_name: str
    run_id: int
    status: BatchStatus
    write_count: int = 0
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "COMPLETED"
