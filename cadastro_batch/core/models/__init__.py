"""
Core data models for the cadastro batch job.

All models use Pydantic for runtime validation and type safety.
"""

from .job_execution import BatchStatus, JobExecution, RunResult, StepExecution
from .pessoa import Pessoa

__all__ = [
    "Pessoa",
    "BatchStatus",
    "JobExecution",
    "StepExecution",
    "RunResult",
]
