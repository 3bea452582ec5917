"""
Chunk-oriented batch processing module.
"""

from .chunk import Chunk
from .job import RunIdIncrementer, SimpleJob
from .readers import FlatFileItemReader
from .repository import InMemoryJobRepository, JobRepository
from .step import ChunkOrientedStep, StepState
from .writers import SqlBatchItemWriter

__all__ = [
    "Chunk",
    "ChunkOrientedStep",
    "StepState",
    "SimpleJob",
    "RunIdIncrementer",
    "FlatFileItemReader",
    "SqlBatchItemWriter",
    "JobRepository",
    "InMemoryJobRepository",
]
