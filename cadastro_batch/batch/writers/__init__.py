"""
Batch data sink writers.
"""

from .sql_batch_writer import SqlBatchItemWriter, build_insert_sql

__all__ = [
    "SqlBatchItemWriter",
    "build_insert_sql",
]
