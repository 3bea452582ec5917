"""
Batch data source readers.
"""

from .flat_file_reader import FlatFileItemReader

__all__ = [
    "FlatFileItemReader",
]
