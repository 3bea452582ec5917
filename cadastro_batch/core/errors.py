"""
Exception hierarchy for the batch job.

Every failure raised by the reader, writer, step or job derives from
BatchError so callers can handle the whole family in one place.
"""


class BatchError(Exception):
    """Base class for all batch job errors."""
    pass


class ConfigurationError(BatchError):
    """Raised when settings or job assembly are invalid."""
    pass


class ResourceUnavailableError(BatchError):
    """Raised when the source file or a database cannot be reached."""

    def __init__(self, resource: str, message: str):
        self.resource = resource
        self.message = message
        super().__init__(f"{resource}: {message}")


class MalformedRecordError(BatchError):
    """Raised when a source line cannot be decoded into a record."""

    def __init__(self, line_number: int, line: str, reason: str):
        self.line_number = line_number
        self.line = line
        self.reason = reason
        super().__init__(f"Malformed record at line {line_number}: {reason} (input: {line!r})")


class ReaderNotOpenError(BatchError):
    """Raised when a reader is used before open() or after close()."""
    pass


class WriteFailure(BatchError):
    """Raised when the sink rejects a chunk."""

    def __init__(self, message: str, item_count: int = 0):
        self.item_count = item_count
        super().__init__(message)


class JobExecutionAlreadyRunningError(BatchError):
    """Raised when a run with the same job name and run id already exists."""

    def __init__(self, job_name: str, run_id: int):
        self.job_name = job_name
        self.run_id = run_id
        super().__init__(f"Job execution already exists for job={job_name} run_id={run_id}")
