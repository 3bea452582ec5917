"""
Flat file reader for delimited text sources.

Produces one record per non-comment line and maps the delimited fields
positionally onto the target model. Blank lines are data lines too and
fail decoding.
"""

import csv
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import IO

from pydantic import BaseModel, ValidationError

from cadastro_batch.core.errors import (
    ConfigurationError,
    MalformedRecordError,
    ReaderNotOpenError,
    ResourceUnavailableError,
)
from cadastro_batch.core.models import Pessoa
from cadastro_batch.observability.logger import get_logger
from cadastro_batch.utils.validation import ValidationError as InputValidationError
from cadastro_batch.utils.validation import validate_column_names

logger = get_logger(__name__)


class FlatFileItemReader:
    """
    Reads records lazily from a delimited text file.

    The reader owns an open file handle between open() and close().
    It can be used as a context manager, which opens and closes it:

        with FlatFileItemReader("cadastros.csv", names=[...]) as reader:
            for pessoa in reader:
                ...
    """

    def __init__(
        self,
        path: str | Path,
        names: Sequence[str],
        target_type: type[BaseModel] = Pessoa,
        comment_prefixes: Sequence[str] = ("---",),
        delimiter: str = ",",
        quote_char: str = '"',
        encoding: str = "utf-8",
        strict: bool = True,
        name: str = "reader",
    ):
        """
        Initialize the reader.

        Args:
            path: Path to the delimited text file
            names: Column names in positional order, one per field
            target_type: Pydantic model each line is decoded into
            comment_prefixes: Lines starting with any of these are skipped
            delimiter: Field delimiter
            quote_char: Character used to quote fields containing the delimiter
            encoding: File encoding
            strict: Fail on open() if the file is missing; otherwise read nothing
            name: Reader name used in log messages

        Raises:
            ConfigurationError: If the column names are invalid for the target type
        """
        try:
            self.names = validate_column_names(names)
        except InputValidationError as e:
            raise ConfigurationError(f"Reader '{name}': {e}") from e

        unknown = [column for column in self.names if column not in target_type.model_fields]
        if unknown:
            raise ConfigurationError(
                f"Reader '{name}': columns {unknown} are not fields of {target_type.__name__}"
            )
        if len(delimiter) != 1:
            raise ConfigurationError(f"Reader '{name}': delimiter must be a single character")

        self.path = Path(path)
        self.target_type = target_type
        self.comment_prefixes = tuple(comment_prefixes)
        self.delimiter = delimiter
        self.quote_char = quote_char
        self.encoding = encoding
        self.strict = strict
        self.name = name

        self.line_count = 0
        self.read_count = 0
        self._handle: IO[str] | None = None
        self._opened = False

    def open(self) -> None:
        """
        Open the underlying file.

        Raises:
            ResourceUnavailableError: If the file cannot be opened in strict mode
        """
        if self._opened:
            return

        self.line_count = 0
        self.read_count = 0
        try:
            self._handle = open(self.path, encoding=self.encoding, newline="")
        except OSError as e:
            if self.strict:
                raise ResourceUnavailableError(
                    str(self.path), f"cannot open source file: {e.strerror or e}"
                ) from e
            logger.warning(f"Source file {self.path} is not readable, reader '{self.name}' will read nothing")
            self._handle = None

        self._opened = True
        logger.debug(f"Opened reader '{self.name}' on {self.path}")

    def read(self) -> BaseModel | None:
        """
        Read the next record.

        Returns:
            The next decoded record, or None at end of input

        Raises:
            ReaderNotOpenError: If open() has not been called
            MalformedRecordError: If a data line cannot be decoded
            ResourceUnavailableError: If the file cannot be read in the configured encoding
        """
        if not self._opened:
            raise ReaderNotOpenError(f"Reader '{self.name}' must be opened before reading")
        if self._handle is None:
            return None

        try:
            for raw_line in self._handle:
                self.line_count += 1
                line = raw_line.rstrip("\r\n")
                if self.is_comment(line):
                    continue

                record = self.decode(line, self.line_count)
                self.read_count += 1
                return record
        except UnicodeDecodeError as e:
            raise ResourceUnavailableError(
                str(self.path), f"not valid {self.encoding} after line {self.line_count}"
            ) from e

        return None

    def close(self) -> None:
        """Release the file handle. Safe to call more than once."""
        if self._handle is not None:
            self._handle.close()
            self._handle = None
            logger.debug(f"Closed reader '{self.name}' after {self.line_count} lines")
        self._opened = False

    def is_comment(self, line: str) -> bool:
        return line.startswith(self.comment_prefixes) if self.comment_prefixes else False

    def decode(self, line: str, line_number: int) -> BaseModel:
        """
        Decode one data line into the target type.

        Args:
            line: Raw line without its line terminator
            line_number: 1-based physical line number, used in errors

        Returns:
            Decoded record

        Raises:
            MalformedRecordError: On wrong field count or failed coercion
        """
        try:
            fields = next(csv.reader([line], delimiter=self.delimiter, quotechar=self.quote_char))
        except csv.Error as e:
            raise MalformedRecordError(line_number, line, f"cannot tokenize line: {e}") from e

        if len(fields) != len(self.names):
            raise MalformedRecordError(
                line_number,
                line,
                f"expected {len(self.names)} fields, found {len(fields)}",
            )

        values = {column: value.strip() for column, value in zip(self.names, fields)}
        try:
            return self.target_type(**values)
        except ValidationError as e:
            reason = "; ".join(
                f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}"
                for error in e.errors()
            )
            raise MalformedRecordError(line_number, line, reason) from e

    def __iter__(self) -> Iterator[BaseModel]:
        while True:
            record = self.read()
            if record is None:
                return
            yield record

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
