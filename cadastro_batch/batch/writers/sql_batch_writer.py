"""
Batch SQL writer for decoded records.

Inserts a chunk of records with one parameterized statement executed in
batch mode, inside the transaction opened by the step.
"""

from collections.abc import Sequence

import psycopg
from pydantic import BaseModel

from cadastro_batch.core.errors import ConfigurationError, WriteFailure
from cadastro_batch.observability.logger import get_logger
from cadastro_batch.utils.validation import ValidationError, sanitize_sql_identifier, validate_column_names
from cadastro_batch.warehouse.transaction import TransactionManager

logger = get_logger(__name__)


def build_insert_sql(table: str, columns: Sequence[str]) -> str:
    """
    Build the insert statement template for a table.

    Args:
        table: Target table
        columns: Target columns, in the order of the record fields

    Returns:
        INSERT statement with one named placeholder per column

    Raises:
        ConfigurationError: If the table or a column is not a safe identifier
    """
    try:
        table = sanitize_sql_identifier(table, "table")
        columns = [sanitize_sql_identifier(column, "column") for column in validate_column_names(columns, "columns")]
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e

    column_list = ", ".join(columns)
    placeholders = ", ".join(f"%({column})s" for column in columns)
    return f"INSERT INTO {table} ({column_list}) VALUES ({placeholders})"


class SqlBatchItemWriter:
    """
    Writes chunks of records to a relational table.

    Each record attribute is bound to the placeholder of the same name.
    The writer never commits: atomicity comes from the transaction that
    is open on the transaction manager when write() is called.
    """

    def __init__(
        self,
        transaction_manager: TransactionManager,
        table: str,
        columns: Sequence[str],
        assert_updates: bool = True,
    ):
        """
        Initialize the writer.

        Args:
            transaction_manager: Manager whose open transaction is written into
            table: Target table
            columns: Target columns, matching record attribute names
            assert_updates: Fail when the database reports fewer affected rows than items
        """
        self.transaction_manager = transaction_manager
        self.sql = build_insert_sql(table, columns)
        self.table = table.strip()
        self.columns = [column.strip() for column in columns]
        self.assert_updates = assert_updates

    def write(self, items: Sequence[BaseModel]) -> int:
        """
        Insert a chunk of records.

        Args:
            items: Records to insert, in order

        Returns:
            Number of records written

        Raises:
            WriteFailure: If no transaction is open or the database rejects the batch
        """
        if not items:
            return 0

        conn = self.transaction_manager.current_connection
        if conn is None:
            raise WriteFailure(f"No active transaction for writing to {self.table}", len(items))

        params = [{column: getattr(item, column) for column in self.columns} for item in items]

        try:
            with conn.cursor() as cur:
                cur.executemany(self.sql, params)
                rowcount = cur.rowcount
        except psycopg.Error as e:
            raise WriteFailure(f"Failed to write {len(items)} items to {self.table}: {e}", len(items)) from e

        if self.assert_updates and 0 <= rowcount < len(items):
            raise WriteFailure(
                f"Expected {len(items)} rows inserted into {self.table}, database reported {rowcount}",
                len(items),
            )

        logger.debug(f"Wrote {len(items)} items to {self.table}")
        return len(items)
