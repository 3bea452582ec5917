"""
Transaction demarcation for chunk writes.

The transaction manager hands out one pooled connection per transaction
and exposes it as the current connection while the transaction is open,
so writers can take part in it without owning it.
"""
from contextlib import contextmanager

import psycopg

from cadastro_batch.observability.logger import get_logger

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)


class TransactionManager:
    """
    Begins, commits and rolls back transactions on a connection pool.

    Usage:
        with tx_manager.transaction():
            writer.write(items)   # uses tx_manager.current_connection
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize transaction manager.

        Args:
            pool: Pool of the datasource the transactions run against
        """
        self.pool = pool
        self._connection: psycopg.Connection | None = None

    @property
    def current_connection(self) -> psycopg.Connection | None:
        """Connection of the open transaction, None outside a transaction."""
        return self._connection

    @property
    def in_transaction(self) -> bool:
        return self._connection is not None

    def open(self) -> None:
        """
        Open the underlying pool if it is not open yet.

        Raises:
            ResourceUnavailableError: If the datasource cannot be reached
        """
        self.pool.open()

    @contextmanager
    def transaction(self):
        """
        Run the block inside one transaction.

        Commits when the block finishes, rolls back when it raises (including
        when the commit itself fails) and always returns the connection to
        the pool.

        Yields:
            psycopg.Connection: Connection bound to the transaction

        Raises:
            RuntimeError: If a transaction is already open on this manager
        """
        if self.in_transaction:
            raise RuntimeError("A transaction is already in progress")

        with self.pool.get_connection() as conn:
            self._connection = conn
            try:
                yield conn
                conn.commit()
            except BaseException:
                try:
                    conn.rollback()
                except psycopg.Error as rollback_error:
                    logger.error(f"Rollback failed: {rollback_error}")
                raise
            finally:
                self._connection = None
