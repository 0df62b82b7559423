"""
Transaction handling for database operations.
"""
import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any

from dbmap.utils import ensure_commit

logger = logging.getLogger(__name__)


_local = threading.local()


class Transaction:
    """Context manager for running multiple statements in one transaction.

    This implementation uses thread-local storage to track transaction state.
    Each thread can have its own transaction for the same connection, but
    nested transactions within the same thread are not supported. Any
    exception raised inside the block rolls back every statement and
    propagates.

    Examples
        with Transaction(cn) as tx:
            tx.execute('delete from ... where id = :id', {'id': 1})
            tx.execute('update ... set name = :name', {'name': 'x'})
    """

    def __init__(self, cn: Any) -> None:
        self.connection = cn
        self.sa_connection = getattr(cn, 'sa_connection', None)
        self._transaction = None

        if not hasattr(_local, 'active_transactions'):
            _local.active_transactions = {}

        if id(cn) in _local.active_transactions:
            raise RuntimeError('Nested transactions are not supported')

    def __enter__(self):
        _local.active_transactions[id(self.connection)] = True

        ensure_commit(self.sa_connection)
        self._transaction = self.sa_connection.begin()
        self.connection.in_transaction = True
        logger.debug(f'Started transaction for connection {id(self.connection)}')

        return self

    def __exit__(self, exc_type: type | None, value: Exception | None, traceback: Any | None) -> None:
        try:
            if exc_type is not None:
                self._transaction.rollback()
                logger.warning('Rolling back the current transaction')
            else:
                self._transaction.commit()
                logger.debug(f'Committed transaction for connection {id(self.connection)}')
        finally:
            _local.active_transactions.pop(id(self.connection), None)
            self.connection.in_transaction = False
            logger.debug(f'Transaction cleanup complete for connection {id(self.connection)}')

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        """Execute a statement inside the transaction and return affected row count"""
        return self.connection.execute(sql, params)

    def select(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Execute a SELECT inside the transaction"""
        return self.connection.select(sql, params)

    def execute_all(self, statements: Iterable[str]) -> int:
        """Execute a batch of parameterless statements in order.

        Returns
            Number of statements executed
        """
        count = 0
        for sql in statements:
            self.connection.execute_raw(sql)
            count += 1
        return count


def transactional(cn: Any, func: Callable[[Transaction], Any]) -> Any:
    """Run ``func`` with an open transaction and return its result.

    Commits when ``func`` returns, rolls back and re-raises when it raises.
    """
    with Transaction(cn) as tx:
        return func(tx)
