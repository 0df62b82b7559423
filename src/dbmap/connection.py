"""
Database connection handling with SQLAlchemy.

This module provides:
1. The `connect()` function for creating new database connections
2. The `ConnectionWrapper` class that wraps a SQLAlchemy connection with
   parameterized statement execution
3. Engine creation and management through a thread-safe registry

Statements use SQLAlchemy's named placeholder style (``:name``) on every
dialect. Outside a transaction every statement is committed on success and
rolled back on failure; inside a `Transaction` the transaction decides.
"""
import atexit
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import fields
from typing import Any, Self

import sqlalchemy as sa
from dbmap.cache import Cache
from dbmap.exceptions import ConnectionFailure, wrap_backend_error
from dbmap.options import DatabaseOptions
from dbmap.strategy import DatabaseStrategy, get_strategy
from dbmap.utils import ensure_commit, get_dialect_name
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from libb import load_options

__all__ = [
    'ConnectionWrapper',
    'connect',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.

    Engines never pool connections; each `connect()` opens a fresh one.
    """
    key = str(options)

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options.drivername}')
            return _engine_registry[key]

        strategy = get_strategy(options.drivername)
        url = strategy.build_connection_url(options)

        engine_kwargs: dict[str, Any] = {'echo': options.echo, 'poolclass': NullPool}
        engine_kwargs.update(strategy.get_engine_kwargs(options))
        engine_kwargs.update(kwargs)

        engine = engine_factory(url, **engine_kwargs)
        strategy.configure_engine(engine)

        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.drivername}')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in list(_engine_registry.values()):
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


class ConnectionWrapper:
    """Wraps a SQLAlchemy connection object to track calls and execution time

    This class provides a thin wrapper around SQLAlchemy connection objects that:
    1. Executes parameterized statements and returns rowcounts or row dicts
    2. Tracks statement execution counts and timing
    3. Commits each statement unless a `Transaction` is active
    4. Translates driver errors into `QueryError` and its subclasses
    5. Supports context manager protocol for explicit resource management
    """

    def __init__(self, sa_connection: sa.engine.Connection | None = None,
                 options: DatabaseOptions | None = None) -> None:
        """Initialize a connection wrapper
        """
        self.sa_connection = sa_connection
        self.engine = sa_connection.engine if sa_connection else None
        self.options = options
        self._dialect = get_dialect_name(sa_connection) if sa_connection else None
        self.calls = 0
        self.time = 0
        self.in_transaction = False

    def __enter__(self) -> Self:
        """Support for context manager protocol
        """
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        """Close the connection when exiting the context manager
        """
        self.close()
        logger.debug('Closed connection via context manager')

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    @property
    def dialect(self) -> str:
        """Return the dialect name ('postgresql' or 'sqlite')."""
        return self._dialect

    @property
    def sa_dialect(self) -> sa.engine.Dialect:
        """Return the SQLAlchemy dialect object, used for type processors."""
        return self.sa_connection.dialect

    @property
    def strategy(self) -> DatabaseStrategy:
        """Return the dialect strategy for this connection."""
        return get_strategy(self.dialect)

    @property
    def closed(self) -> bool:
        return self.sa_connection is None or self.sa_connection.closed

    def commit(self) -> None:
        """Explicit commit of whatever the connection has pending
        """
        self.sa_connection.commit()

    def rollback(self) -> None:
        """Explicit rollback of whatever the connection has pending
        """
        self.sa_connection.rollback()

    def close(self) -> None:
        """Close the SQLAlchemy connection, committing first if needed.

        Any schema cache held for this connection is released.
        """
        if self.closed:
            return
        if not self.in_transaction:
            ensure_commit(self.sa_connection)
        self.sa_connection.close()
        Cache.get_instance().clear_owner(id(self))
        logger.debug(f'Connection closed: {self.calls} statements in {self.time:.2f}s (avg: {self.time/max(1,self.calls):.3f}s per statement)')

    def _run(self, sql: str, params: dict[str, Any] | None) -> sa.CursorResult:
        """Execute one statement, committing or rolling back outside transactions.
        """
        if self.closed:
            raise ConnectionFailure('Connection is closed')
        start = time.time()
        try:
            result = self.sa_connection.execute(sa.text(sql), params or {})
        except sa.exc.DBAPIError as exc:
            if not self.in_transaction:
                self.rollback()
            raise wrap_backend_error(exc) from exc
        finally:
            self.addcall(time.time() - start)
        logger.debug(f'Executed statement with {len(params) if params else 0} parameters: {sql[:60]}...')
        return result

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        """Execute a statement with named parameters and return affected row count.

        Literal colons inside the SQL text must be escaped as ``\\:``.
        """
        result = self._run(sql, params)
        rowcount = result.rowcount
        if not self.in_transaction:
            self.commit()
        return rowcount

    def execute_raw(self, sql: str) -> int:
        """Execute a parameterless statement as-is through the driver.

        Used for generated DDL, whose literal defaults may contain colons.
        """
        if self.closed:
            raise ConnectionFailure('Connection is closed')
        start = time.time()
        try:
            result = self.sa_connection.exec_driver_sql(sql)
        except sa.exc.DBAPIError as exc:
            if not self.in_transaction:
                self.rollback()
            raise wrap_backend_error(exc) from exc
        finally:
            self.addcall(time.time() - start)
        logger.debug(f'Executed raw statement: {sql[:60]}...')
        if not self.in_transaction:
            self.commit()
        return result.rowcount

    def select(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Execute a SELECT statement and return rows as dictionaries.
        """
        result = self._run(sql, params)
        rows = [dict(row) for row in result.mappings()]
        if not self.in_transaction:
            self.commit()
        logger.debug(f'Select returned {len(rows)} rows')
        return rows


@load_options(cls=DatabaseOptions)
def connect(options: DatabaseOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> ConnectionWrapper:
    """Connect to a database using SQLAlchemy for connection management

    Args:
        options: Can be:
                - DatabaseOptions object
                - String path to configuration
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        ConnectionWrapper object for connecting to the database
    """
    if isinstance(options, DatabaseOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    engine = get_engine_for_options(options)
    try:
        sa_connection = engine.connect()
    except sa.exc.DBAPIError as exc:
        raise ConnectionFailure(f'Could not connect to {options.drivername} database: {exc.orig}') from exc

    return ConnectionWrapper(sa_connection, options)
