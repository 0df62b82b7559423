"""
SQLite-specific strategy implementation.

This module implements the DatabaseStrategy interface for SQLite. It handles
SQLite's particular features and limitations such as:
- pysqlite's legacy transaction handling, which never emits BEGIN before DDL
- OFFSET being accepted only after a LIMIT clause
- Foreign key enforcement being off by default
"""
import logging
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbmap.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from dbmap.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQLite."""
        return sa.URL.create(drivername='sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite."""
        if options.timeout:
            return {'connect_args': {'timeout': options.timeout}}
        return {}

    def configure_engine(self, engine: sa.Engine) -> None:
        """Hand transaction control to SQLAlchemy.

        Disables pysqlite's own BEGIN handling and emits BEGIN whenever
        SQLAlchemy starts a transaction, so DDL runs inside the transaction
        too and schema batches are atomic.
        """
        @sa.event.listens_for(engine, 'connect')
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute('PRAGMA foreign_keys = ON')
            finally:
                cursor.close()

        @sa.event.listens_for(engine, 'begin')
        def _on_begin(connection):
            connection.exec_driver_sql('BEGIN')

        logger.debug('Configured SQLite engine for explicit transactions')

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']

    def render_limit_offset(self, limit: int | None, offset: int | None) -> str:
        """SQLite only accepts OFFSET after LIMIT; -1 means no limit.
        """
        if offset is not None and limit is None:
            return f'LIMIT -1 OFFSET {int(offset)}'
        return super().render_limit_offset(limit, offset)
