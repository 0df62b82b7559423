"""
Live schema introspection and schema comparison.

This module provides:
- LiveSchema: column names and types of existing tables, read through the
  SQLAlchemy Inspector on the wrapped connection (so uncommitted schema
  changes inside a transaction are visible)
- SchemaComparator: diff a desired ``MetaData`` against the live database with
  Alembic autogenerate and render the result as an ordered list of DDL
  statements for the connection's dialect
- build_table: declare a ``Table`` from field declarations

Only the tables named in the desired metadata are compared. Other tables in
the database are never reported as removed.
"""
import logging
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from alembic.autogenerate import produce_migrations
from alembic.operations import Operations
from alembic.operations.ops import MigrateOperation
from alembic.runtime.migration import MigrationContext
from dbmap.cache import Cache
from dbmap.utils import ensure_commit
from sqlalchemy.types import TypeEngine

if TYPE_CHECKING:
    from dbmap.connection import ConnectionWrapper
    from dbmap.fieldmap import FieldMap

logger = logging.getLogger(__name__)


class LiveSchema:
    """Read table metadata from the live database.

    Every lookup asks the database unless the connection options set a
    positive ``schema_cache_ttl``.
    """

    def __init__(self, cn: 'ConnectionWrapper') -> None:
        self.cn = cn

    @property
    def cache_ttl(self) -> int:
        options = getattr(self.cn, 'options', None)
        return getattr(options, 'schema_cache_ttl', 0) or 0

    def _inspect(self, func):
        """Run an inspector call and release the transaction it auto-began."""
        inspector = sa.inspect(self.cn.sa_connection)
        try:
            return func(inspector)
        finally:
            if not self.cn.in_transaction:
                ensure_commit(self.cn.sa_connection)

    def has_table(self, table: str) -> bool:
        """Check whether a table exists.
        """
        return self._inspect(lambda inspector: inspector.has_table(table))

    def get_columns(self, table: str, bypass_cache: bool = False) -> dict[str, TypeEngine]:
        """Get column name to type for a table, in ordinal order.

        Returns an empty dict when the table does not exist.
        """
        ttl = self.cache_ttl
        cache_key = ('columns', table)
        if ttl and not bypass_cache:
            cache = Cache.get_instance().get_schema_cache(id(self.cn), ttl)
            if cache_key in cache:
                logger.debug(f'Cache hit for columns of {table}')
                return cache[cache_key]

        def read(inspector):
            if not inspector.has_table(table):
                return {}
            return {col['name']: col['type'] for col in inspector.get_columns(table)}

        columns = self._inspect(read)
        if ttl:
            Cache.get_instance().get_schema_cache(id(self.cn), ttl)[cache_key] = columns
        return columns

    def get_primary_keys(self, table: str) -> list[str]:
        """Get primary key columns for a table.
        """
        def read(inspector):
            if not inspector.has_table(table):
                return []
            return inspector.get_pk_constraint(table).get('constrained_columns', [])

        return self._inspect(read)

    def clear(self, table: str | None = None) -> None:
        """Forget cached metadata for one table, or for every table.
        """
        if table is None:
            Cache.get_instance().clear_owner(id(self.cn))
        else:
            Cache.get_instance().clear_for_table(table)


class _StatementBuffer:
    """Output buffer collecting the statements Alembic renders offline.

    Alembic writes one statement (plus terminator) per ``write`` call.
    """

    def __init__(self) -> None:
        self.statements: list[str] = []

    def write(self, text: str) -> None:
        text = text.strip()
        if text.endswith(';'):
            text = text[:-1].rstrip()
        if text:
            self.statements.append(text)

    def flush(self) -> None:
        pass


def _flatten(ops: Iterable[MigrateOperation]) -> Iterator[MigrateOperation]:
    """Yield leaf operations from nested Alembic op containers, in order."""
    for op in ops:
        if hasattr(op, 'ops'):
            yield from _flatten(op.ops)
        else:
            yield op


def _compare_type(context, inspected_column, metadata_column, inspected_type, metadata_type) -> bool | None:
    """Treat types that render to the same DDL as equal; else defer to Alembic.
    """
    dialect = context.dialect
    try:
        if inspected_type.compile(dialect=dialect) == metadata_type.compile(dialect=dialect):
            return False
    except sa.exc.CompileError:
        return None
    return None


class SchemaComparator:
    """Compute corrective DDL that turns the live schema into a desired one.
    """

    def __init__(self, cn: 'ConnectionWrapper') -> None:
        self.cn = cn

    def compare(self, metadata: sa.MetaData, tables: Iterable[str] | None = None) -> list[str]:
        """Diff ``metadata`` against the database.

        Args:
            metadata: Desired schema
            tables: Table names to compare, defaults to all tables in ``metadata``

        Returns
            Ordered DDL statements; empty when the live schema already matches
        """
        names = set(tables if tables is not None else metadata.tables)

        def include_name(name, type_, parent_names):
            if type_ == 'table':
                return name in names
            return True

        context = MigrationContext.configure(
            connection=self.cn.sa_connection,
            opts={'include_name': include_name, 'compare_type': _compare_type},
        )
        try:
            script = produce_migrations(context, metadata)
        finally:
            if not self.cn.in_transaction:
                ensure_commit(self.cn.sa_connection)

        if script.upgrade_ops.is_empty():
            logger.debug(f'Schema for {sorted(names)} is up to date')
            return []

        statements = self.render(script.upgrade_ops.ops)
        logger.debug(f'Schema diff for {sorted(names)}: {len(statements)} statement(s)')
        return statements

    def render(self, ops: Iterable[MigrateOperation]) -> list[str]:
        """Render Alembic operations to SQL for the connection's dialect.
        """
        buffer = _StatementBuffer()
        context = MigrationContext.configure(
            dialect=self.cn.sa_dialect,
            opts={'as_sql': True, 'output_buffer': buffer},
        )
        operations = Operations(context)
        for op in _flatten(ops):
            operations.invoke(op)
        return buffer.statements


def build_table(metadata: sa.MetaData, name: str, fieldmap: 'FieldMap') -> sa.Table:
    """Declare the table a field map describes.

    One column per field with the field's storage type and column options;
    the primary key is the field map's primary fields.
    """
    columns = []
    for descriptor in fieldmap:
        options = descriptor.column_options
        is_primary = descriptor.name in fieldmap.primaries
        kwargs: dict[str, Any] = {
            'primary_key': is_primary,
            'nullable': options.get('nullable', not is_primary),
        }
        if options.get('default') is not None:
            kwargs['server_default'] = _server_default(options['default'])
        if 'autoincrement' in options:
            kwargs['autoincrement'] = options['autoincrement']
        elif is_primary and len(fieldmap.primaries) > 1:
            kwargs['autoincrement'] = False
        for key in ('unique', 'index', 'comment'):
            if options.get(key) is not None:
                kwargs[key] = options[key]
        columns.append(sa.Column(descriptor.name, descriptor.column_type(), **kwargs))
    return sa.Table(name, metadata, *columns)


def _server_default(value: Any) -> Any:
    """Render a literal default the way DDL expects it."""
    if isinstance(value, sa.sql.elements.TextClause):
        return value
    if isinstance(value, bool):
        return sa.text('1' if value else '0')
    if isinstance(value, int | float):
        return sa.text(str(value))
    return str(value)
