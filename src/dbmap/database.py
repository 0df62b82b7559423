"""
Table-level CRUD over a connection.

Every row written goes through the ValueCodec (application to storage
representation, using the live schema of the table and any per-column type
overrides) and a QueryBuilder. Every row read comes back through the codec
as an ``attrdict``.

Columns whose value is None are never written. Pass ``dbmap.NULL`` to write
an explicit SQL NULL.

Examples
    >>> db = Database(cn)
    >>> db.insert('users', {'id': 1, 'email': 'a@x.org'})
    1
    >>> db.select_one('users', {'id': 1}).email
    'a@x.org'
"""
import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from dbmap.codec import ValueCodec
from dbmap.exceptions import ValidationError
from dbmap.query import QueryBuilder
from dbmap.schema import LiveSchema
from dbmap.transaction import transactional
from dbmap.types import ColumnTypeRegistry, TypeSpec

from libb import attrdict

if TYPE_CHECKING:
    from dbmap.connection import ConnectionWrapper

logger = logging.getLogger(__name__)

__all__ = ['Database']


class Database:
    """CRUD helper bound to one connection.

    Args:
        cn: ConnectionWrapper returned by ``dbmap.connect``
        registry: Column type registry (defaults to the shared one)
    """

    def __init__(self, cn: 'ConnectionWrapper', registry: ColumnTypeRegistry | None = None) -> None:
        self.cn = cn
        self.schema = LiveSchema(cn)
        self.codec = ValueCodec(cn.sa_dialect, self.schema, registry)

    def __repr__(self) -> str:
        return f'Database({self.cn.dialect!r})'

    @property
    def connection(self) -> 'ConnectionWrapper':
        return self.cn

    def _builder(self, kind: str, table: str) -> QueryBuilder:
        return QueryBuilder(kind, table, self.cn.strategy)

    def _storage_filter(self, table: str, where: Mapping[Any, Any] | None,
                        type_overrides: dict[str, TypeSpec] | None) -> dict[Any, Any]:
        """Convert the column predicates of a filter to storage form.

        Raw (int-keyed) predicates are left alone.
        """
        if not where:
            return {}
        columns = {k: v for k, v in where.items() if isinstance(k, str)}
        converted = self.codec.convert_row_to_storage(table, columns, type_overrides, include_type=True)
        return {k: converted[k] if isinstance(k, str) else v for k, v in where.items()}

    def _storage_values(self, table: str, data: Mapping[str, Any],
                        type_overrides: dict[str, TypeSpec] | None) -> dict[str, Any]:
        present = {k: v for k, v in data.items() if v is not None}
        if not present:
            return {}
        return self.codec.convert_row_to_storage(table, present, type_overrides, include_type=True)

    def select(self, table: str, where: Mapping[Any, Any] | None = None,
               options: Mapping[str, Any] | None = None,
               type_overrides: dict[str, TypeSpec] | None = None) -> list[attrdict]:
        """Select rows from a table.

        Args:
            table: Table name
            where: Filter specification (column equality and raw predicates)
            options: fields, order_by, offset, limit, distinct
            type_overrides: Column name to type used instead of the live schema type

        Returns
            List of rows converted to application form; empty when nothing matches
        """
        qb = self._builder('select', table)
        qb.apply_options(options)
        qb.where(self._storage_filter(table, where, type_overrides))
        rows = qb.execute(self.cn)
        rows = self.codec.convert_rows_to_application(table, rows, type_overrides)
        logger.debug(f'Selected {len(rows)} rows from {table}')
        return [attrdict(row) for row in rows]

    def select_one(self, table: str, where: Mapping[Any, Any] | None = None,
                   options: Mapping[str, Any] | None = None,
                   type_overrides: dict[str, TypeSpec] | None = None) -> attrdict | None:
        """Select the first matching row, or None.
        """
        options = dict(options or {})
        options['limit'] = 1
        rows = self.select(table, where, options, type_overrides)
        return rows[0] if rows else None

    def insert(self, table: str, data: Mapping[str, Any],
               type_overrides: dict[str, TypeSpec] | None = None) -> int:
        """Insert one row; returns the affected row count.

        Raises
            ValidationError: If data is empty or every value is None
        """
        if not data:
            raise ValidationError(f'No data to insert into {table}')
        values = self._storage_values(table, data, type_overrides)
        if not values:
            raise ValidationError(f'Every value to insert into {table} is None')
        qb = self._builder('insert', table)
        qb.values(values)
        return qb.execute(self.cn)

    def update(self, table: str, data: Mapping[str, Any], where: Mapping[Any, Any],
               type_overrides: dict[str, TypeSpec] | None = None) -> int:
        """Update matching rows; returns the affected row count.

        Raises
            ValidationError: If data or where is empty, or every value is None
        """
        if not data:
            raise ValidationError(f'No data to update in {table}')
        if not where:
            raise ValidationError(f'Refusing to update {table} without a filter')
        qb = self._builder('update', table)
        qb.values(self._storage_values(table, data, type_overrides))
        qb.where(self._storage_filter(table, where, type_overrides))
        return qb.execute(self.cn)

    def delete(self, table: str, where: Mapping[Any, Any],
               type_overrides: dict[str, TypeSpec] | None = None) -> int:
        """Delete matching rows; returns the affected row count.

        Raises
            ValidationError: If where is empty
        """
        if not where:
            raise ValidationError(f'Refusing to delete from {table} without a filter')
        qb = self._builder('delete', table)
        qb.where(self._storage_filter(table, where, type_overrides))
        return qb.execute(self.cn)

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        """Run a raw statement with named parameters; returns the affected row count.
        """
        return self.cn.execute(sql, params)

    def transactional(self, func: Callable[['Database'], Any]) -> Any:
        """Run ``func(self)`` in one transaction and return its result.

        Commits when ``func`` returns; rolls back and re-raises when it raises.
        """
        return transactional(self.cn, lambda tx: func(self))

    def clear_schema_cache(self, table: str | None = None) -> None:
        """Forget cached live schema (only used when schema_cache_ttl > 0)."""
        self.schema.clear(table)
