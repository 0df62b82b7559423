"""
Single-use SQL statement builder.

A QueryBuilder is created for one statement kind (select, insert, update or
delete) and one table, collects the pieces of that statement, and renders
SQL with named placeholders (``:p1``, ``:p2``, ...) plus the matching
parameter dict.

Filter specification (``where``):
- ``str`` key: column name, rendered as ``"col" = :pN`` (``"col" IS NULL``
  for None)
- ``int`` key: raw predicate, either an SQL string or an ``(sql, params)``
  tuple binding the fragment's own ``:name`` placeholders; rendered inside
  parentheses

All predicates are combined with AND.

Examples
    >>> qb = QueryBuilder('select', 'users', 'sqlite')
    >>> qb.where({'email': 'a@x.org'}).order_by({'id': 'desc'}).limit(1).get_sql()
    'SELECT * FROM "users" WHERE "email" = :p1 ORDER BY "id" desc LIMIT 1'
    >>> qb.parameters
    {'p1': 'a@x.org'}
"""
import functools
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Self

from dbmap.exceptions import ValidationError
from dbmap.strategy import DatabaseStrategy, get_strategy
from dbmap.types import NULL, TypedValue
from dbmap.utils import is_identifier
from sqlalchemy.types import TypeEngine

logger = logging.getLogger(__name__)

KINDS = ('select', 'insert', 'update', 'delete')

OPTION_KEYS = ('fields', 'order_by', 'offset', 'limit', 'distinct')

DIRECTIONS = ('asc', 'desc')


def _require_kind(*kinds):
    """Reject builder methods that do not belong to the builder's kind."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            if self.kind not in kinds:
                raise ValidationError(f'{func.__name__}() is not valid for a {self.kind} statement')
            return func(self, *args, **kwargs)
        return wrapper
    return decorator


def _count(value: Any, name: str) -> int | None:
    """Validate a limit/offset value."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f'{name} must be a non-negative integer, got {value!r}')
    return value


def normalize_order_by(order_by: Any) -> list[tuple[str, str | None]]:
    """Turn an order_by option into ``(column, direction)`` pairs.

    Accepts a dict (int key: the value is a column sorted without direction;
    str key: the key is the column and the value its direction), or a
    sequence of column names and ``(column, direction)`` pairs.
    """
    if not order_by:
        return []

    if isinstance(order_by, Mapping):
        items = []
        for key, value in order_by.items():
            if isinstance(key, int) and not isinstance(key, bool):
                items.append((value, None))
            else:
                items.append((key, value))
    elif isinstance(order_by, str):
        items = [(order_by, None)]
    else:
        items = []
        for item in order_by:
            if isinstance(item, str):
                items.append((item, None))
            elif isinstance(item, tuple | list) and len(item) == 2:
                items.append((item[0], item[1]))
            else:
                raise ValidationError(f'Invalid order_by entry: {item!r}')

    result = []
    for column, direction in items:
        if not isinstance(column, str) or not column:
            raise ValidationError(f'Invalid order_by column: {column!r}')
        if direction is not None and (not isinstance(direction, str)
                                      or direction.lower() not in DIRECTIONS):
            raise ValidationError(f'Invalid order_by direction for {column}: {direction!r}')
        result.append((column, direction))
    return result


class QueryBuilder:
    """Build one parameterized statement.

    Args:
        kind: 'select', 'insert', 'update' or 'delete'
        table: Table name (optionally schema-qualified)
        dialect: Dialect name or DatabaseStrategy used for quoting and paging
    """

    def __init__(self, kind: str, table: str, dialect: str | DatabaseStrategy = 'postgresql') -> None:
        if kind not in KINDS:
            raise ValidationError(f'Unknown statement kind: {kind!r}')
        if not table or not isinstance(table, str):
            raise ValidationError('Table name is required')
        self.kind = kind
        self.table = table
        self.strategy = dialect if isinstance(dialect, DatabaseStrategy) else get_strategy(dialect)

        self.parameters: dict[str, Any] = {}
        self.types: dict[str, TypeEngine] = {}

        self._fields: list[str] = ['*']
        self._distinct = False
        self._predicates: list[str] = []
        self._order: list[tuple[str, str | None]] = []
        self._limit: int | None = None
        self._offset: int | None = None
        self._values: list[tuple[str, str]] = []
        self._counter = 0

    def __repr__(self) -> str:
        return f'QueryBuilder({self.kind!r}, {self.table!r}, {self.strategy.dialect_name!r})'

    def quote(self, name: str) -> str:
        """Quote a plain identifier; anything else is returned raw."""
        if is_identifier(name):
            return self.strategy.quote_identifier(name)
        return name

    def _quote_table(self) -> str:
        parts = self.table.split('.')
        if all(is_identifier(part) for part in parts):
            return '.'.join(self.strategy.quote_identifier(part) for part in parts)
        return self.table

    def _bind(self, value: Any) -> str:
        """Register a value under a fresh parameter name and return its placeholder."""
        type_ = None
        if isinstance(value, TypedValue):
            type_, value = value.type, value.value
        if value is NULL:
            value = None

        self._counter += 1
        name = f'p{self._counter}'
        while name in self.parameters:
            self._counter += 1
            name = f'p{self._counter}'

        self.parameters[name] = value
        if type_ is not None:
            self.types[name] = type_
        return f':{name}'

    # select

    @_require_kind('select')
    def select(self, fields: Iterable[str] | str | None = None) -> Self:
        """Set the selected fields (default ``*``)."""
        if fields is None:
            fields = ['*']
        elif isinstance(fields, str):
            fields = [fields]
        fields = list(fields)
        if not fields or not all(isinstance(f, str) and f for f in fields):
            raise ValidationError(f'Invalid fields: {fields!r}')
        self._fields = fields
        return self

    @_require_kind('select')
    def distinct(self, flag: bool = True) -> Self:
        self._distinct = bool(flag)
        return self

    @_require_kind('select')
    def order_by(self, order_by: Any) -> Self:
        """Append ordering; see normalize_order_by for the accepted shapes."""
        self._order.extend(normalize_order_by(order_by))
        return self

    @_require_kind('select')
    def limit(self, limit: int | None) -> Self:
        self._limit = _count(limit, 'limit')
        return self

    @_require_kind('select')
    def offset(self, offset: int | None) -> Self:
        self._offset = _count(offset, 'offset')
        return self

    @_require_kind('select')
    def apply_options(self, options: Mapping[str, Any] | None) -> Self:
        """Apply a QueryOptions mapping (fields, order_by, offset, limit, distinct).
        """
        options = options or {}
        unknown = set(options) - set(OPTION_KEYS)
        if unknown:
            raise ValidationError(f'Unknown query options: {sorted(unknown)}')
        if 'fields' in options:
            self.select(options['fields'])
        if options.get('order_by'):
            self.order_by(options['order_by'])
        self.offset(options.get('offset'))
        self.limit(options.get('limit'))
        self.distinct(options.get('distinct', False))
        return self

    # where

    @_require_kind('select', 'update', 'delete')
    def where(self, where: Mapping[Any, Any] | None) -> Self:
        """Add predicates from a filter specification.
        """
        for key, value in (where or {}).items():
            if isinstance(key, int) and not isinstance(key, bool):
                self._predicates.append(self._fragment(value))
            elif is_identifier(key):
                raw = value.value if isinstance(value, TypedValue) else value
                if raw is None or raw is NULL:
                    self._predicates.append(f'{self.quote(key)} IS NULL')
                else:
                    self._predicates.append(f'{self.quote(key)} = {self._bind(value)}')
            else:
                raise ValidationError(f'Filter column must be a plain identifier: {key!r}')
        return self

    def _fragment(self, fragment: Any) -> str:
        if isinstance(fragment, str):
            sql, params = fragment, {}
        elif isinstance(fragment, tuple) and len(fragment) == 2 and isinstance(fragment[0], str):
            sql, params = fragment[0], dict(fragment[1] or {})
        else:
            raise ValidationError(f'Raw filter must be SQL text or (sql, params): {fragment!r}')
        if not sql.strip():
            raise ValidationError('Raw filter must not be empty')
        for name, value in params.items():
            if name in self.parameters:
                raise ValidationError(f'Parameter name {name!r} is already bound')
            self.parameters[name] = value
        return f'({sql})'

    # insert / update

    @_require_kind('insert', 'update')
    def values(self, data: Mapping[str, Any]) -> Self:
        """Set column values. None entries are skipped; NULL binds SQL NULL.
        """
        for column, value in data.items():
            raw = value.value if isinstance(value, TypedValue) else value
            if raw is None:
                continue
            if not isinstance(column, str) or not column:
                raise ValidationError(f'Invalid column name: {column!r}')
            self._values.append((column, self._bind(value)))
        return self

    # rendering

    def _where_sql(self) -> str:
        if not self._predicates:
            return ''
        return ' WHERE ' + ' AND '.join(self._predicates)

    def get_sql(self) -> str:
        """Render the statement.

        Raises
            ValidationError: For update/delete without a filter, or update
                without values
        """
        table = self._quote_table()

        if self.kind == 'select':
            fields = ', '.join(self.quote(f) for f in self._fields)
            sql = f"SELECT {'DISTINCT ' if self._distinct else ''}{fields} FROM {table}"
            sql += self._where_sql()
            if self._order:
                order = ', '.join(
                    f'{self.quote(col)} {direction}' if direction else self.quote(col)
                    for col, direction in self._order)
                sql += f' ORDER BY {order}'
            paging = self.strategy.render_limit_offset(self._limit, self._offset)
            if paging:
                sql += f' {paging}'
            return sql

        if self.kind == 'insert':
            if not self._values:
                return f'INSERT INTO {table} DEFAULT VALUES'
            columns = ', '.join(self.strategy.quote_identifier(c) for c, _ in self._values)
            placeholders = ', '.join(p for _, p in self._values)
            return f'INSERT INTO {table} ({columns}) VALUES ({placeholders})'

        if not self._predicates:
            raise ValidationError(f'Refusing to {self.kind} {self.table} without a filter')

        if self.kind == 'update':
            if not self._values:
                raise ValidationError(f'No values to update in {self.table}')
            assignments = ', '.join(
                f'{self.strategy.quote_identifier(c)} = {p}' for c, p in self._values)
            return f'UPDATE {table} SET {assignments}{self._where_sql()}'

        return f'DELETE FROM {table}{self._where_sql()}'

    def execute(self, cn: Any) -> int | list[dict[str, Any]]:
        """Run the statement on a connection.

        Returns
            List of row dicts for select, affected row count otherwise
        """
        sql = self.get_sql()
        logger.debug(f'Executing {self.kind} on {self.table} with {len(self.parameters)} parameters')
        if self.kind == 'select':
            return cn.select(sql, self.parameters)
        return cn.execute(sql, self.parameters)
