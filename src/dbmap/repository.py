"""
Repository: maps objects of one class to rows of one table.

Examples
    >>> class User:
    ...     pass
    >>> users = Repository(Database(cn), 'users', User)
    >>> users.field('id', 'integer')
    >>> users.field('email', 'string', length=255)
    >>> users.primary('id')
    >>> users.create()
    ['CREATE TABLE users (...)']
    >>> user = User(); user.id = 1; user.email = 'a@x.org'
    >>> users.insert(user)
    1
    >>> users.select_one({'id': 1}).email
    'a@x.org'
"""
import logging
from collections.abc import Mapping
from typing import Any

import sqlalchemy as sa
from dbmap.accessor import PropertyAccessor, get_accessor
from dbmap.database import Database
from dbmap.exceptions import QueryError, SchemaSyncError, UnsupportedTypeError
from dbmap.exceptions import ValidationError
from dbmap.fieldmap import FieldMap
from dbmap.schema import SchemaComparator, build_table
from dbmap.serializer import Normalizer
from dbmap.transaction import Transaction
from dbmap.types import TypeSpec

logger = logging.getLogger(__name__)

__all__ = ['Repository']

# Context keys understood by normalize/denormalize
FIELDS = 'fields'
OBJECT_TO_POPULATE = 'object_to_populate'


class Repository(Normalizer):
    """Persist objects of ``cls`` in ``table``.

    Fields are declared with ``field()`` and ``primary()`` before first use.
    The repository is also a Normalizer for ``cls`` and can be registered
    with a Serializer.

    Args:
        database: Database the table lives in
        table: Table name
        cls: Entity class; ``denormalize`` instantiates it without arguments
        accessor: Property accessor used to read and write entity values
    """

    def __init__(self, database: Database, table: str, cls: type,
                 accessor: PropertyAccessor | None = None) -> None:
        if not isinstance(cls, type):
            raise ValidationError(f'Entity class expected, got {cls!r}')
        self.database = database
        self.table = table
        self.cls = cls
        self.accessor = accessor or get_accessor()
        self.fields = FieldMap()
        self._overrides: dict[str, Any] | None = None

    def __repr__(self) -> str:
        return f'Repository({self.table!r}, {self.cls.__name__})'

    def field(self, name: str, type_: TypeSpec, **options: Any) -> None:
        """Declare a mapped field; see FieldMap.field for the options."""
        self.fields.field(name, type_, **options)

    def primary(self, name: str) -> None:
        """Add a declared field to the primary key."""
        self.fields.primary(name)

    def _type_overrides(self) -> dict[str, Any]:
        self.fields.seal()
        if self._overrides is None:
            self._overrides = self.fields.type_overrides()
        return self._overrides

    def _keys(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Project the primary key out of a normalized row."""
        keys = {}
        for name in self.fields.require_primary():
            if data.get(name) is None:
                raise ValidationError(f'Primary key field {name} has no value')
            keys[name] = data[name]
        return keys

    # queries

    def select(self, where: Mapping[Any, Any] | None = None,
               options: Mapping[str, Any] | None = None) -> list[Any]:
        """Select objects matching ``where``.
        """
        rows = self.database.select(self.table, where, options, self._type_overrides())
        return [self.denormalize(row, self.cls) for row in rows]

    def select_one(self, where: Mapping[Any, Any] | None = None,
                   options: Mapping[str, Any] | None = None) -> Any | None:
        """Select the first object matching ``where``, or None.
        """
        row = self.database.select_one(self.table, where, options, self._type_overrides())
        return self.denormalize(row, self.cls) if row is not None else None

    def insert(self, obj: Any) -> int:
        data = self.normalize(obj)
        return self.database.insert(self.table, data, self._type_overrides())

    def update(self, obj: Any) -> int:
        """Update the row identified by the object's primary key.
        """
        data = self.normalize(obj)
        keys = self._keys(data)
        return self.database.update(self.table, data, keys, self._type_overrides())

    def delete(self, obj: Any) -> int:
        """Delete the row identified by the object's primary key.
        """
        data = self.normalize(obj)
        keys = self._keys(data)
        return self.database.delete(self.table, keys, self._type_overrides())

    # normalization

    def _selected_fields(self, context: Mapping[str, Any] | None):
        wanted = (context or {}).get(FIELDS)
        for descriptor in self.fields:
            if wanted is None or descriptor.name in wanted:
                yield descriptor

    def normalize(self, obj: Any, format: str | None = None,
                  context: dict[str, Any] | None = None) -> dict[str, Any]:
        """Convert an entity into a row dict keyed by field name.

        ``context['fields']`` restricts the fields included.

        Raises
            UnsupportedTypeError: If ``obj`` is not an instance of the entity class
            AccessError: If a field's accessor path cannot be read
        """
        if not self.supports_normalization(obj, format):
            raise UnsupportedTypeError(f'Object must be an instance of {self.cls.__name__}, '
                                       f'got {type(obj).__name__}')
        self.fields.seal()

        data = {}
        for descriptor in self._selected_fields(context):
            value = self.accessor.get_value(obj, descriptor.accessor)
            if descriptor.normalize_mapper is not None:
                value = descriptor.normalize_mapper(value)
            data[descriptor.name] = value
        return data

    def denormalize(self, data: Any, type_: type, format: str | None = None,
                    context: dict[str, Any] | None = None) -> Any:
        """Build an entity from a row dict.

        Populates ``context['object_to_populate']`` when given, otherwise a
        new ``type_()``. Fields missing from ``data`` or None are skipped.

        Raises
            UnsupportedTypeError: If ``data`` is not a mapping or ``type_`` is
                not the entity class or a subclass
        """
        if not isinstance(data, Mapping):
            raise UnsupportedTypeError(f'Data must be a mapping, got {type(data).__name__}')
        if not self.supports_denormalization(data, type_, format):
            raise UnsupportedTypeError(f'Type must be {self.cls.__name__} or a subclass, got {type_!r}')
        self.fields.seal()

        context = context or {}
        obj = context.get(OBJECT_TO_POPULATE)
        if obj is None:
            obj = type_()

        for descriptor in self._selected_fields(context):
            value = data.get(descriptor.name)
            if value is None:
                continue
            if descriptor.denormalize_mapper is not None:
                value = descriptor.denormalize_mapper(value)
            self.accessor.set_value(obj, descriptor.accessor, value)
        return obj

    def supports_normalization(self, obj: Any, format: str | None = None) -> bool:
        return isinstance(obj, self.cls)

    def supports_denormalization(self, data: Any, type_: type, format: str | None = None) -> bool:
        return isinstance(type_, type) and issubclass(type_, self.cls)

    def has_cacheable_supports_method(self) -> bool:
        return True

    # schema

    def _metadata(self) -> sa.MetaData:
        self.fields.seal()
        self.fields.require_primary()
        metadata = sa.MetaData()
        build_table(metadata, self.table, self.fields)
        return metadata

    def create(self) -> list[str]:
        """Create or alter the table to match the declared fields.

        Compares the declared table with the live database (this table only)
        and runs the corrective statements in one transaction.

        Returns
            Statements executed, empty when the table already matches

        Raises
            SchemaSyncError: If a statement fails; nothing is applied
        """
        cn = self.database.connection
        statements = SchemaComparator(cn).compare(self._metadata(), [self.table])
        if not statements:
            return []

        try:
            with Transaction(cn) as tx:
                tx.execute_all(statements)
        except QueryError as exc:
            raise SchemaSyncError(f'Could not synchronize table {self.table}: {exc}') from exc
        finally:
            self.database.clear_schema_cache(self.table)

        logger.info(f'Applied {len(statements)} schema statement(s) to {self.table}')
        return statements

    def drop(self) -> bool:
        """Drop the table if it exists; returns whether it did.
        """
        cn = self.database.connection
        if not self.database.schema.has_table(self.table):
            return False
        sql = f'DROP TABLE {cn.strategy.quote_identifier(self.table)}'
        try:
            with Transaction(cn) as tx:
                tx.execute_all([sql])
        finally:
            self.database.clear_schema_cache(self.table)
        logger.info(f'Dropped table {self.table}')
        return True
