"""
Value conversion between application and storage representations.

The codec resolves a column type once and lets the SQLAlchemy type's
dialect implementation do the work: ``bind_processor`` for the application
to storage direction and ``result_processor`` for the way back. On SQLite,
for example, a ``date`` column stores ``'2024-01-31'`` and reads back
``datetime.date(2024, 1, 31)``.

Whole rows are converted against the table's live schema. Columns the live
schema does not know about are passed through untouched: they are neither
rejected nor given a guessed type, and the backend decides what to do with
them.
"""
import datetime
import logging
import uuid
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbmap.exceptions import TypeConversionError
from dbmap.types import NULL, ColumnTypeRegistry, TypeConverter, TypedValue
from dbmap.types import TypeSpec, get_type_registry, parse_temporal
from sqlalchemy.types import TypeEngine

if TYPE_CHECKING:
    from dbmap.schema import LiveSchema

logger = logging.getLogger(__name__)

_TEMPORAL_TYPES = (datetime.date, datetime.datetime, datetime.time)


def _python_type(type_: TypeEngine) -> type | None:
    """Return the Python type a SQLAlchemy type produces, if it declares one."""
    try:
        return type_.python_type
    except NotImplementedError:
        return None


class ValueCodec:
    """Convert single values and whole rows for one dialect.

    Args:
        dialect: SQLAlchemy dialect whose type implementations are used
        schema: Live schema provider (anything with ``get_columns(table)``)
        registry: Column type registry for resolving type names
    """

    def __init__(self, dialect: sa.engine.Dialect, schema: 'LiveSchema | None' = None,
                 registry: ColumnTypeRegistry | None = None) -> None:
        self.dialect = dialect
        self.schema = schema
        self.registry = registry or get_type_registry()

    def resolve(self, type_: TypeSpec) -> TypeEngine:
        """Resolve a type name or type object; unknown names raise TypeConversionError."""
        return self.registry.resolve(type_)

    def to_storage(self, value: Any, type_: TypeSpec) -> Any:
        """Convert an application value to what the backend binds for ``type_``.

        None and the NULL marker are returned unchanged.
        """
        type_ = self.resolve(type_)
        value = TypeConverter.convert_value(value)
        if value is None or value is NULL:
            return value

        value = self._coerce(value, type_)
        processor = type_.dialect_impl(self.dialect).bind_processor(self.dialect)
        if processor is None:
            return value
        try:
            return processor(value)
        except (TypeError, ValueError, AttributeError) as exc:
            raise TypeConversionError(
                f'Cannot convert {type(value).__name__} value to {type_!r}: {exc}') from exc

    def to_application(self, value: Any, type_: TypeSpec) -> Any:
        """Convert a value read from the backend to its application form.
        """
        type_ = self.resolve(type_)
        if value is None:
            return None

        python_type = _python_type(type_)
        if python_type is not None and not isinstance(value, (str, bytes)) \
                and isinstance(value, python_type):
            return value

        impl = type_.dialect_impl(self.dialect)
        try:
            processor = impl.result_processor(self.dialect, None)
        except (TypeError, sa.exc.InvalidRequestError) as exc:
            # Some drivers need the DBAPI type code to pick a processor and
            # already return native values when it matters.
            logger.debug(f'No result processor for {type_!r} without type code: {exc}')
            processor = None
        if processor is None:
            return value
        try:
            return processor(value)
        except (TypeError, ValueError, AttributeError) as exc:
            raise TypeConversionError(
                f'Cannot convert stored {type(value).__name__} value from {type_!r}: {exc}') from exc

    def convert_row_to_storage(self, table: str, row: dict[str, Any],
                               type_overrides: dict[str, TypeSpec] | None = None,
                               include_type: bool = False) -> dict[str, Any]:
        """Convert a row to storage form against the table's live schema.

        Args:
            table: Table whose live columns decide which entries are converted
            row: Mapping of column name to application value (not mutated)
            type_overrides: Column name to type, preferred over the schema type
            include_type: Wrap each converted value as ``TypedValue(type, value)``

        Returns
            New dict with the same keys; unknown columns pass through unchanged
        """
        columns = self._columns(table)
        overrides = type_overrides or {}

        result: dict[str, Any] = {}
        for key, value in row.items():
            if key not in columns:
                logger.debug(f'Column {key} not in {table}, passing value through unconverted')
                result[key] = value
                continue
            type_ = self.resolve(overrides.get(key, columns[key]))
            converted = self.to_storage(value, type_)
            result[key] = TypedValue(type_, converted) if include_type else converted
        return result

    def convert_row_to_application(self, table: str, row: dict[str, Any],
                                   type_overrides: dict[str, TypeSpec] | None = None) -> dict[str, Any]:
        """Convert a row read from the backend to application form.

        Every column present in ``row`` is kept; only known columns are converted.
        """
        return self._to_application(self._columns(table), row, type_overrides or {})

    def convert_rows_to_application(self, table: str, rows: list[dict[str, Any]],
                                    type_overrides: dict[str, TypeSpec] | None = None) -> list[dict[str, Any]]:
        """Convert many rows, looking the table's schema up once."""
        if not rows:
            return []
        columns = self._columns(table)
        overrides = type_overrides or {}
        return [self._to_application(columns, row, overrides) for row in rows]

    def _to_application(self, columns: dict[str, TypeEngine], row: dict[str, Any],
                        overrides: dict[str, TypeSpec]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key, value in row.items():
            if key in columns:
                value = self.to_application(value, overrides.get(key, columns[key]))
            result[key] = value
        return result

    def _columns(self, table: str) -> dict[str, TypeEngine]:
        if self.schema is None:
            raise TypeConversionError('Row conversion needs a live schema provider')
        return self.schema.get_columns(table)

    def _coerce(self, value: Any, type_: TypeEngine) -> Any:
        """Bring loosely typed input into the shape the bind processor expects.
        """
        python_type = _python_type(type_)
        if python_type in _TEMPORAL_TYPES and isinstance(value, str):
            return parse_temporal(value, python_type)
        if python_type is datetime.datetime and type(value) is datetime.date:
            return datetime.datetime.combine(value, datetime.time())
        if python_type is uuid.UUID and isinstance(value, str):
            try:
                return uuid.UUID(value)
            except ValueError as exc:
                raise TypeConversionError(f'Cannot convert {value!r} to UUID') from exc
        return value
