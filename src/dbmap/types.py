"""
Column type handling for the mapper.

This module provides:
- ColumnTypeRegistry: resolve logical type names ('integer', 'date', ...) to
  SQLAlchemy type objects that know how to convert values for a dialect
- TypedValue: a storage value tagged with the type it was converted with
- NULL: explicit "write SQL NULL" marker, distinct from None ("absent")
- TypeConverter: reduce NumPy/pandas scalars to plain Python values before
  they reach a type's bind processor
"""
import datetime
import inspect
import logging
import math
import threading
from collections.abc import Callable
from typing import Any, NamedTuple

import dateutil.parser
import numpy as np
import pandas as pd
import sqlalchemy as sa
from dbmap.exceptions import TypeConversionError, ValidationError
from sqlalchemy.types import TypeEngine

logger = logging.getLogger(__name__)

TypeFactory = Callable[..., TypeEngine]
TypeSpec = str | TypeEngine | type[TypeEngine]

# Column options that are forwarded to a type factory when it accepts them
TYPE_OPTIONS = ('length', 'precision', 'scale', 'timezone')


class _NullMarker:
    """Singleton marker for an explicit SQL NULL."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'NULL'

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return (_NullMarker, ())


NULL = _NullMarker()


class TypedValue(NamedTuple):
    """Storage value together with the type that produced it."""
    type: TypeEngine
    value: Any


def _decimal(precision: int | None = None, scale: int | None = None) -> TypeEngine:
    return sa.Numeric(precision=precision, scale=scale, asdecimal=True)


def _datetimetz() -> TypeEngine:
    return sa.DateTime(timezone=True)


DEFAULT_TYPES: dict[str, TypeFactory] = {
    'smallint': sa.SmallInteger,
    'integer': sa.Integer,
    'bigint': sa.BigInteger,
    'string': sa.String,
    'text': sa.Text,
    'guid': sa.Uuid,
    'boolean': sa.Boolean,
    'float': sa.Float,
    'decimal': _decimal,
    'date': sa.Date,
    'datetime': sa.DateTime,
    'datetimetz': _datetimetz,
    'time': sa.Time,
    'json': sa.JSON,
    'binary': sa.LargeBinary,
    'blob': sa.LargeBinary,
    }


class ColumnTypeRegistry:
    """Registry of logical column type names.

    Each name maps to a factory returning a SQLAlchemy ``TypeEngine``. The
    type engine's dialect implementation supplies the bind and result
    processors used by the codec, and the same object is used to declare
    columns when a repository synchronizes its table.
    """

    _instance = None
    _lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> 'ColumnTypeRegistry':
        """Get singleton instance.
        """
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def __init__(self) -> None:
        self._factories: dict[str, TypeFactory] = dict(DEFAULT_TYPES)

    def register(self, name: str, factory: TypeFactory, override: bool = False) -> None:
        """Register a new logical type.

        Args:
            name: Logical type name, case-insensitive
            factory: TypeEngine subclass or callable returning a TypeEngine
            override: Replace an existing registration instead of failing
        """
        key = name.lower()
        if key in self._factories and not override:
            raise ValidationError(f'Type {name} is already registered')
        with self._lock:
            self._factories[key] = factory
        logger.debug(f'Registered column type {key}')

    def has(self, name: str) -> bool:
        return name.lower() in self._factories

    def names(self) -> list[str]:
        return sorted(self._factories)

    def get(self, name: str, **options: Any) -> TypeEngine:
        """Create the type object for a logical type name.

        Options the factory does not accept (e.g. ``length`` for integers)
        are ignored; options outside TYPE_OPTIONS are never forwarded.

        Raises
            TypeConversionError: If the name is not registered
        """
        try:
            factory = self._factories[name.lower()]
        except (KeyError, AttributeError) as exc:
            raise TypeConversionError(f'Unknown column type: {name!r}') from exc

        accepted = _accepted_options(factory)
        kwargs = {k: v for k, v in options.items()
                  if k in TYPE_OPTIONS and k in accepted and v is not None}
        return factory(**kwargs)

    def resolve(self, type_: TypeSpec) -> TypeEngine:
        """Resolve a type name, TypeEngine instance or TypeEngine class.
        """
        if isinstance(type_, TypeEngine):
            return type_
        if isinstance(type_, type) and issubclass(type_, TypeEngine):
            return type_()
        if isinstance(type_, str):
            return self.get(type_)
        raise TypeConversionError(f'Cannot resolve column type from {type_!r}')


def _accepted_options(factory: TypeFactory) -> set[str]:
    """Names of the keyword arguments a factory accepts."""
    try:
        signature = inspect.signature(factory)
    except (TypeError, ValueError):
        return set()
    return set(signature.parameters)


def get_type_registry() -> ColumnTypeRegistry:
    """Return the shared column type registry."""
    return ColumnTypeRegistry.get_instance()


class TypeConverter:
    """Reduce NumPy and pandas values to plain Python values.

    Missing-value markers (NaN, NaT, pd.NA) become None, so they follow the
    same omission rules as None.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a plain Python value."""
        if value is None or value is NULL:
            return value

        if isinstance(value, float) and math.isnan(value):
            return None

        if value is pd.NA or isinstance(value, type(pd.NaT)):
            return None

        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()

        if isinstance(value, np.datetime64):
            if np.isnat(value):
                return None
            return pd.Timestamp(value).to_pydatetime()

        if isinstance(value, np.bool_):
            return bool(value)

        if isinstance(value, np.floating) and np.isnan(value):
            return None

        if isinstance(value, (np.integer, np.floating)):
            return value.item()

        return value


def parse_temporal(value: str, python_type: type) -> Any:
    """Parse a date/time string into the Python type a temporal column expects.

    Raises
        TypeConversionError: If the string is not a recognizable date/time
    """
    try:
        parsed = dateutil.parser.parse(value)
    except (ValueError, OverflowError) as exc:
        raise TypeConversionError(f'Cannot parse {value!r} as {python_type.__name__}') from exc

    if python_type is datetime.date:
        return parsed.date()
    if python_type is datetime.time:
        return parsed.timetz() if parsed.tzinfo else parsed.time()
    return parsed
