"""
Field declarations of a mapped entity.

A FieldMap is the ordered set of fields a Repository maps between an entity
class and its table, plus the primary key subset. It is filled during setup
and sealed on first use; after that it can no longer change.
"""
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from dbmap.exceptions import ValidationError
from dbmap.types import TypeSpec, get_type_registry
from sqlalchemy.types import TypeEngine

logger = logging.getLogger(__name__)

__all__ = ['FieldDescriptor', 'FieldMap']

COLUMN_OPTIONS = ('length', 'precision', 'scale', 'timezone', 'nullable', 'default',
                  'autoincrement', 'unique', 'index', 'comment')

MAPPING_OPTIONS = ('accessor', 'normalize_mapper', 'denormalize_mapper')


@dataclass(frozen=True)
class FieldDescriptor:
    """One mapped field.

    ``name`` is the column name; ``accessor`` is the property path on the
    entity (defaults to ``name``).
    """
    name: str
    type: TypeSpec
    accessor: str
    normalize_mapper: Callable[[Any], Any] | None = None
    denormalize_mapper: Callable[[Any], Any] | None = None
    column_options: dict[str, Any] = field(default_factory=dict)

    def column_type(self) -> TypeEngine:
        """Storage type object, built with the length/precision/scale options."""
        registry = get_type_registry()
        if isinstance(self.type, str):
            return registry.get(self.type, **self.column_options)
        return registry.resolve(self.type)


class FieldMap:
    """Ordered field declarations and primary key of one entity.
    """

    def __init__(self) -> None:
        self._fields: dict[str, FieldDescriptor] = {}
        self._primaries: list[str] = []
        self._sealed = False

    def __repr__(self) -> str:
        return f'FieldMap(fields={list(self._fields)}, primary={self._primaries})'

    def __iter__(self) -> Iterator[FieldDescriptor]:
        return iter(self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __getitem__(self, name: str) -> FieldDescriptor:
        return self._fields[name]

    @property
    def names(self) -> list[str]:
        return list(self._fields)

    @property
    def primaries(self) -> tuple[str, ...]:
        return tuple(self._primaries)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        if not self._sealed:
            logger.debug(f'Sealed {self!r}')
        self._sealed = True

    def _check_open(self) -> None:
        if self._sealed:
            raise RuntimeError('Field map is already in use and can no longer be changed')

    def field(self, name: str, type_: TypeSpec, **options: Any) -> FieldDescriptor:
        """Declare a field.

        Args:
            name: Column name, unique within the map
            type_: Registry type name or SQLAlchemy type
            **options: accessor, normalize_mapper, denormalize_mapper and
                column options (length, precision, scale, timezone, nullable,
                default, autoincrement, unique, index, comment)

        Raises
            ValidationError: Duplicate name or unknown option
            TypeConversionError: Unknown type
            RuntimeError: If the map is sealed
        """
        self._check_open()
        if not isinstance(name, str) or not name:
            raise ValidationError(f'Invalid field name: {name!r}')
        if name in self._fields:
            raise ValidationError(f'Field {name} is already declared')

        unknown = set(options) - set(COLUMN_OPTIONS) - set(MAPPING_OPTIONS)
        if unknown:
            raise ValidationError(f'Unknown options for field {name}: {sorted(unknown)}')
        for key in ('normalize_mapper', 'denormalize_mapper'):
            if options.get(key) is not None and not callable(options[key]):
                raise ValidationError(f'{key} for field {name} must be callable')

        descriptor = FieldDescriptor(
            name=name,
            type=type_,
            accessor=options.get('accessor') or name,
            normalize_mapper=options.get('normalize_mapper'),
            denormalize_mapper=options.get('denormalize_mapper'),
            column_options={k: v for k, v in options.items() if k in COLUMN_OPTIONS},
        )
        descriptor.column_type()
        self._fields[name] = descriptor
        return descriptor

    def primary(self, name: str) -> None:
        """Add a declared field to the primary key.
        """
        self._check_open()
        if name not in self._fields:
            raise ValidationError(f'Primary key field {name} is not declared')
        if name in self._primaries:
            raise ValidationError(f'Field {name} is already part of the primary key')
        self._primaries.append(name)

    def require_primary(self) -> tuple[str, ...]:
        """Return the primary key, failing when none is declared."""
        if not self._primaries:
            raise ValidationError('No primary key declared')
        return self.primaries

    def type_overrides(self) -> dict[str, TypeEngine]:
        """Column name to declared storage type."""
        return {d.name: d.column_type() for d in self._fields.values()}
