"""
Base strategy interface for dialect-specific behavior.

Defines the abstract base class that all dialect strategy implementations
must inherit from. The strategy pattern keeps the differences between
backends (connection URLs, engine setup, identifier quoting, pagination
syntax) in one place while the query builder and the database layer work
against a single interface.
"""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

if TYPE_CHECKING:
    from dbmap.options import DatabaseOptions

# Registry of dialect name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('postgresql')
        class PostgresStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Base class for dialect-specific operations.
    """

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier (e.g., 'postgresql', 'sqlite')."""

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the database connection URL for this dialect.

        Args:
            options: DatabaseOptions containing connection parameters

        Returns
            SQLAlchemy URL object
        """

    @abstractmethod
    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for this dialect.

        Args:
            options: DatabaseOptions containing connection parameters

        Returns
            Dictionary of keyword arguments for create_engine
        """

    def configure_engine(self, engine: sa.Engine) -> None:
        """Attach dialect-specific event listeners to a freshly created engine.

        Args:
            engine: The engine returned by create_engine
        """

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return list of required option field names for this dialect.

        Returns
            List of field names that must have non-None/non-zero values
        """

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate options for this dialect.

        Args:
            options: DatabaseOptions to validate

        Raises
            ValueError: If any required field is None or 0
        """
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise ValueError(f'field {field} cannot be None or 0')

    def quote_identifier(self, identifier: str) -> str:
        """Quote a database identifier.

        Default implementation uses standard SQL double-quote escaping.
        Override in subclasses if the database requires different quoting.

        Args:
            identifier: Table or column name

        Returns
            str: Quoted identifier
        """
        return '"' + identifier.replace('"', '""') + '"'

    def render_limit_offset(self, limit: int | None, offset: int | None) -> str:
        """Render the pagination suffix of a SELECT statement.

        Args:
            limit: Maximum number of rows, or None
            offset: Number of rows to skip, or None

        Returns
            str: Clause text without leading space, empty when both are None
        """
        parts = []
        if limit is not None:
            parts.append(f'LIMIT {int(limit)}')
        if offset is not None:
            parts.append(f'OFFSET {int(offset)}')
        return ' '.join(parts)
