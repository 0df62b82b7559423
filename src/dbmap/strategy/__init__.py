"""
Lookup of the per-dialect strategies used by connections and query builders.

Strategies register themselves in ``strategy.base`` when their module is
imported; the imports below make ``sqlite`` and ``postgresql`` available.
"""
from functools import lru_cache

from dbmap.strategy.base import _STRATEGY_REGISTRY
from dbmap.strategy.base import DatabaseStrategy as DatabaseStrategy
from dbmap.strategy.base import register_strategy as register_strategy
from dbmap.strategy.postgres import PostgresStrategy as PostgresStrategy
from dbmap.strategy.sqlite import SQLiteStrategy as SQLiteStrategy


def _strategy_class(dialect: str) -> type[DatabaseStrategy]:
    try:
        return _STRATEGY_REGISTRY[dialect]
    except KeyError:
        raise ValueError(f'Unsupported dialect: {dialect}. '
                         f'Available: {sorted(_STRATEGY_REGISTRY)}') from None


@lru_cache(maxsize=8)
def get_strategy(dialect: str) -> DatabaseStrategy:
    """Shared strategy instance for a dialect name such as ``sqlite``.

    Raises
        ValueError: If no strategy is registered for the dialect
    """
    return _strategy_class(dialect)()


def get_available_dialects() -> list[str]:
    return list(_STRATEGY_REGISTRY)


def is_supported_dialect(dialect: str) -> bool:
    return dialect in _STRATEGY_REGISTRY


def get_strategy_class(dialect: str) -> type[DatabaseStrategy]:
    """Strategy class for a dialect, used to validate options before connecting.
    """
    return _strategy_class(dialect)
