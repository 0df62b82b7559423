"""Low-level connection utilities with no internal dependencies.

These utilities work with any database connection type (ConnectionWrapper,
SQLAlchemy connections, raw DBAPI connections) and have no imports from
other dbmap modules, making them safe to import without circular
dependency concerns.
"""
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def get_dialect_name(obj: Any) -> str:
    """Get dialect name for a database connection or engine.
    """
    if hasattr(obj, 'dialect'):
        dialect = obj.dialect
        if isinstance(dialect, str):
            return dialect.lower()
        return str(dialect.name).lower()

    if hasattr(obj, 'engine') and hasattr(obj.engine, 'dialect'):
        return str(obj.engine.dialect.name).lower()

    if hasattr(obj, 'sa_connection') and hasattr(obj.sa_connection, 'engine'):
        return str(obj.sa_connection.engine.dialect.name).lower()

    type_name = f'{type(obj).__module__}.{type(obj).__name__}'
    if 'psycopg' in type_name:
        return 'postgresql'
    if 'sqlite3' in type_name:
        return 'sqlite'

    raise AttributeError(f'Cannot determine dialect for {type(obj)}')


def ensure_commit(connection: Any) -> None:
    """Commit a pending (auto-begun) transaction on a SQLAlchemy connection.

    Works safely when nothing is pending.
    """
    in_transaction = getattr(connection, 'in_transaction', None)
    if callable(in_transaction) and not in_transaction():
        return

    if hasattr(connection, 'commit'):
        try:
            connection.commit()
        except Exception as e:
            logger.debug(f'Could not commit transaction: {e}')


def is_identifier(name: Any) -> bool:
    """Check whether a name is a plain SQL identifier (letters, digits, underscore).
    """
    return isinstance(name, str) and bool(_IDENTIFIER.match(name))
