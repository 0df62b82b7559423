"""
Minimal object-relational mapper for PostgreSQL and SQLite.

- Database: table CRUD with value conversion against the live schema
- Repository: maps objects of one class to one table, keeps the table's
  schema in sync with the declared fields
- Serializer: dispatches normalize/denormalize to registered repositories

Raw statements can be called either as:
- Module functions: dbmap.execute(cn, sql, params)
- ConnectionWrapper methods: cn.execute(sql, params)
"""
__version__ = '0.1.0'

from typing import Any

from dbmap.accessor import PropertyAccessor
from dbmap.codec import ValueCodec
from dbmap.connection import ConnectionWrapper, connect
from dbmap.database import Database
from dbmap.exceptions import AccessError, ConnectionFailure, DatabaseError
from dbmap.exceptions import IntegrityViolationError, QueryError
from dbmap.exceptions import SchemaSyncError, TypeConversionError
from dbmap.exceptions import UnsupportedTypeError, ValidationError
from dbmap.fieldmap import FieldDescriptor, FieldMap
from dbmap.options import DatabaseOptions
from dbmap.query import QueryBuilder
from dbmap.repository import Repository
from dbmap.serializer import Normalizer, Serializer
from dbmap.transaction import Transaction as transaction
from dbmap.types import NULL, TypedValue, get_type_registry

type_registry = get_type_registry()


def execute(cn: ConnectionWrapper, sql: str, params: dict[str, Any] | None = None) -> int:
    """Execute a SQL statement and return affected row count.
    """
    return cn.execute(sql, params)


def select(cn: ConnectionWrapper, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
    """Execute a SELECT statement and return rows as dicts.
    """
    return cn.select(sql, params)


__all__ = [
    'NULL',
    'AccessError',
    'ConnectionFailure',
    'ConnectionWrapper',
    'Database',
    'DatabaseError',
    'DatabaseOptions',
    'FieldDescriptor',
    'FieldMap',
    'IntegrityViolationError',
    'Normalizer',
    'PropertyAccessor',
    'QueryBuilder',
    'QueryError',
    'Repository',
    'SchemaSyncError',
    'Serializer',
    'TypeConversionError',
    'TypedValue',
    'UnsupportedTypeError',
    'ValidationError',
    'ValueCodec',
    'connect',
    'execute',
    'get_type_registry',
    'select',
    'transaction',
    'type_registry',
]
