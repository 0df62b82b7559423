"""
Mapper-specific exception classes.
"""
import sqlalchemy.exc


class DatabaseError(Exception):
    """Base class for all dbmap errors.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing or maintaining database connection.
    """


class QueryError(DatabaseError):
    """Error in statement syntax or execution reported by the backend.
    """


class IntegrityViolationError(QueryError):
    """Database constraint violation error.
    """


class SchemaSyncError(QueryError):
    """Error applying schema synchronization statements (the batch was rolled back).
    """


class TypeConversionError(DatabaseError):
    """Error converting types between Python and database.
    """


class ValidationError(DatabaseError, ValueError):
    """Error in input validation (empty data, empty filter, bad option).
    """


class UnsupportedTypeError(DatabaseError, TypeError):
    """Object or type not handled by a normalizer.
    """


class AccessError(DatabaseError, AttributeError):
    """Property path cannot be read or written on an object.
    """


def wrap_backend_error(exc: sqlalchemy.exc.DBAPIError) -> DatabaseError:
    """Translate a SQLAlchemy driver error into the mapper error hierarchy.

    The original driver exception is kept as ``orig`` and should be chained
    by the caller with ``raise ... from exc``.
    """
    message = str(exc.orig) if exc.orig is not None else str(exc)
    if isinstance(exc, sqlalchemy.exc.IntegrityError):
        err = IntegrityViolationError(message)
    elif exc.connection_invalidated:
        err = ConnectionFailure(message)
    else:
        err = QueryError(message)
    err.orig = exc.orig
    err.statement = exc.statement
    return err
