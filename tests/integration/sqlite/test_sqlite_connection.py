import dbmap as db
import pytest
from dbmap import ConnectionFailure, IntegrityViolationError, QueryError


def test_execute_and_select(sqlite_conn):
    """Statements return rowcounts, selects return dicts"""
    count = db.execute(sqlite_conn, 'UPDATE test_table SET value = value + 1 WHERE value > :min', {'min': 15})
    assert count == 2

    rows = db.select(sqlite_conn, 'SELECT name, value FROM test_table ORDER BY name')
    assert rows == [
        {'name': 'Alice', 'value': 10},
        {'name': 'Bob', 'value': 21},
        {'name': 'Charlie', 'value': 31},
    ]


def test_call_tracking(sqlite_conn):
    calls = sqlite_conn.calls
    sqlite_conn.select('SELECT 1 AS one')
    assert sqlite_conn.calls == calls + 1
    assert sqlite_conn.time >= 0


def test_dialect(sqlite_conn):
    assert sqlite_conn.dialect == 'sqlite'
    assert sqlite_conn.strategy.dialect_name == 'sqlite'


def test_query_error_keeps_connection_usable(sqlite_conn):
    with pytest.raises(QueryError) as exc_info:
        sqlite_conn.select('SELECT * FROM missing_table')
    assert exc_info.value.orig is not None

    rows = sqlite_conn.select('SELECT COUNT(*) AS n FROM test_table')
    assert rows[0]['n'] == 3


def test_integrity_error(sqlite_conn):
    with pytest.raises(IntegrityViolationError):
        sqlite_conn.execute("INSERT INTO test_table (name, value) VALUES ('Alice', 1)")
    assert sqlite_conn.select('SELECT COUNT(*) AS n FROM test_table')[0]['n'] == 3


def test_execute_raw_keeps_colons(sqlite_conn):
    sqlite_conn.execute_raw("CREATE TABLE notes (body TEXT DEFAULT 'a:b')")
    sqlite_conn.execute('INSERT INTO notes DEFAULT VALUES')
    assert sqlite_conn.select('SELECT body FROM notes') == [{'body': 'a:b'}]


def test_closed_connection():
    cn = db.connect({'drivername': 'sqlite', 'database': ':memory:'})
    cn.close()
    assert cn.closed
    with pytest.raises(ConnectionFailure):
        cn.execute('SELECT 1')


def test_context_manager():
    with db.connect(drivername='sqlite', database=':memory:') as cn:
        assert cn.select('SELECT 1 AS one') == [{'one': 1}]
    assert cn.closed


def test_persistence_across_connections(sqlite_file_conn):
    sqlite_file_conn.execute('CREATE TABLE kv (k TEXT PRIMARY KEY, v TEXT)')
    sqlite_file_conn.execute('INSERT INTO kv VALUES (:k, :v)', {'k': 'a', 'v': '1'})

    other = db.connect(**sqlite_file_conn.options.__dict__)
    try:
        assert other.select('SELECT v FROM kv WHERE k = :k', {'k': 'a'}) == [{'v': '1'}]
    finally:
        other.close()


if __name__ == '__main__':
    __import__('pytest').main([__file__])
