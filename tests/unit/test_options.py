import pytest
from dbmap.options import DatabaseOptions
from dbmap.strategy import get_available_dialects, get_strategy


def test_init_defaults():
    """Test default initialization"""
    options = DatabaseOptions(
        hostname='testhost',
        username='testuser',
        password='testpass',
        database='testdb',
        port=1234,
        timeout=30
    )

    assert options.drivername == 'postgresql'
    assert options.appname is not None
    assert options.echo is False
    assert options.schema_cache_ttl == 0


def test_sqlite_options():
    options = DatabaseOptions(drivername='sqlite', database=':memory:', schema_cache_ttl=60)
    assert options.database == ':memory:'
    assert options.schema_cache_ttl == 60


def test_validation():
    """Missing required fields for the dialect are rejected"""
    with pytest.raises(ValueError):
        DatabaseOptions(drivername='sqlite')

    with pytest.raises(ValueError):
        DatabaseOptions(drivername='postgresql', username='u', password='p',
                        database='d', port=5432)


def test_unknown_drivername():
    with pytest.raises(ValueError):
        DatabaseOptions(drivername='oracle', database='x')


def test_negative_cache_ttl():
    with pytest.raises(ValueError):
        DatabaseOptions(drivername='sqlite', database=':memory:', schema_cache_ttl=-1)


def test_available_dialects():
    assert set(get_available_dialects()) == {'postgresql', 'sqlite'}


def test_postgres_url():
    options = DatabaseOptions(hostname='db.local', username='u', password='p',
                              database='app', port=5432, timeout=5, appname='tests')
    url = get_strategy('postgresql').build_connection_url(options)
    assert url.drivername == 'postgresql+psycopg'
    assert url.host == 'db.local'
    assert url.port == 5432
    assert url.query['connect_timeout'] == '5'
    assert url.query['application_name'] == 'tests'


def test_sqlite_url_and_engine_kwargs():
    strategy = get_strategy('sqlite')
    options = DatabaseOptions(drivername='sqlite', database='app.db', timeout=3)
    assert strategy.build_connection_url(options).database == 'app.db'
    assert strategy.get_engine_kwargs(options) == {'connect_args': {'timeout': 3}}


def test_quote_identifier():
    assert get_strategy('sqlite').quote_identifier('users') == '"users"'
    assert get_strategy('postgresql').quote_identifier('we"ird') == '"we""ird"'


if __name__ == '__main__':
    __import__('pytest').main([__file__])
