"""
Argument validation in Database and Repository happens before any backend call.
"""
import pytest
from dbmap import Database, Repository, UnsupportedTypeError, ValidationError
from dbmap.strategy import get_strategy
from sqlalchemy.dialects import sqlite

from tests.fixtures.entities import Customer, User, make_user


@pytest.fixture
def mock_cn(mocker):
    cn = mocker.MagicMock()
    cn.sa_dialect = sqlite.dialect()
    cn.dialect = 'sqlite'
    cn.strategy = get_strategy('sqlite')
    return cn


@pytest.fixture
def mock_db(mock_cn, mocker):
    db = Database(mock_cn)
    mocker.patch.object(db.schema, 'get_columns', return_value={})
    return db


def test_insert_empty(mock_db, mock_cn):
    with pytest.raises(ValidationError):
        mock_db.insert('users', {})
    mock_cn.execute.assert_not_called()
    mock_db.schema.get_columns.assert_not_called()


def test_insert_all_none(mock_db, mock_cn):
    with pytest.raises(ValidationError):
        mock_db.insert('users', {'id': None, 'email': None})
    mock_cn.execute.assert_not_called()


def test_update_empty_data(mock_db, mock_cn):
    with pytest.raises(ValidationError):
        mock_db.update('users', {}, {'id': 1})
    mock_cn.execute.assert_not_called()


def test_update_empty_where(mock_db, mock_cn):
    with pytest.raises(ValidationError):
        mock_db.update('users', {'email': 'a'}, {})
    mock_cn.execute.assert_not_called()


def test_delete_empty_where(mock_db, mock_cn):
    with pytest.raises(ValidationError):
        mock_db.delete('users', {})
    mock_cn.execute.assert_not_called()


def test_select_unknown_option(mock_db, mock_cn):
    with pytest.raises(ValidationError):
        mock_db.select('users', options={'limt': 1})
    mock_cn.select.assert_not_called()


def test_select_one_forces_limit(mock_db, mock_cn):
    mock_cn.select.return_value = []
    assert mock_db.select_one('users', {'id': 1}, {'limit': 10}) is None
    sql, params = mock_cn.select.call_args[0]
    assert sql == 'SELECT * FROM "users" WHERE "id" = :p1 LIMIT 1'
    assert params == {'p1': 1}


@pytest.fixture
def mock_repo(mock_db):
    repo = Repository(mock_db, 'users', User)
    repo.field('id', 'integer')
    repo.field('email', 'string')
    repo.primary('id')
    return repo


def test_update_without_primary_value(mock_repo, mock_cn):
    with pytest.raises(ValidationError):
        mock_repo.update(make_user(None, 'a@x.org'))
    mock_cn.execute.assert_not_called()


def test_delete_without_primary_key(mock_db, mock_cn):
    repo = Repository(mock_db, 'users', User)
    repo.field('id', 'integer')
    with pytest.raises(ValidationError):
        repo.delete(make_user(1, 'a@x.org'))
    mock_cn.execute.assert_not_called()


def test_wrong_entity_type(mock_repo, mock_cn):
    with pytest.raises(UnsupportedTypeError):
        mock_repo.insert(Customer())
    mock_cn.execute.assert_not_called()


def test_repository_requires_class(mock_db):
    with pytest.raises(ValidationError):
        Repository(mock_db, 'users', make_user(1, 'a'))


if __name__ == '__main__':
    __import__('pytest').main([__file__])
